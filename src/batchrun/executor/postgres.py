from __future__ import annotations

import logging
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from ..errors import ResourceError, StepExecutionError
from .base import DbExecutor

logger = logging.getLogger(__name__)


def _build_engine(dsn: str, user: Optional[str], password: Optional[str]) -> sa.Engine:
    """
    Accept either a URL ("postgresql://host/db") or a libpq keyword DSN
    ("host=... dbname=..."). User/password, when given, override the DSN's.
    """
    if "://" in dsn:
        url = sa.make_url(dsn)
        if url.drivername == "postgresql":
            url = url.set(drivername="postgresql+psycopg2")
        if user is not None:
            url = url.set(username=user)
        if password is not None:
            url = url.set(password=password)
        return sa.create_engine(url, pool_pre_ping=True)

    connect_args = {"dsn": dsn}
    if user is not None:
        connect_args["user"] = user
    if password is not None:
        connect_args["password"] = password
    return sa.create_engine("postgresql+psycopg2://", connect_args=connect_args, pool_pre_ping=True)


class PostgresExecutor(DbExecutor):
    """Runs SQL batches over a pooled PostgreSQL engine."""

    def __init__(self, dsn: str, user: Optional[str] = None, password: Optional[str] = None):
        try:
            self._engine = _build_engine(dsn, user, password)
        except (ArgumentError, SQLAlchemyError, ValueError, ImportError) as e:
            raise ResourceError(f"cannot create PostgreSQL pool: {e}") from e

    @property
    def engine(self) -> sa.Engine:
        return self._engine

    def execute_sql(self, sql: str) -> None:
        try:
            with self._engine.begin() as conn:
                # Sent as-is: "%" in the batch is not a DBAPI format marker.
                conn.exec_driver_sql(sql, execution_options={"no_parameters": True})
        except SQLAlchemyError as e:
            raise StepExecutionError(f"PostgreSQL execution failed: {e}") from e

    def close(self) -> None:
        logger.debug("disposing PostgreSQL pool %s", self._engine.url.render_as_string(hide_password=True))
        self._engine.dispose()
