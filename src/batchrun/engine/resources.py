from __future__ import annotations

import logging
from typing import Dict, Iterable

from ..errors import ConfigurationError, ResourceError
from ..executor import DbExecutor, DummyExecutor, OracleCliExecutor, PostgresExecutor
from ..model import DbConnectionConfig, DbKind, Scenario
from .context import ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "default"


class EngineHandles:
    """DB target name -> executor. Read-only once built, shared by every step thread."""

    def __init__(self, db_map: Dict[str, DbExecutor], *, owned: Iterable[str] = ()):
        self._db_map = dict(db_map)
        # executors built from scenario config; the caller's default stays the caller's to close
        self._owned = set(owned)

    def __repr__(self) -> str:
        return f"EngineHandles(targets={sorted(self._db_map)})"

    def get_executor(self, name: str | None) -> DbExecutor:
        target = name or DEFAULT_TARGET
        try:
            return self._db_map[target]
        except KeyError:
            raise ConfigurationError(f"undefined DB target: {target}") from None

    def targets(self) -> list[str]:
        return sorted(self._db_map)

    def close(self) -> None:
        for name, executor in self._db_map.items():
            if name not in self._owned:
                continue
            try:
                executor.close()
            except Exception:
                logger.exception("failed to close DB executor '%s'", name)


def _required(value: str | None, field: str, context: ExecutionContext) -> str:
    if value is None:
        raise ConfigurationError(f"{field} value is missing")
    return context.expand_required(value, field)


def build_executor(config: DbConnectionConfig, context: ExecutionContext) -> DbExecutor:
    if config.kind == DbKind.DUMMY:
        return DummyExecutor()
    if config.kind == DbKind.POSTGRES:
        return PostgresExecutor(
            _required(config.dsn, "dsn", context),
            context.expand_optional(config.user, "user"),
            context.expand_optional(config.password, "password"),
        )
    if config.kind == DbKind.ORACLE:
        return OracleCliExecutor(
            _required(config.dsn, "dsn", context),
            _required(config.user, "user", context),
            _required(config.password, "password", context),
        )
    raise ConfigurationError(f"unsupported DB kind: {config.kind!r}")


def prepare_engine_handles(
    scenario: Scenario,
    default_executor: DbExecutor,
    context: ExecutionContext,
) -> EngineHandles:
    """
    Build the DB registry for one run.

    Seeds "default" with the caller's executor, then one executor per
    scenario-declared connection, with dsn/user/password expanded through
    the context.

    Raises:
      ResourceError: any executor could not be built. The run must not start.
    """
    db_map: Dict[str, DbExecutor] = {DEFAULT_TARGET: default_executor}
    for name, config in scenario.db_connections.items():
        try:
            db_map[name] = build_executor(config, context)
        except (ConfigurationError, ResourceError) as e:
            EngineHandles(db_map, owned=db_map.keys() - {DEFAULT_TARGET}).close()
            raise ResourceError(f"failed to build DB executor '{name}': {e}") from e
        logger.debug("registered DB target '%s' (%s)", name, config.kind.value)
    return EngineHandles(db_map, owned=db_map.keys() - {DEFAULT_TARGET})
