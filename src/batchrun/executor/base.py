from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class DbExecutor(ABC):
    """Executes SQL against one DB target. Shared across step threads."""

    @abstractmethod
    def execute_sql(self, sql: str) -> None:
        """Run `sql`; raise on failure."""

    def close(self) -> None:
        """Release held resources (pools, connections)."""


class DummyExecutor(DbExecutor):
    """Logs SQL instead of running it."""

    def execute_sql(self, sql: str) -> None:
        logger.info("[DummyExecutor] SQL: %s", sql)
