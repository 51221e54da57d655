from .base import DbExecutor, DummyExecutor
from .oracle import OracleCliExecutor
from .postgres import PostgresExecutor

__all__ = ["DbExecutor", "DummyExecutor", "OracleCliExecutor", "PostgresExecutor"]
