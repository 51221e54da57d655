from __future__ import annotations
import os


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


IDLE_POLL_SECONDS = int(os.environ.get("BATCHRUN_IDLE_POLL_MS", "100")) / 1000.0
LOG_BUFFER_LINES = int(os.environ.get("BATCHRUN_LOG_BUFFER_LINES", "1000"))
MAX_WORKERS = _optional_int("BATCHRUN_MAX_WORKERS")
KILL_GRACE_SECONDS = float(os.environ.get("BATCHRUN_KILL_GRACE_SECONDS", "3"))
LEGACY_ENCODING = os.environ.get("BATCHRUN_LEGACY_ENCODING", "cp949")
SQLLDR_BIN = os.environ.get("BATCHRUN_SQLLDR_BIN", "sqlldr")
SQLPLUS_BIN = os.environ.get("BATCHRUN_SQLPLUS_BIN", "sqlplus")
