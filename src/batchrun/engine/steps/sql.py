from __future__ import annotations

from pathlib import Path

from ...errors import StepExecutionError
from ..context import ExecutionContext
from ..resources import EngineHandles


def execute_sql(sql: str, target_db: str | None, *, handles: EngineHandles, context: ExecutionContext) -> None:
    expanded = context.expand_required(sql, "sql")
    handles.get_executor(target_db).execute_sql(expanded)


def load_sql_file(path: str, context: ExecutionContext) -> str:
    """Read a SQL file; both the path and the file content may carry ${VAR} placeholders."""
    actual = context.expand_required(path, "sql_file")
    try:
        content = Path(actual).read_text(encoding="utf-8")
    except OSError as e:
        raise StepExecutionError(f"cannot read SQL file {actual}: {e}") from e
    return context.expand_required(content, "sql_file_content")
