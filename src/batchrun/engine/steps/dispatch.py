from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...errors import ConfigurationError
from ...model import ExtractVarKind, LoopKind, ShellKind, SqlFileKind, SqlKind, SqlLoaderKind, Step
from ..cancel import CancelToken
from ..confirm_bridge import ConfirmBridge
from ..context import ExecutionContext
from ..events import EventSink, log_step
from ..resources import EngineHandles
from .extract import run_extract
from .loops import run_loop
from .shell import run_shell
from .sql import execute_sql, load_sql_file
from .sqlldr import run_sqlldr


@dataclass
class StepServices:
    """What a running step may touch: DB handles, shared variables, the event sink and the confirm bridge."""
    handles: EngineHandles
    context: ExecutionContext
    emit: EventSink
    bridge: Optional[ConfirmBridge] = None


def execute_step_kind(step: Step, services: StepServices, token: CancelToken, event_id: str) -> None:
    """
    Run one attempt of a step's kind-specific work. Returns on success, raises on failure.
    """
    kind = step.kind
    ctx = services.context
    emit = services.emit

    if isinstance(kind, SqlKind):
        log_step(emit, event_id, "SQL execution started")
        execute_sql(kind.sql, kind.target_db, handles=services.handles, context=ctx)
    elif isinstance(kind, SqlFileKind):
        sql = load_sql_file(kind.path, ctx)
        log_step(emit, event_id, f"SQL file loaded: {kind.path}")
        services.handles.get_executor(kind.target_db).execute_sql(sql)
    elif isinstance(kind, SqlLoaderKind):
        run_sqlldr(kind, context=ctx, emit=emit, step_id=event_id, token=token)
    elif isinstance(kind, ShellKind):
        run_shell(kind, context=ctx, emit=emit, step_id=event_id, token=token)
    elif isinstance(kind, ExtractVarKind):
        run_extract(kind, context=ctx, emit=emit, step_id=event_id)
    elif isinstance(kind, LoopKind):
        run_loop(step, kind, services, token, event_id)
    else:
        raise ConfigurationError(f"unsupported step kind: {type(kind).__name__}")
