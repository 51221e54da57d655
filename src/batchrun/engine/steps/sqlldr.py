from __future__ import annotations

from ... import settings
from ...errors import ConfigurationError, ProcessFailure
from ...model import SqlLoaderKind
from ..cancel import CancelToken
from ..context import ExecutionContext
from ..events import EventSink
from .process import run_process

CONN_VAR = "SQLLDR_CONN"


def build_sqlldr_args(kind: SqlLoaderKind, context: ExecutionContext) -> list[str]:
    """
    Resolve the connection string and expand every file path.

    The connection comes from the step config, else from SQLLDR_CONN in the
    context or the environment.
    """
    if kind.conn is not None:
        conn = context.expand_required(kind.conn, "sqlldr.conn")
    else:
        conn = context.get_or_env(CONN_VAR)
        if not conn:
            raise ConfigurationError(f"no SQL*Loader connection: set 'conn' on the step or {CONN_VAR}")

    args = [conn, f"control={context.expand_required(kind.control_file, 'sqlldr.control_file')}"]
    optional = (
        ("data", kind.data_file),
        ("log", kind.log_file),
        ("bad", kind.bad_file),
        ("discard", kind.discard_file),
    )
    for key, value in optional:
        expanded = context.expand_optional(value, f"sqlldr.{key}_file")
        if expanded is not None:
            args.append(f"{key}={expanded}")
    return args


def run_sqlldr(
    kind: SqlLoaderKind,
    *,
    context: ExecutionContext,
    emit: EventSink,
    step_id: str,
    token: CancelToken,
) -> None:
    args = build_sqlldr_args(kind, context)
    returncode = run_process(
        [settings.SQLLDR_BIN, *args],
        emit=emit,
        step_id=step_id,
        token=token,
        tag_prefix="sqlldr ",
        display="sqlldr",
    )
    if returncode != 0:
        # args[0] is the connection string, keep it out of messages
        raise ProcessFailure(command=f"sqlldr {' '.join(args[1:])}", exit_code=returncode)
