from __future__ import annotations

import re

from ...errors import ConfigurationError, StepExecutionError
from ...model import ExtractVarKind
from ..context import ExecutionContext
from ..events import EventSink, log_step
from .process import decode_line


def read_line(path: str, line_number: int) -> str:
    """Return line `line_number` (1-indexed) without its line terminator."""
    try:
        with open(path, "rb") as fh:
            for index, raw in enumerate(fh, start=1):
                if index == line_number:
                    return decode_line(raw.rstrip(b"\r\n"))
    except OSError as e:
        raise StepExecutionError(f"cannot open {path}: {e}") from e
    raise StepExecutionError(f"{path} has no line {line_number}")


def run_extract(
    kind: ExtractVarKind,
    *,
    context: ExecutionContext,
    emit: EventSink,
    step_id: str,
) -> str:
    """
    Capture a regex group from one line of a file into the context.

    Returns:
      The captured value, also stored under kind.var_name.
    """
    if kind.line_number < 1:
        raise ConfigurationError(f"extract line number must be >= 1, got {kind.line_number}")
    path = context.expand_required(kind.file_path, "extract.file_path")
    try:
        regex = re.compile(kind.pattern)
    except re.error as e:
        raise ConfigurationError(f"invalid extract pattern {kind.pattern!r}: {e}") from e
    if kind.capture_group > regex.groups:
        raise ConfigurationError(
            f"capture group {kind.capture_group} not in pattern {kind.pattern!r} ({regex.groups} groups)"
        )

    content = read_line(path, kind.line_number)
    match = regex.search(content)
    if match is None:
        raise StepExecutionError(f"pattern {kind.pattern!r} did not match line {kind.line_number}: {content}")
    value = match.group(kind.capture_group)
    if value is None:
        raise StepExecutionError(f"capture group {kind.capture_group} did not participate in the match")

    context.set(kind.var_name, value)
    log_step(emit, step_id, f"variable {kind.var_name} = {value}")
    return value
