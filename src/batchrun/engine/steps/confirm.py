"""Human approval gates before and after a step."""

from __future__ import annotations

import logging
from concurrent.futures import CancelledError, Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from ...model import (
    ConfirmConfig,
    ConfirmDefault,
    ExtractVarKind,
    LoopKind,
    ShellKind,
    SqlFileKind,
    SqlKind,
    SqlLoaderKind,
    Step,
)
from ..cancel import CancelToken
from ..confirm_bridge import ConfirmBridge
from ..context import ExecutionContext
from ..events import ConfirmPhase, ConfirmResponse, EventSink, RequestConfirm, log_step

logger = logging.getLogger(__name__)

SUMMARY_LINES = 4
_ANSWER_POLL_SECONDS = 0.1


def trim_lines(text: str, limit: int = SUMMARY_LINES) -> str:
    lines = text.strip().splitlines()
    if len(lines) <= limit:
        return "\n".join(lines)
    return "\n".join(lines[:limit] + ["..."])


def summarize_step(step: Step) -> Optional[str]:
    """Short human-readable description of what a step is about to do."""
    kind = step.kind
    if isinstance(kind, SqlKind):
        return trim_lines(kind.sql)
    if isinstance(kind, SqlFileKind):
        return f"file: {kind.path}"
    if isinstance(kind, SqlLoaderKind):
        return f"control: {kind.control_file}"
    if isinstance(kind, ShellKind):
        return trim_lines(kind.script)
    if isinstance(kind, ExtractVarKind):
        return f"file: {kind.file_path} (line {kind.line_number}, group {kind.capture_group}) -> {kind.var_name}"
    if isinstance(kind, LoopKind):
        return f"Loop {kind.glob_pattern} -> {kind.loop_var} ({len(kind.child_steps)} steps)"
    return None


def confirm_var(step_id: str) -> str:
    return f"CONFIRM_{step_id.upper()}"


def _await_answer(answer: Future, token: CancelToken) -> bool:
    """Block until answered; raises CancelledError when abandoned or the run is cancelled."""
    while True:
        try:
            return answer.result(timeout=_ANSWER_POLL_SECONDS)
        except FutureTimeout:
            if token.is_cancelled():
                raise CancelledError() from None


def evaluate_confirm(
    step: Step,
    confirm: ConfirmConfig,
    phase: ConfirmPhase,
    *,
    context: ExecutionContext,
    emit: EventSink,
    token: CancelToken,
    bridge: Optional[ConfirmBridge] = None,
    event_id: Optional[str] = None,
) -> bool:
    """
    Run one confirmation gate.

    Without a bridge, or when the request is abandoned, the configured default
    answer applies. The outcome is recorded as CONFIRM_<ID> = "Yes" / "No".

    Returns:
      True when the step may proceed.
    """
    if phase is ConfirmPhase.BEFORE:
        enabled, message = confirm.before, confirm.message_before
    else:
        enabled, message = confirm.after, confirm.message_after
    if not enabled:
        return True

    event_id = event_id or step.id
    default = confirm.default_answer == ConfirmDefault.YES
    accepted = default

    if bridge is None:
        log_step(emit, event_id, f"confirm ({phase.value}): no responder, using default answer")
    else:
        request_id, answer = bridge.register()
        emit(
            RequestConfirm(
                request_id=request_id,
                step_id=event_id,
                step_name=step.name,
                step_kind=step.kind_label,
                summary=summarize_step(step),
                message=message,
                default_answer=confirm.default_answer,
                phase=phase,
            )
        )
        try:
            accepted = _await_answer(answer, token)
            emit(ConfirmResponse(request_id=request_id, step_id=event_id, accepted=accepted))
        except CancelledError:
            bridge.cancel(request_id)
            logger.info("confirm request %s for %s abandoned, default applies", request_id, event_id)
            log_step(emit, event_id, f"confirm ({phase.value}): no answer, using default answer")

    context.set(confirm_var(step.id), "Yes" if accepted else "No")
    log_step(emit, event_id, f"confirm ({phase.value}): {'accepted' if accepted else 'declined'}")
    return accepted
