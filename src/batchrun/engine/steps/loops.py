from __future__ import annotations

import glob
import logging
from typing import TYPE_CHECKING, Optional, Tuple

from ...errors import ConfigurationError, StepCancelled, StepExecutionError
from ...model import IterationFailurePolicy, LoopKind, Step
from ..cancel import CancelToken
from ..events import StepFinished, StepStarted, log_step
from ..graph import DependencyTracker

if TYPE_CHECKING:
    from .dispatch import StepServices

logger = logging.getLogger(__name__)


def child_event_id(loop_event_id: str, child_id: str) -> str:
    return f"{loop_event_id}/{child_id}"


def expand_glob(pattern: str) -> list[str]:
    return sorted(glob.glob(pattern, recursive=True))


def _run_iteration(
    step: Step,
    kind: LoopKind,
    services: "StepServices",
    token: CancelToken,
    event_id: str,
) -> Optional[Tuple[str, str]]:
    """
    Run the loop body once, honouring dependencies between children.

    Returns:
      None when every child succeeded, else (child id, reason) of the first failure.
    """
    # Import here to avoid circular import
    from .runner import run_single_step

    emit = services.emit
    tracker = DependencyTracker(kind.child_steps)
    while not tracker.is_complete():
        if token.is_cancelled():
            raise StepCancelled(f"loop '{step.id}' cancelled")
        ready = tracker.ready()
        if not ready:
            pending = sorted(s.id for s in kind.child_steps if s.id not in tracker.started)
            raise ConfigurationError(f"loop '{step.id}': unresolvable dependencies among {pending}")
        for child in ready:
            child_id = child_event_id(event_id, child.id)
            tracker.mark_started(child.id)
            emit(StepStarted(step_id=child_id))
            result = run_single_step(child, services, token, child_id)
            if result.success:
                tracker.mark_succeeded(child.id)
                emit(StepFinished(step_id=child_id, success=True))
                continue
            tracker.mark_failed(child.id)
            log_step(emit, child_id, result.reason or "failed")
            emit(StepFinished(step_id=child_id, success=False))
            return child.id, result.reason or "failed"
    return None


def run_loop(step: Step, kind: LoopKind, services: "StepServices", token: CancelToken, event_id: str) -> None:
    """
    Run the loop body once per file matching the glob, in sorted path order.

    The matched path is bound to kind.loop_var before each iteration. With
    STOP_ALL the first failed iteration fails the loop; with CONTINUE the
    remaining files are still processed and the loop succeeds.
    """
    emit = services.emit
    pattern = services.context.expand_required(kind.glob_pattern, "loop.glob_pattern")
    matches = expand_glob(pattern)
    if not matches:
        log_step(emit, event_id, f"no files match {pattern}, nothing to do")
        return

    failed = []
    for index, path in enumerate(matches, start=1):
        if token.is_cancelled():
            raise StepCancelled(f"loop '{step.id}' cancelled")
        services.context.set(kind.loop_var, path)
        log_step(emit, event_id, f"iteration {index}/{len(matches)}: {kind.loop_var} = {path}")

        failure = _run_iteration(step, kind, services, token, event_id)
        if failure is None:
            continue
        child_id, reason = failure
        if kind.iteration_failure_policy == IterationFailurePolicy.STOP_ALL:
            raise StepExecutionError(f"loop iteration {index} ({path}) failed at '{child_id}': {reason}")
        failed.append(path)
        log_step(emit, event_id, f"iteration {index} ({path}) failed at '{child_id}', continuing")

    if failed:
        logger.warning("loop %s: %d of %d iterations failed", event_id, len(failed), len(matches))
        log_step(emit, event_id, f"{len(failed)} of {len(matches)} iterations failed: {', '.join(failed)}")
