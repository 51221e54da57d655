"""Single-step lifecycle: confirmation gates, attempts, timeout and retry backoff."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from concurrent.futures import wait
from dataclasses import dataclass
from typing import Optional

from ... import settings
from ...errors import ConfigurationError, StepCancelled, StepTimeout
from ...model import Step
from ..cancel import CancelToken
from ..events import ConfirmPhase, log_step
from .confirm import evaluate_confirm
from .dispatch import StepServices, execute_step_kind

logger = logging.getLogger(__name__)

REASON_CANCELLED = "cancelled"
REASON_TIMEOUT = "timeout"
REASON_DECLINED_BEFORE = "declined at confirmation (before)"
REASON_DECLINED_AFTER = "declined at confirmation (after)"


@dataclass(frozen=True)
class StepRunResult:
    success: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "StepRunResult":
        return cls(True)

    @classmethod
    def failed(cls, reason: str) -> "StepRunResult":
        return cls(False, reason)


def backoff_seconds(attempt: int) -> float:
    """Delay before retrying after the attempt with 0-based index `attempt`."""
    return float(2 ** attempt)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _run_attempt(step: Step, services: StepServices, token: CancelToken, event_id: str, timeout: float) -> None:
    """
    Run the kind-specific work on a worker thread and wait at most `timeout`.

    On timeout the attempt token is cancelled, which kills any process the
    attempt started, and StepTimeout is raised.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{event_id}")
    future = pool.submit(execute_step_kind, step, services, token, event_id)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        if future.done():
            raise
        token.cancel()
        wait([future], timeout=settings.KILL_GRACE_SECONDS + 1)
        raise StepTimeout(f"step '{event_id}' exceeded {timeout:g}s") from None
    finally:
        pool.shutdown(wait=False)


def run_single_step(
    step: Step,
    services: StepServices,
    cancel: CancelToken,
    event_id: Optional[str] = None,
) -> StepRunResult:
    """
    Execute one step to a terminal result. Never raises.

    Attempts run up to step.retry + 1 times. Timeouts and execution errors
    are retried after backoff_seconds(attempt); configuration errors, user
    cancellation and declined confirmations are not.
    """
    event_id = event_id or step.id
    emit = services.emit
    confirm = step.confirm
    gate = dict(context=services.context, emit=emit, token=cancel, bridge=services.bridge, event_id=event_id)

    try:
        if confirm is not None and confirm.before:
            if not evaluate_confirm(step, confirm, ConfirmPhase.BEFORE, **gate):
                return StepRunResult.failed(REASON_DECLINED_BEFORE)

        timeout = max(1, step.timeout_seconds)
        total = step.retry + 1
        attempt = 0
        while True:
            if cancel.is_cancelled():
                return StepRunResult.failed(REASON_CANCELLED)

            backoff = backoff_seconds(attempt)
            log_step(emit, event_id, f"[{step.name}] attempt {attempt + 1}/{total}")
            try:
                _run_attempt(step, services, cancel.child(), event_id, timeout)
            except StepTimeout:
                attempt += 1
                if attempt >= total:
                    log_step(emit, event_id, f"timed out after {timeout}s, no retries left")
                    return StepRunResult.failed(REASON_TIMEOUT)
                log_step(emit, event_id, f"timed out after {timeout}s, retrying in {backoff:g}s")
            except StepCancelled:
                return StepRunResult.failed(REASON_CANCELLED)
            except ConfigurationError as e:
                return StepRunResult.failed(_describe(e))
            except Exception as e:
                if cancel.is_cancelled():
                    return StepRunResult.failed(REASON_CANCELLED)
                attempt += 1
                if attempt >= total:
                    return StepRunResult.failed(_describe(e))
                log_step(emit, event_id, f"error: {_describe(e)}; retrying in {backoff:g}s")
            else:
                break

            if cancel.wait(backoff):
                return StepRunResult.failed(REASON_CANCELLED)

        if confirm is not None and confirm.after:
            if not evaluate_confirm(step, confirm, ConfirmPhase.AFTER, **gate):
                return StepRunResult.failed(REASON_DECLINED_AFTER)
        return StepRunResult.ok()
    except Exception as e:
        # confirmation gates only; attempts are handled above
        logger.exception("step %s failed outside of an attempt", event_id)
        return StepRunResult.failed(_describe(e))
