"""Top-level scheduler: runs a scenario's dependency graph to completion."""

from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Optional

from .. import settings
from ..dag import validate_steps
from ..errors import ConfigurationError, ResourceError
from ..executor import DbExecutor, DummyExecutor
from ..model import Scenario, Step
from .cancel import CancelToken
from .confirm_bridge import ConfirmBridge
from .context import ExecutionContext
from .events import EngineEvent, EventSink, ScenarioFinished, StepFinished, StepLog, StepStarted
from .graph import DependencyTracker
from .resources import EngineHandles, prepare_engine_handles
from .state import ScenarioRuntime
from .steps import StepRunResult, StepServices, run_single_step

logger = logging.getLogger(__name__)

REASON_UPSTREAM_FAILED = "upstream dependency failed"


def _discard(event: EngineEvent) -> None:
    pass


class _Scheduler:
    """
    Coordinator for one run. Owns the dependency tracker and the runtime
    state; step threads only report back through futures and the log queue.
    """

    def __init__(
        self,
        scenario: Scenario,
        runtime: ScenarioRuntime,
        handles: EngineHandles,
        context: ExecutionContext,
        emit: EventSink,
        cancel: CancelToken,
        bridge: Optional[ConfirmBridge],
        max_workers: Optional[int],
    ):
        self.scenario = scenario
        self.runtime = runtime
        self.cancel = cancel
        self.max_workers = max_workers
        self.tracker = DependencyTracker(scenario.steps)
        self._emit = emit
        self._logs: "queue.SimpleQueue[tuple[str, str]]" = queue.SimpleQueue()
        self.services = StepServices(handles=handles, context=context, emit=self.emit, bridge=bridge)

    # ---- event plumbing ----

    def emit(self, event: EngineEvent) -> None:
        """Thread-safe sink handed to steps; log lines are also queued for the runtime state."""
        if isinstance(event, StepLog):
            self._logs.put((event.step_id, event.line))
        self._emit(event)

    def drain_logs(self) -> None:
        while True:
            try:
                step_id, line = self._logs.get_nowait()
            except queue.Empty:
                return
            self.runtime.record_log(step_id, line)

    # ---- state transitions ----

    def _start(self, step: Step) -> None:
        self.tracker.mark_started(step.id)
        self.runtime.mark_started(step.id)
        self.emit(StepStarted(step_id=step.id))

    def _apply(self, step_id: str, result: StepRunResult) -> None:
        if result.success:
            self.tracker.mark_succeeded(step_id)
            self.runtime.mark_succeeded(step_id)
            self.emit(StepFinished(step_id=step_id, success=True))
            return
        reason = result.reason or "failed"
        self.tracker.mark_failed(step_id)
        self.runtime.mark_failed(step_id, reason)
        self.emit(StepLog(step_id=step_id, line=reason))
        self.emit(StepFinished(step_id=step_id, success=False))

    def _block(self, step: Step) -> None:
        self.runtime.mark_failed(step.id, REASON_UPSTREAM_FAILED)
        self.emit(StepLog(step_id=step.id, line=f"not executed: {REASON_UPSTREAM_FAILED}"))
        self.emit(StepFinished(step_id=step.id, success=False))

    def _run(self, step: Step) -> StepRunResult:
        return run_single_step(step, self.services, self.cancel)

    @staticmethod
    def _harvest(future: Future) -> StepRunResult:
        try:
            return future.result()
        except Exception as e:
            logger.exception("step task crashed")
            return StepRunResult.failed(f"step task crashed: {e}")

    # ---- main loop ----

    def run(self) -> None:
        workers = self.max_workers or settings.MAX_WORKERS or max(1, len(self.scenario.steps))
        in_flight: Dict[Future, str] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batchrun-step") as pool:
            while True:
                self.drain_logs()
                if self.cancel.is_cancelled():
                    logger.info("scenario '%s' cancelled, draining %d running step(s)", self.scenario.name, len(in_flight))
                    break

                for step in self.tracker.block_failed_dependents():
                    self._block(step)

                ready = self.tracker.ready()
                sequential = [s for s in ready if not s.allow_parallel]
                parallel = [s for s in ready if s.allow_parallel]

                for step in sequential:
                    if self.cancel.is_cancelled():
                        break
                    self._start(step)
                    result = self._run(step)
                    self.drain_logs()
                    self._apply(step.id, result)
                else:
                    for step in parallel:
                        self._start(step)
                        in_flight[pool.submit(self._run, step)] = step.id

                if in_flight:
                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    self.drain_logs()
                    for future in done:
                        self._apply(in_flight.pop(future), self._harvest(future))
                    continue

                if self.tracker.is_complete():
                    break
                time.sleep(settings.IDLE_POLL_SECONDS)

            if in_flight:
                done, _ = wait(list(in_flight))
                self.drain_logs()
                for future in done:
                    self._apply(in_flight.pop(future), self._harvest(future))

        if self.cancel.is_cancelled():
            self.runtime.cancelled = True
        self.drain_logs()


def run_scenario(
    scenario: Scenario,
    default_executor: Optional[DbExecutor] = None,
    emit: Optional[EventSink] = None,
    cancel: Optional[CancelToken] = None,
    bridge: Optional[ConfirmBridge] = None,
    *,
    context: Optional[ExecutionContext] = None,
    max_workers: Optional[int] = None,
) -> ScenarioRuntime:
    """
    Execute a scenario and stream its events to `emit`.

    Args:
      scenario: the steps and DB targets to run.
      default_executor: executor behind the "default" target (DummyExecutor if omitted).
      emit: event sink, called from the calling thread and from step threads.
      cancel: cooperative cancellation handle; cancelling kills running processes.
      bridge: confirmation responder; without one, confirm gates use their default answer.
      context: shared variables, pre-seeded by the caller if desired.
      max_workers: cap on concurrently running parallel steps (unbounded if None).

    Returns:
      The final ScenarioRuntime. ScenarioFinished is always the last event.

    Raises:
      ConfigurationError: the step graph is invalid; nothing was executed.
      ResourceError: a DB executor could not be built; nothing was executed.
    """
    emit = emit or _discard
    cancel = cancel or CancelToken()
    context = context if context is not None else ExecutionContext()
    runtime = ScenarioRuntime(scenario)

    try:
        validate_steps(scenario.steps)
        handles = prepare_engine_handles(scenario, default_executor or DummyExecutor(), context)
    except (ConfigurationError, ResourceError) as e:
        logger.error("scenario '%s' not started: %s", scenario.name, e)
        emit(ScenarioFinished())
        raise

    logger.info("scenario '%s' started (%d steps)", scenario.name, len(scenario.steps))
    try:
        _Scheduler(scenario, runtime, handles, context, emit, cancel, bridge, max_workers).run()
    finally:
        handles.close()
        emit(ScenarioFinished())

    logger.info(
        "scenario '%s' finished%s: %s",
        scenario.name,
        " (cancelled)" if runtime.cancelled else "",
        runtime.results(),
    )
    return runtime
