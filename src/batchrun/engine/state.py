from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, Optional

from .. import settings
from ..model import Scenario


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class StepRuntimeState:
    status: StepStatus = StepStatus.PENDING
    reason: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    logs: Deque[str] = field(default_factory=lambda: deque(maxlen=settings.LOG_BUFFER_LINES))

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


class ScenarioRuntime:
    """
    Per-step runtime state of one run.

    Mutated only by the coordinating thread; step threads report back through
    return values and the log queue drained by the coordinator.
    """

    def __init__(self, scenario: Scenario):
        self.scenario = scenario
        self.steps_state: Dict[str, StepRuntimeState] = {s.id: StepRuntimeState() for s in scenario.steps}
        self.cancelled = False

    def _state(self, step_id: str) -> Optional[StepRuntimeState]:
        state = self.steps_state.get(step_id)
        if state is not None:
            return state
        # Loop children report as "<loop-id>/<child-id>" and fold into the loop's state.
        return self.steps_state.get(step_id.split("/", 1)[0])

    def mark_started(self, step_id: str) -> None:
        state = self._state(step_id)
        if state is not None:
            state.status = StepStatus.RUNNING
            state.started_at = time.monotonic()

    def mark_succeeded(self, step_id: str) -> None:
        state = self._state(step_id)
        if state is not None:
            state.status = StepStatus.SUCCESS
            state.finished_at = time.monotonic()

    def mark_failed(self, step_id: str, reason: str) -> None:
        state = self._state(step_id)
        if state is not None:
            state.status = StepStatus.FAILED
            state.reason = reason
            state.finished_at = time.monotonic()

    def record_log(self, step_id: str, line: str) -> None:
        state = self._state(step_id)
        if state is not None:
            state.logs.append(line if state is self.steps_state.get(step_id) else f"[{step_id}] {line}")

    def results(self) -> Dict[str, str]:
        """step id -> status value, in declaration order."""
        return {s.id: self.steps_state[s.id].status.value for s in self.scenario.steps}

    @property
    def failed(self) -> bool:
        return any(st.status == StepStatus.FAILED for st in self.steps_state.values())
