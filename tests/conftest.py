from __future__ import annotations

import threading
from typing import List, Optional

import pytest

from batchrun.engine.events import StepFinished, StepLog, StepStarted
from batchrun.engine.steps import runner as step_runner
from batchrun.executor import DbExecutor


class EventRecorder:
    """Thread-safe event sink that keeps every event in arrival order."""

    def __init__(self):
        self.events: list = []
        self._lock = threading.Lock()

    def __call__(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, cls) -> list:
        with self._lock:
            return [e for e in self.events if isinstance(e, cls)]

    def started(self) -> List[str]:
        return [e.step_id for e in self.of_type(StepStarted)]

    def finished(self) -> dict:
        return {e.step_id: e.success for e in self.of_type(StepFinished)}

    def logs(self, step_id: Optional[str] = None) -> List[str]:
        return [e.line for e in self.of_type(StepLog) if step_id is None or e.step_id == step_id]

    def index(self, cls, step_id: str) -> int:
        for i, e in enumerate(self.events):
            if isinstance(e, cls) and getattr(e, "step_id", None) == step_id:
                return i
        raise AssertionError(f"no {cls.__name__} for {step_id}")


class RecordingExecutor(DbExecutor):
    """Records SQL; raises for the first `fail_times` calls, or whenever the SQL contains `fail_on`."""

    def __init__(self, fail_times: int = 0, fail_on: Optional[str] = None):
        self.statements: List[str] = []
        self.fail_times = fail_times
        self.fail_on = fail_on
        self.closed = False
        self._lock = threading.Lock()

    def execute_sql(self, sql: str) -> None:
        with self._lock:
            self.statements.append(sql)
            calls = len(self.statements)
        if calls <= self.fail_times:
            raise RuntimeError(f"boom #{calls}")
        if self.fail_on is not None and self.fail_on in sql:
            raise RuntimeError(f"refused: {sql}")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def zero_backoff(monkeypatch):
    monkeypatch.setattr(step_runner, "backoff_seconds", lambda attempt: 0)
