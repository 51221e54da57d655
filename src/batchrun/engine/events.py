"""Events streamed from the engine to its observer."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..model import ConfirmDefault


class ConfirmPhase(str, Enum):
    BEFORE = "before"
    AFTER = "after"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class StepStarted(_Event):
    type: Literal["step_started"] = "step_started"
    step_id: str


class StepLog(_Event):
    type: Literal["step_log"] = "step_log"
    step_id: str
    line: str


class StepFinished(_Event):
    type: Literal["step_finished"] = "step_finished"
    step_id: str
    success: bool


class RequestConfirm(_Event):
    type: Literal["request_confirm"] = "request_confirm"
    request_id: int
    step_id: str
    step_name: str
    step_kind: str
    summary: Optional[str] = None
    message: Optional[str] = None
    default_answer: ConfirmDefault
    phase: ConfirmPhase


class ConfirmResponse(_Event):
    type: Literal["confirm_response"] = "confirm_response"
    request_id: int
    step_id: str
    accepted: bool


class ScenarioFinished(_Event):
    type: Literal["scenario_finished"] = "scenario_finished"


EngineEvent = Union[StepStarted, StepLog, StepFinished, RequestConfirm, ConfirmResponse, ScenarioFinished]

# Called from the coordinator and from step threads alike.
EventSink = Callable[[EngineEvent], None]


def log_step(emit: EventSink, step_id: str, line: str) -> None:
    emit(StepLog(step_id=step_id, line=line))
