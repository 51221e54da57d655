from .cancel import CancelToken
from .confirm_bridge import ConfirmBridge
from .context import ExecutionContext
from .events import (
    ConfirmPhase,
    ConfirmResponse,
    EngineEvent,
    EventSink,
    RequestConfirm,
    ScenarioFinished,
    StepFinished,
    StepLog,
    StepStarted,
)
from .resources import EngineHandles, prepare_engine_handles
from .runner import run_scenario
from .state import ScenarioRuntime, StepRuntimeState, StepStatus
from .steps import StepRunResult, StepServices, run_single_step

__all__ = [
    "CancelToken",
    "ConfirmBridge",
    "ConfirmPhase",
    "ConfirmResponse",
    "EngineEvent",
    "EngineHandles",
    "EventSink",
    "ExecutionContext",
    "RequestConfirm",
    "ScenarioFinished",
    "ScenarioRuntime",
    "StepFinished",
    "StepLog",
    "StepRunResult",
    "StepRuntimeState",
    "StepServices",
    "StepStarted",
    "StepStatus",
    "prepare_engine_handles",
    "run_scenario",
    "run_single_step",
]
