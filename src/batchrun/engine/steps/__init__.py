from .dispatch import StepServices, execute_step_kind
from .runner import StepRunResult, backoff_seconds, run_single_step

__all__ = ["StepRunResult", "StepServices", "backoff_seconds", "execute_step_kind", "run_single_step"]
