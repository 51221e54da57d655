"""Error taxonomy shared by the engine, executors and CLI."""

from __future__ import annotations

from dataclasses import dataclass


class EngineError(Exception):
    """Base class for every error raised by batchrun."""


class ConfigurationError(EngineError):
    """
    Scenario or step configuration cannot be honoured.

    Never retried by the scheduler's scenario-level logic: a missing DB target,
    an unknown dependency or an invalid regex fails the same way every time.
    """


class ExpansionError(ConfigurationError):
    """A ${VAR} placeholder stayed unresolved after expansion."""

    def __init__(self, template: str, field: str | None = None):
        self.template = template
        self.field = field
        if field:
            msg = f"cannot resolve placeholders in field '{field}': {template}"
        else:
            msg = f"cannot resolve placeholders: {template}"
        super().__init__(msg)


class ResourceError(EngineError):
    """A DB executor could not be built. Aborts the run before any step executes."""


class StepExecutionError(EngineError):
    """Transient failure of a step's action; retried within the step's budget."""


@dataclass
class ProcessFailure(StepExecutionError):
    """An external process exited with a non-zero status."""
    command: str
    exit_code: int

    def __str__(self) -> str:
        return f"'{self.command}' exited with status {self.exit_code}"


class StepTimeout(EngineError):
    """A step attempt exceeded its timeout."""


class StepCancelled(EngineError):
    """Execution stopped because cancellation was requested."""
