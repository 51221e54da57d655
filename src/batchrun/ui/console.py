"""Console output formatting utilities for batchrun."""

from __future__ import annotations

import sys
import threading
from typing import List, Optional

from ..engine.state import ScenarioRuntime, StepStatus


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # step threads print concurrently
        self._lock = threading.Lock()

    def _out(self, text: str, *, err: bool = False) -> None:
        with self._lock:
            print(text, file=sys.stderr if err else sys.stdout, flush=True)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}\n{'-' * len(title)}")

    def print_run_started(self, scenario: str, source: str, step_count: int) -> None:
        """Print run start information."""
        self._out(f"\nRUN STARTED\nScenario: {scenario}\nFile: {source}\nSteps: {step_count}\n")

    def print_step_start(self, step_id: str) -> None:
        self._out(f"STEP STARTED: {step_id}")

    def print_step_log(self, step_id: str, line: str) -> None:
        self._out(f"[{step_id}] {line}")

    def print_step_finished(self, step_id: str, success: bool) -> None:
        self._out(f"STEP {'SUCCEEDED' if success else 'FAILED'}: {step_id}")

    def print_confirm_request(
        self,
        step_id: str,
        step_name: str,
        kind: str,
        phase: str,
        summary: Optional[str],
        message: Optional[str],
    ) -> None:
        """Print the context shown before asking for an approval."""
        lines = [f"\nCONFIRM ({phase}): {step_name} [{step_id}, {kind}]"]
        if message:
            lines.append(message)
        if summary:
            lines.extend(f"  {line}" for line in summary.splitlines())
        self._out("\n".join(lines))

    def print_confirm_answer(self, step_id: str, accepted: bool) -> None:
        self._out(f"CONFIRM {'ACCEPTED' if accepted else 'DECLINED'}: {step_id}")

    def print_plan_stage(self, index: int, step_ids: List[str], indent: int = 0) -> None:
        """Print one stage of the execution plan."""
        self._out(f"{'  ' * indent}stage {index}: {', '.join(step_ids)}")

    def print_results(self, runtime: ScenarioRuntime) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for step in runtime.scenario.steps:
            state = runtime.steps_state[step.id]
            status = state.status.value.upper()
            extra = []
            if state.duration is not None:
                extra.append(f"{state.duration:.1f}s")
            if state.status == StepStatus.FAILED and state.reason:
                extra.append(state.reason.split("\n")[0])
            suffix = f" ({'; '.join(extra)})" if extra else ""
            lines.append(f"  {step.id}: {status}{suffix}")
        if runtime.cancelled:
            lines.append("  (run cancelled)")
        self._out("\n".join(lines))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out("\n".join(lines), err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(exc)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
