from __future__ import annotations

import os

from ...errors import ProcessFailure, StepCancelled
from ...model import IgnorePolicy, RetryPolicy, ShellKind
from ..cancel import CancelToken
from ..context import ExecutionContext
from ..events import EventSink, log_step
from .process import resolve_run_as, run_process


def default_shell() -> tuple[str, str]:
    if os.name == "nt":
        return "cmd", "/C"
    return "sh", "-c"


def _first_line(script: str) -> str:
    line = script.strip().splitlines()[0] if script.strip() else ""
    return line if len(line) <= 80 else line[:77] + "..."


def run_shell(
    kind: ShellKind,
    *,
    context: ExecutionContext,
    emit: EventSink,
    step_id: str,
    token: CancelToken,
) -> None:
    """
    Run a shell step and apply its error policy to a non-zero exit.

    Retry policy re-spawns the process up to max_retries + 1 times in total,
    independently of the step-level retry budget that wraps this call.
    """
    default_program, flag = default_shell()
    program = kind.program or default_program
    script = context.expand_required(kind.script, "shell.script")
    args = [context.expand_required(a, "shell.arg") for a in kind.args]
    env = {k: context.expand_required(v, "shell.env") for k, v in kind.env.items()}
    working_dir = context.expand_optional(kind.working_dir, "shell.working_dir")
    run_as = resolve_run_as(kind.run_as) if kind.run_as else None

    argv = [program, flag, script, *args]
    policy = kind.error_policy
    attempt = 0
    while True:
        attempt += 1
        returncode = run_process(
            argv,
            emit=emit,
            step_id=step_id,
            token=token,
            env=env,
            cwd=working_dir,
            run_as=run_as,
            display=program,
        )
        if returncode == 0:
            return

        if isinstance(policy, IgnorePolicy):
            log_step(emit, step_id, f"exit status {returncode} ignored by error policy")
            return

        if isinstance(policy, RetryPolicy):
            total = policy.max_retries + 1
            if attempt >= total:
                log_step(emit, step_id, f"shell retry limit reached ({attempt}/{total})")
                raise ProcessFailure(command=_first_line(script), exit_code=returncode)
            log_step(
                emit,
                step_id,
                f"exit status {returncode}, retrying in {policy.delay_seconds}s ({attempt}/{total})",
            )
            if token.wait(policy.delay_seconds):
                raise StepCancelled("shell retry interrupted")
            continue

        raise ProcessFailure(command=_first_line(script), exit_code=returncode)
