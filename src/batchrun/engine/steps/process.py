"""Spawning external processes and streaming their output as step logs."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from typing import IO, List, Mapping, Optional, Tuple

from ... import settings
from ...errors import ConfigurationError, StepCancelled, StepExecutionError
from ..cancel import CancelToken
from ..events import EventSink, log_step

logger = logging.getLogger(__name__)

_WAIT_POLL_SECONDS = 0.1
_READER_JOIN_SECONDS = 5.0


def decode_line(raw: bytes) -> str:
    """UTF-8 first, then the legacy encoding, then UTF-8 with replacement. Never raises."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        return raw.decode(settings.LEGACY_ENCODING)
    except (UnicodeDecodeError, LookupError):
        return raw.decode("utf-8", errors="replace")


def _forward(pipe: IO[bytes], emit: EventSink, step_id: str, tag: str) -> None:
    try:
        with pipe:
            for raw in iter(pipe.readline, b""):
                line = decode_line(raw.rstrip(b"\r\n"))
                log_step(emit, step_id, f"{tag}: {line}")
    except (OSError, ValueError) as e:
        log_step(emit, step_id, f"{tag} read error: {e}")


def resolve_run_as(user: str) -> Tuple[int, int]:
    """
    Look up uid/gid for `user` in the system account database.

    Raises:
      ConfigurationError: unknown user, or a platform without uid/gid switching.
    """
    if os.name != "posix":
        raise ConfigurationError(f"run_as is not supported on this platform ({os.name})")
    import pwd

    try:
        entry = pwd.getpwnam(user)
    except KeyError:
        raise ConfigurationError(f"unknown OS user for run_as: {user}") from None
    return entry.pw_uid, entry.pw_gid


def terminate_process(proc: subprocess.Popen) -> None:
    """SIGTERM the whole process group, SIGKILL it after the grace period."""
    if proc.poll() is not None:
        return
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            proc.wait(timeout=settings.KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
            proc.wait()
    else:
        proc.terminate()
        try:
            proc.wait(timeout=settings.KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


def run_process(
    argv: List[str],
    *,
    emit: EventSink,
    step_id: str,
    token: CancelToken,
    tag_prefix: str = "",
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    run_as: Optional[Tuple[int, int]] = None,
    display: Optional[str] = None,
) -> int:
    """
    Run `argv` to completion, streaming stdout/stderr as tagged StepLog lines.

    The child gets its own process group so that cancellation (user cancel or
    attempt timeout via `token`) can kill everything it spawned.

    Returns:
      The exit status.

    Raises:
      StepExecutionError: the process could not be started.
      StepCancelled: `token` was cancelled while the process was running.
    """
    display = display or argv[0]
    kwargs = {}
    if os.name == "posix":
        kwargs["start_new_session"] = True
        if run_as is not None:
            kwargs["user"], kwargs["group"] = run_as

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=full_env,
            cwd=cwd,
            **kwargs,
        )
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        raise StepExecutionError(f"failed to start {display}: {e}") from e

    logger.debug("step %s spawned pid %s: %s", step_id, proc.pid, display)
    readers = [
        threading.Thread(target=_forward, args=(proc.stdout, emit, step_id, f"{tag_prefix}STDOUT"), daemon=True),
        threading.Thread(target=_forward, args=(proc.stderr, emit, step_id, f"{tag_prefix}STDERR"), daemon=True),
    ]
    for t in readers:
        t.start()

    while True:
        try:
            returncode = proc.wait(timeout=_WAIT_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if token.is_cancelled():
                logger.info("step %s: killing pid %s (%s)", step_id, proc.pid, display)
                terminate_process(proc)
                for t in readers:
                    t.join(timeout=_READER_JOIN_SECONDS)
                raise StepCancelled(f"{display} was interrupted") from None

    for t in readers:
        t.join(timeout=_READER_JOIN_SECONDS)
    return returncode
