# src/batchrun/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Union

from .model import (
    ConfirmConfig,
    ConfirmDefault,
    DbConnectionConfig,
    DbKind,
    ExtractVarKind,
    FailPolicy,
    IgnorePolicy,
    IterationFailurePolicy,
    LoopKind,
    RetryPolicy,
    Scenario,
    ShellErrorPolicy,
    ShellKind,
    SqlFileKind,
    SqlKind,
    SqlLoaderKind,
    Step,
    StepKind,
)


# ---------------------------------------------------------------------
# Common step options
# ---------------------------------------------------------------------

def _step(
    id: str,
    kind: StepKind,
    *,
    name: Optional[str],
    needs: Optional[Iterable[str]],
    parallel: bool,
    retry: int,
    timeout: int,
    confirm: Optional[ConfirmConfig],
) -> Step:
    return Step(
        id=id,
        name=name or id,
        kind=kind,
        depends_on=list(needs or []),
        allow_parallel=parallel,
        retry=retry,
        timeout_seconds=timeout,
        confirm=confirm,
    )


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sql(
    id: str,
    statement: str,
    *,
    db: Optional[str] = None,
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    """Run an inline SQL batch against `db` (the "default" target if omitted)."""
    return _step(id, SqlKind(statement, db), name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


def sql_file(
    id: str,
    path: str,
    *,
    db: Optional[str] = None,
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    return _step(id, SqlFileKind(path, db), name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


def sqlldr(
    id: str,
    control_file: str,
    *,
    data_file: Optional[str] = None,
    log_file: Optional[str] = None,
    bad_file: Optional[str] = None,
    discard_file: Optional[str] = None,
    conn: Optional[str] = None,
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    """SQL*Loader run. Without `conn`, the SQLLDR_CONN variable is used at run time."""
    kind = SqlLoaderKind(
        control_file=control_file,
        data_file=data_file,
        log_file=log_file,
        bad_file=bad_file,
        discard_file=discard_file,
        conn=conn,
    )
    return _step(id, kind, name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


def shell(
    id: str,
    script: str,
    *,
    program: Optional[str] = None,
    args: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    run_as: Optional[str] = None,
    on_error: Union[str, ShellErrorPolicy] = "fail",
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    """
    Shell script step.

    `on_error` takes "fail", "ignore", "retry" or a policy object such as
    RetryPolicy(max_retries=2, delay_seconds=1).
    """
    kind = ShellKind(
        script=script,
        program=program,
        args=list(args or []),
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        working_dir=cwd,
        run_as=run_as,
        error_policy=error_policy(on_error),
    )
    return _step(id, kind, name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


def extract(
    id: str,
    file_path: str,
    *,
    line: int,
    pattern: str,
    var: str,
    group: int = 1,
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    kind = ExtractVarKind(file_path=file_path, line_number=line, pattern=pattern,
                          capture_group=group, var_name=var)
    return _step(id, kind, name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


def loop(
    id: str,
    glob_pattern: str,
    var: str,
    *steps: Step,
    continue_on_failure: bool = False,
    name: Optional[str] = None,
    needs: Optional[Iterable[str]] = None,
    parallel: bool = False,
    retry: int = 0,
    timeout: int = 60,
    confirm: Optional[ConfirmConfig] = None,
) -> Step:
    """
    Run `steps` once per file matching `glob_pattern`, with the path bound to `var`.

    Example:
        loop("load", "/data/in/*.csv", "FILE",
             sqlldr("ld", "/ctl/load.ctl", data_file="${FILE}"),
             shell("mv", "mv ${FILE} /data/done/", needs=["ld"]))
    """
    if not steps:
        raise ValueError(f"loop({id!r}) must have at least one step")
    policy = IterationFailurePolicy.CONTINUE if continue_on_failure else IterationFailurePolicy.STOP_ALL
    kind = LoopKind(glob_pattern=glob_pattern, loop_var=var, child_steps=list(steps),
                    iteration_failure_policy=policy)
    return _step(id, kind, name=name, needs=needs, parallel=parallel,
                 retry=retry, timeout=timeout, confirm=confirm)


# ---------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------

def error_policy(value: Union[str, ShellErrorPolicy]) -> ShellErrorPolicy:
    if isinstance(value, (FailPolicy, IgnorePolicy, RetryPolicy)):
        return value
    if value == "fail":
        return FailPolicy()
    if value == "ignore":
        return IgnorePolicy()
    if value == "retry":
        return RetryPolicy()
    raise ValueError(f"unknown shell error policy: {value!r}")


def confirm(
    *,
    before: bool = False,
    after: bool = False,
    message_before: Optional[str] = None,
    message_after: Optional[str] = None,
    default: str = "yes",
) -> ConfirmConfig:
    return ConfirmConfig(
        before=before,
        after=after,
        message_before=message_before,
        message_after=message_after,
        default_answer=ConfirmDefault(default),
    )


# ---------------------------------------------------------------------
# DB targets
# ---------------------------------------------------------------------

def postgres(dsn: str, *, user: Optional[str] = None, password: Optional[str] = None) -> DbConnectionConfig:
    return DbConnectionConfig(DbKind.POSTGRES, dsn=dsn, user=user, password=password)


def oracle(dsn: str, *, user: str, password: str) -> DbConnectionConfig:
    return DbConnectionConfig(DbKind.ORACLE, dsn=dsn, user=user, password=password)


def dummy() -> DbConnectionConfig:
    return DbConnectionConfig(DbKind.DUMMY)


# ---------------------------------------------------------------------
# Scenario helper (single-file story)
# ---------------------------------------------------------------------

def scenario(name: str, *steps: Step, db: Optional[Dict[str, DbConnectionConfig]] = None) -> Scenario:
    """
    Scenario definition helper.

    Users can write:
        from batchrun import scenario, sql, shell

        def build():
            return scenario("nightly", sql(...), shell(...))

        SCENARIO = build()
    """
    return Scenario(name=name, steps=list(steps), db_connections=dict(db or {}))
