"""Loading scenarios from Python or JSON files, and dict conversion of the data model."""

from __future__ import annotations

import json
import runpy
from pathlib import Path
from typing import Any, Dict, List

from . import dsl
from .errors import ConfigurationError
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
)

DEFAULT_RETRY = 0
DEFAULT_TIMEOUT = 60

# Accepted "kind" tags; the first of each pair is what scenario_to_dict writes.
KIND_TAGS = {
    "sql": "sql",
    "sql_file": "sql_file",
    "sql_loader_par": "sql_loader",
    "sql_loader": "sql_loader",
    "shell": "shell",
    "extract_var_from_file": "extract_var",
    "extract_var": "extract_var",
    "loop": "loop",
}


# ----------------------------------------------------------------------
# Loading (local file)
# ----------------------------------------------------------------------

def load_scenario(path: str | Path) -> Scenario:
    """
    Load a scenario from a file path.

    A .py file must define either:
      - scenario() -> Scenario
      - SCENARIO = Scenario(...)
    A .json file holds the dict form read by scenario_from_dict().

    Raises:
      FileNotFoundError: no such file.
      ConfigurationError: unsupported file type or malformed content.
    """
    sc_path = Path(path).expanduser().resolve()
    if not sc_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {sc_path}")

    if sc_path.suffix == ".json":
        try:
            data = json.loads(sc_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{sc_path.name}: invalid JSON: {e}") from e
        return scenario_from_dict(data)

    if sc_path.suffix != ".py":
        raise ConfigurationError(f"Scenario must be a .py or .json file, got: {sc_path.name}")

    module_name = f"batchrun_scenario_{sc_path.stem}"
    globals_dict = runpy.run_path(str(sc_path), run_name=module_name)

    result = None
    factory = globals_dict.get("scenario")
    if "SCENARIO" in globals_dict:
        result = globals_dict["SCENARIO"]
    elif callable(factory) and factory is not dsl.scenario:
        result = factory()
    elif factory is dsl.scenario:
        raise ConfigurationError(
            "scenario is the imported helper, not your factory. "
            "Define SCENARIO = scenario(...) or rename the import: "
            "`from batchrun import dsl` then `def scenario(): return dsl.scenario(...)`"
        )

    if not isinstance(result, Scenario):
        raise ConfigurationError(
            f"{sc_path.name} must define scenario() -> Scenario or SCENARIO = Scenario(...)"
        )
    return result


# ----------------------------------------------------------------------
# dict -> model
# ----------------------------------------------------------------------

def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(f"{where}: missing required field '{key}'")
    return data[key]


def policy_from_value(value: Any) -> ShellErrorPolicy:
    """
    Shell error policy from "fail" | "ignore" | "retry" or
    {"type": "retry", "max_retries": n, "delay_secs": s}.
    """
    if value is None:
        return FailPolicy()
    if isinstance(value, str):
        policy_type, options = value, {}
    elif isinstance(value, dict):
        policy_type, options = value.get("type"), value
    else:
        raise ConfigurationError(f"invalid shell error policy: {value!r}")

    if policy_type == "fail":
        return FailPolicy()
    if policy_type == "ignore":
        return IgnorePolicy()
    if policy_type == "retry":
        return RetryPolicy(
            max_retries=int(options.get("max_retries", 3)),
            delay_seconds=float(options.get("delay_secs", 5)),
        )
    raise ConfigurationError(f"unknown shell error policy: {policy_type!r}")


def _confirm_from_dict(data: Dict[str, Any] | None) -> ConfirmConfig | None:
    if data is None:
        return None
    try:
        default = ConfirmDefault(data.get("default_answer", "yes"))
    except ValueError as e:
        raise ConfigurationError(f"invalid confirm default_answer: {data.get('default_answer')!r}") from e
    return ConfirmConfig(
        before=bool(data.get("before", False)),
        after=bool(data.get("after", False)),
        message_before=data.get("message_before"),
        message_after=data.get("message_after"),
        default_answer=default,
    )


def _kind_from_dict(data: Dict[str, Any], where: str):
    tag = KIND_TAGS.get(_require(data, "kind", where))
    if tag is None:
        raise ConfigurationError(f"{where}: unknown step kind {data['kind']!r}")

    if tag == "sql":
        return SqlKind(sql=_require(data, "sql", where), target_db=data.get("target_db"))
    if tag == "sql_file":
        return SqlFileKind(path=str(_require(data, "sql_file", where)), target_db=data.get("target_db"))
    if tag == "sql_loader":
        cfg = _require(data, "sqlldr", where)
        return SqlLoaderKind(
            control_file=str(_require(cfg, "control_file", where)),
            data_file=cfg.get("data_file"),
            log_file=cfg.get("log_file"),
            bad_file=cfg.get("bad_file"),
            discard_file=cfg.get("discard_file"),
            conn=cfg.get("conn"),
        )
    if tag == "shell":
        cfg = _require(data, "shell", where)
        script = cfg.get("script", cfg.get("command"))
        if script is None:
            raise ConfigurationError(f"{where}: missing required field 'script'")
        return ShellKind(
            script=script,
            program=cfg.get("shell_program"),
            args=list(cfg.get("shell_args", [])),
            env={k: str(v) for k, v in cfg.get("env", {}).items()},
            working_dir=cfg.get("working_dir"),
            run_as=cfg.get("run_as"),
            error_policy=policy_from_value(cfg.get("error_policy")),
        )
    if tag == "extract_var":
        cfg = _require(data, "extract", where)
        return ExtractVarKind(
            file_path=_require(cfg, "file_path", where),
            line_number=int(_require(cfg, "line", where)),
            pattern=_require(cfg, "pattern", where),
            capture_group=int(_require(cfg, "group", where)),
            var_name=_require(cfg, "var_name", where),
        )
    cfg = _require(data, "loop", where)
    try:
        policy = IterationFailurePolicy(cfg.get("on_iteration_failure", "stop_all"))
    except ValueError as e:
        raise ConfigurationError(f"{where}: invalid on_iteration_failure {cfg.get('on_iteration_failure')!r}") from e
    return LoopKind(
        glob_pattern=_require(cfg, "for_each_glob", where),
        loop_var=_require(cfg, "as_var", where),
        child_steps=[step_from_dict(s) for s in cfg.get("steps", [])],
        iteration_failure_policy=policy,
    )


def step_from_dict(data: Dict[str, Any]) -> Step:
    if not isinstance(data, dict):
        raise ConfigurationError(f"step must be a mapping, got {type(data).__name__}")
    step_id = _require(data, "id", "step")
    where = f"step '{step_id}'"
    return Step(
        id=step_id,
        name=data.get("name") or step_id,
        kind=_kind_from_dict(data, where),
        depends_on=list(data.get("depends_on", [])),
        allow_parallel=bool(data.get("allow_parallel", False)),
        retry=int(data.get("retry", DEFAULT_RETRY)),
        timeout_seconds=int(data.get("timeout_sec", DEFAULT_TIMEOUT)),
        confirm=_confirm_from_dict(data.get("confirm")),
    )


def scenario_from_dict(data: Dict[str, Any]) -> Scenario:
    """
    Convert a scenario dictionary to a Scenario model.
    This is the reverse of scenario_to_dict().
    """
    if not isinstance(data, dict):
        raise ConfigurationError("scenario must be a mapping")
    db: Dict[str, DbConnectionConfig] = {}
    for key, cfg in (data.get("db") or {}).items():
        try:
            kind = DbKind(_require(cfg, "kind", f"db '{key}'"))
        except ValueError as e:
            raise ConfigurationError(f"db '{key}': unknown kind {cfg.get('kind')!r}") from e
        db[key] = DbConnectionConfig(kind, dsn=cfg.get("dsn"), user=cfg.get("user"), password=cfg.get("password"))

    return Scenario(
        name=_require(data, "name", "scenario"),
        steps=[step_from_dict(s) for s in _require(data, "steps", "scenario")],
        db_connections=db,
    )


# ----------------------------------------------------------------------
# model -> dict
# ----------------------------------------------------------------------

def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def policy_to_value(policy: ShellErrorPolicy) -> Any:
    if isinstance(policy, IgnorePolicy):
        return "ignore"
    if isinstance(policy, RetryPolicy):
        return {"type": "retry", "max_retries": policy.max_retries, "delay_secs": policy.delay_seconds}
    return "fail"


def step_to_dict(step: Step) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": step.id, "name": step.name}
    kind = step.kind
    if isinstance(kind, SqlKind):
        out.update(_drop_none({"kind": "sql", "sql": kind.sql, "target_db": kind.target_db}))
    elif isinstance(kind, SqlFileKind):
        out.update(_drop_none({"kind": "sql_file", "sql_file": kind.path, "target_db": kind.target_db}))
    elif isinstance(kind, SqlLoaderKind):
        out["kind"] = "sql_loader_par"
        out["sqlldr"] = _drop_none({
            "control_file": kind.control_file,
            "data_file": kind.data_file,
            "log_file": kind.log_file,
            "bad_file": kind.bad_file,
            "discard_file": kind.discard_file,
            "conn": kind.conn,
        })
    elif isinstance(kind, ShellKind):
        out["kind"] = "shell"
        out["shell"] = _drop_none({
            "script": kind.script,
            "shell_program": kind.program,
            "shell_args": list(kind.args),
            "env": dict(kind.env),
            "working_dir": kind.working_dir,
            "run_as": kind.run_as,
            "error_policy": policy_to_value(kind.error_policy),
        })
    elif isinstance(kind, ExtractVarKind):
        out["kind"] = "extract_var_from_file"
        out["extract"] = {
            "file_path": kind.file_path,
            "line": kind.line_number,
            "pattern": kind.pattern,
            "group": kind.capture_group,
            "var_name": kind.var_name,
        }
    elif isinstance(kind, LoopKind):
        out["kind"] = "loop"
        out["loop"] = {
            "for_each_glob": kind.glob_pattern,
            "as_var": kind.loop_var,
            "on_iteration_failure": kind.iteration_failure_policy.value,
            "steps": [step_to_dict(s) for s in kind.child_steps],
        }

    out["depends_on"] = list(step.depends_on)
    out["allow_parallel"] = step.allow_parallel
    out["retry"] = step.retry
    out["timeout_sec"] = step.timeout_seconds
    if step.confirm is not None:
        c = step.confirm
        out["confirm"] = _drop_none({
            "before": c.before,
            "after": c.after,
            "message_before": c.message_before,
            "message_after": c.message_after,
            "default_answer": c.default_answer.value,
        })
    return out


def scenario_to_dict(scenario: Scenario) -> Dict[str, Any]:
    """Convert a Scenario to the plain-dict form accepted by scenario_from_dict()."""
    db = {
        key: _drop_none({"kind": cfg.kind.value, "dsn": cfg.dsn, "user": cfg.user, "password": cfg.password})
        for key, cfg in scenario.db_connections.items()
    }
    steps: List[Dict[str, Any]] = [step_to_dict(s) for s in scenario.steps]
    return {"name": scenario.name, "db": db, "steps": steps}
