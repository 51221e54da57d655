import json
import textwrap

import pytest

from batchrun import dsl
from batchrun.errors import ConfigurationError
from batchrun.loader import load_scenario, policy_from_value, scenario_from_dict, scenario_to_dict
from batchrun.model import (
    ConfirmDefault,
    FailPolicy,
    IgnorePolicy,
    IterationFailurePolicy,
    LoopKind,
    RetryPolicy,
    ShellKind,
    SqlLoaderKind,
)

NIGHTLY = {
    "name": "nightly",
    "db": {"dw": {"kind": "postgres", "dsn": "postgresql://dw/batch", "user": "${DW_USER}"}},
    "steps": [
        {"id": "clean", "name": "Clean staging", "kind": "sql", "sql": "truncate stage", "target_db": "dw"},
        {
            "id": "load",
            "name": "Load files",
            "kind": "loop",
            "depends_on": ["clean"],
            "loop": {
                "for_each_glob": "/data/in/*.dat",
                "as_var": "FILE",
                "on_iteration_failure": "continue",
                "steps": [
                    {"id": "ldr", "name": "sqlldr", "kind": "sql_loader_par",
                     "sqlldr": {"control_file": "/ctl/stage.ctl", "data_file": "${FILE}"}},
                    {"id": "archive", "name": "archive", "kind": "shell", "depends_on": ["ldr"],
                     "shell": {"command": "mv ${FILE} /data/done/", "error_policy": {"type": "retry", "max_retries": 1}}},
                ],
            },
        },
        {"id": "notify", "name": "Notify", "kind": "shell", "depends_on": ["load"], "retry": 2, "timeout_sec": 30,
         "shell": {"script": "echo done"}, "confirm": {"before": True, "default_answer": "no"}},
    ],
}


def test_scenario_from_dict_applies_defaults():
    sc = scenario_from_dict(NIGHTLY)
    assert [s.id for s in sc.steps] == ["clean", "load", "notify"]
    clean, load, notify = sc.steps
    assert clean.retry == 0 and clean.timeout_seconds == 60 and clean.confirm is None
    assert clean.kind.target_db == "dw"

    assert isinstance(load.kind, LoopKind)
    assert load.kind.iteration_failure_policy == IterationFailurePolicy.CONTINUE
    ldr, archive = load.kind.child_steps
    assert isinstance(ldr.kind, SqlLoaderKind) and ldr.kind.data_file == "${FILE}"
    assert isinstance(archive.kind, ShellKind)
    assert archive.kind.script == "mv ${FILE} /data/done/"
    assert archive.kind.error_policy == RetryPolicy(max_retries=1, delay_seconds=5)

    assert notify.retry == 2 and notify.timeout_seconds == 30
    assert notify.confirm.before and notify.confirm.default_answer == ConfirmDefault.NO
    assert sc.db_connections["dw"].user == "${DW_USER}"


def test_dict_form_survives_conversion():
    sc = scenario_from_dict(NIGHTLY)
    assert scenario_from_dict(scenario_to_dict(sc)) == sc


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, FailPolicy()),
        ("fail", FailPolicy()),
        ("ignore", IgnorePolicy()),
        ("retry", RetryPolicy(3, 5)),
        ({"type": "retry", "max_retries": 2, "delay_secs": 1}, RetryPolicy(2, 1)),
    ],
)
def test_policy_values(value, expected):
    assert policy_from_value(value) == expected


def test_unknown_kind_rejected():
    with pytest.raises(ConfigurationError, match="unknown step kind"):
        scenario_from_dict({"name": "x", "steps": [{"id": "a", "kind": "ftp"}]})


def test_load_json(tmp_path):
    path = tmp_path / "nightly.json"
    path.write_text(json.dumps(NIGHTLY))
    assert load_scenario(path).name == "nightly"


def test_load_python_with_constant(tmp_path):
    path = tmp_path / "daily.py"
    path.write_text(textwrap.dedent("""
        from batchrun import scenario, sql, shell

        SCENARIO = scenario(
            "daily",
            sql("a", "select 1"),
            shell("b", "echo ok", needs=["a"]),
        )
    """))
    sc = load_scenario(path)
    assert sc.name == "daily"
    assert [s.id for s in sc.steps] == ["a", "b"]


def test_load_python_with_factory(tmp_path):
    path = tmp_path / "factory.py"
    path.write_text(textwrap.dedent("""
        from batchrun import dsl

        def scenario():
            return dsl.scenario("built", dsl.sql("a", "select 1"))
    """))
    assert load_scenario(path).name == "built"


def test_load_python_with_only_helper_import(tmp_path):
    path = tmp_path / "empty.py"
    path.write_text("from batchrun import scenario\n")
    with pytest.raises(ConfigurationError, match="imported helper"):
        load_scenario(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_scenario(tmp_path / "nope.py")


def test_dsl_rejects_unknown_policy():
    with pytest.raises(ValueError):
        dsl.shell("a", "true", on_error="sometimes")
