import json
import threading

from click.testing import CliRunner

from batchrun import cli as cli_module
from batchrun.cli import EventPrinter, cli
from batchrun.engine import ConfirmBridge, RequestConfirm
from batchrun.engine.events import ConfirmPhase
from batchrun.model import ConfirmDefault
from batchrun.ui.console import Console


def _write(tmp_path, steps, name="cli"):
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"name": name, "steps": steps}))
    return str(path)


def test_check_valid(tmp_path):
    path = _write(tmp_path, [{"id": "a", "kind": "sql", "sql": "select 1"}])
    result = CliRunner().invoke(cli, ["check", path])
    assert result.exit_code == 0
    assert "OK: cli (1 steps" in result.output


def test_check_reports_cycle(tmp_path):
    path = _write(tmp_path, [
        {"id": "a", "kind": "sql", "sql": "x", "depends_on": ["b"]},
        {"id": "b", "kind": "sql", "sql": "y", "depends_on": ["a"]},
    ])
    result = CliRunner().invoke(cli, ["check", path])
    assert result.exit_code == 1


def test_plan_prints_stages(tmp_path):
    path = _write(tmp_path, [
        {"id": "a", "kind": "sql", "sql": "x"},
        {"id": "b", "kind": "sql", "sql": "y", "depends_on": ["a"]},
    ])
    result = CliRunner().invoke(cli, ["plan", path])
    assert result.exit_code == 0
    assert "stage 1: a" in result.output
    assert "stage 2: b" in result.output


def test_run_success_with_vars(tmp_path):
    path = _write(tmp_path, [{"id": "hello", "kind": "shell", "shell": {"script": "echo hi ${WHO}"}}])
    result = CliRunner().invoke(cli, ["run", path, "--confirm", "default", "--var", "WHO=team"])
    assert result.exit_code == 0, result.output
    assert "[hello] STDOUT: hi team" in result.output
    assert "hello: SUCCESS" in result.output


def test_run_failure_exit_code(tmp_path):
    path = _write(tmp_path, [{"id": "bad", "kind": "shell", "shell": {"script": "exit 4"}}])
    result = CliRunner().invoke(cli, ["run", path, "--confirm", "default"])
    assert result.exit_code == 1
    assert "bad: FAILED" in result.output


def test_run_auto_no_declines_confirm(tmp_path):
    path = _write(tmp_path, [
        {"id": "gate", "kind": "shell", "shell": {"script": "echo x"}, "confirm": {"before": True}},
    ])
    result = CliRunner().invoke(cli, ["run", path, "--confirm", "no"])
    assert result.exit_code == 1
    assert "declined at confirmation (before)" in result.output


def test_run_json_lines(tmp_path):
    path = _write(tmp_path, [{"id": "a", "kind": "sql", "sql": "select 1"}])
    result = CliRunner().invoke(cli, ["run", path, "--json", "--confirm", "default"])
    assert result.exit_code == 0
    types = [json.loads(line)["type"] for line in result.output.splitlines() if line.startswith("{")]
    assert types[0] == "step_started"
    assert types[-1] == "scenario_finished"


def test_run_bad_var_syntax(tmp_path):
    path = _write(tmp_path, [{"id": "a", "kind": "sql", "sql": "select 1"}])
    result = CliRunner().invoke(cli, ["run", path, "--var", "NOEQUALS"])
    assert result.exit_code == 2


def test_json_mode_prompts_on_stderr(monkeypatch, capsys):
    bridge = ConfirmBridge()
    request_id, answer = bridge.register()
    printer = EventPrinter(Console(), as_json=True, mode="ask", bridge=bridge)
    done = threading.Event()
    prompts = []

    def fake_confirm(text, default=False, err=False):
        prompts.append((text, err))
        done.set()
        return True

    monkeypatch.setattr(cli_module.click, "confirm", fake_confirm)
    printer(RequestConfirm(
        request_id=request_id,
        step_id="gate",
        step_name="Gate",
        step_kind="sql",
        default_answer=ConfirmDefault.NO,
        phase=ConfirmPhase.BEFORE,
    ))
    printer.answer_prompts(done)

    assert prompts == [("Proceed with 'Gate' (before)?", True)]
    assert answer.result(timeout=1) is True
    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line)["type"] for line in lines] == ["request_confirm"]
