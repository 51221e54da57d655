from batchrun import dsl
from batchrun.engine import run_scenario
from batchrun.engine.events import StepStarted


def _inputs(tmp_path, *names):
    for name in names:
        (tmp_path / name).write_text(name)
    return str(tmp_path / "*.csv")


def test_empty_glob_is_success(recorder, executor, tmp_path):
    sc = dsl.scenario("empty", dsl.loop("each", str(tmp_path / "*.none"), "FILE", dsl.sql("load", "copy ${FILE}")))
    runtime = run_scenario(sc, executor, recorder)
    assert runtime.results() == {"each": "success"}
    assert executor.statements == []
    assert any("no files match" in line for line in recorder.logs("each"))


def test_iterates_sorted_matches_with_child_dependencies(recorder, executor, tmp_path):
    pattern = _inputs(tmp_path, "b.csv", "a.csv")
    sc = dsl.scenario(
        "loop",
        dsl.loop(
            "each",
            pattern,
            "FILE",
            dsl.sql("load", "copy ${FILE}"),
            dsl.sql("mark", "mark ${FILE}", needs=["load"]),
        ),
    )
    runtime = run_scenario(sc, executor, recorder)

    assert runtime.results() == {"each": "success"}
    a, b = str(tmp_path / "a.csv"), str(tmp_path / "b.csv")
    assert executor.statements == [f"copy {a}", f"mark {a}", f"copy {b}", f"mark {b}"]
    assert recorder.started().count("each/load") == 2
    # child logs fold into the loop's buffer
    assert any(line.startswith("[each/load]") for line in runtime.steps_state["each"].logs)


def test_stop_all_fails_loop_on_first_failed_iteration(recorder, tmp_path):
    from conftest import RecordingExecutor

    executor = RecordingExecutor(fail_on="a.csv")
    pattern = _inputs(tmp_path, "a.csv", "b.csv")
    sc = dsl.scenario("stop", dsl.loop("each", pattern, "FILE", dsl.sql("load", "copy ${FILE}")))
    runtime = run_scenario(sc, executor, recorder)

    assert runtime.results() == {"each": "failed"}
    assert "a.csv" in runtime.steps_state["each"].reason
    assert executor.statements == [f"copy {tmp_path / 'a.csv'}"]


def test_continue_policy_processes_remaining_files(recorder, tmp_path):
    from conftest import RecordingExecutor

    executor = RecordingExecutor(fail_on="a.csv")
    pattern = _inputs(tmp_path, "a.csv", "b.csv")
    sc = dsl.scenario(
        "continue",
        dsl.loop("each", pattern, "FILE", dsl.sql("load", "copy ${FILE}"), continue_on_failure=True),
    )
    runtime = run_scenario(sc, executor, recorder)

    assert runtime.results() == {"each": "success"}
    assert len(executor.statements) == 2
    assert any("1 of 2 iterations failed" in line for line in recorder.logs("each"))


def test_loop_child_events_use_scoped_ids(recorder, executor, tmp_path):
    pattern = _inputs(tmp_path, "only.csv")
    sc = dsl.scenario("scoped", dsl.loop("each", pattern, "FILE", dsl.shell("echo", "echo ${FILE}")))
    run_scenario(sc, executor, recorder)
    ids = [e.step_id for e in recorder.of_type(StepStarted)]
    assert ids == ["each", "each/echo"]
    assert f"STDOUT: {tmp_path / 'only.csv'}" in recorder.logs("each/echo")
