from batchrun import dsl
from batchrun.engine.events import RequestConfirm, StepStarted, ConfirmPhase
from batchrun.engine.state import ScenarioRuntime, StepRuntimeState, StepStatus
from batchrun.model import ConfirmDefault


def test_child_logs_fold_into_loop_state():
    sc = dsl.scenario("s", dsl.loop("each", "*.csv", "F", dsl.sql("c", "x")))
    runtime = ScenarioRuntime(sc)
    runtime.record_log("each", "iteration 1/1")
    runtime.record_log("each/c", "attempt 1/1")
    assert list(runtime.steps_state["each"].logs) == ["iteration 1/1", "[each/c] attempt 1/1"]


def test_status_transitions():
    runtime = ScenarioRuntime(dsl.scenario("s", dsl.sql("a", "x"), dsl.sql("b", "y")))
    runtime.mark_started("a")
    runtime.mark_failed("a", "boom")
    assert runtime.steps_state["a"].status == StepStatus.FAILED
    assert runtime.steps_state["a"].reason == "boom"
    assert runtime.results() == {"a": "failed", "b": "pending"}
    assert runtime.failed


def test_events_serialize_with_type_tag():
    assert '"type":"step_started"' in StepStarted(step_id="a").model_dump_json()
    request = RequestConfirm(
        request_id=1,
        step_id="a",
        step_name="A",
        step_kind="sql",
        default_answer=ConfirmDefault.NO,
        phase=ConfirmPhase.BEFORE,
    )
    data = request.model_dump(mode="json")
    assert data["default_answer"] == "no"
    assert data["phase"] == "before"


def test_exact_id_wins_over_loop_folding():
    runtime = ScenarioRuntime(dsl.scenario("s", dsl.sql("etl", "x")))
    runtime.steps_state["etl/load"] = StepRuntimeState()
    runtime.mark_started("etl/load")
    runtime.mark_failed("etl/load", "exit status 3")
    runtime.record_log("etl/load", "boom")
    assert runtime.steps_state["etl"].status == StepStatus.PENDING
    assert list(runtime.steps_state["etl"].logs) == []
    assert runtime.steps_state["etl/load"].status == StepStatus.FAILED
    assert list(runtime.steps_state["etl/load"].logs) == ["boom"]
