import pytest

from batchrun import dsl
from batchrun.dag import plan_stages, validate_steps
from batchrun.errors import ConfigurationError


def test_plan_stages_orders_by_dependencies():
    steps = [
        dsl.sql("a", "select 1"),
        dsl.sql("b", "select 2", needs=["a"]),
        dsl.sql("c", "select 3", needs=["a"]),
        dsl.sql("d", "select 4", needs=["b", "c"]),
    ]
    assert plan_stages(steps) == [["a"], ["b", "c"], ["d"]]


def test_duplicate_ids_rejected():
    with pytest.raises(ConfigurationError, match="duplicate"):
        validate_steps([dsl.sql("a", "x"), dsl.sql("a", "y")])


def test_missing_dependency_rejected():
    with pytest.raises(ConfigurationError, match="missing step 'ghost'"):
        validate_steps([dsl.sql("a", "x", needs=["ghost"])])


def test_cycle_rejected():
    with pytest.raises(ConfigurationError):
        validate_steps([dsl.sql("a", "x", needs=["b"]), dsl.sql("b", "y", needs=["a"])])


def test_loop_children_cannot_reference_outer_steps():
    steps = [
        dsl.sql("prep", "x"),
        dsl.loop("each", "/tmp/*.csv", "FILE", dsl.shell("child", "true", needs=["prep"])),
    ]
    with pytest.raises(ConfigurationError, match="loop 'each'"):
        validate_steps(steps)


def test_slash_in_step_id_rejected():
    with pytest.raises(ConfigurationError, match="must not contain '/'"):
        validate_steps([dsl.sql("etl", "x"), dsl.shell("etl/load", "exit 3", needs=["etl"])])


def test_slash_in_loop_child_id_rejected():
    steps = [dsl.loop("each", "/tmp/*.csv", "FILE", dsl.shell("a/b", "true"))]
    with pytest.raises(ConfigurationError, match="loop 'each'"):
        validate_steps(steps)
