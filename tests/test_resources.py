from contextlib import contextmanager

import pytest

from conftest import RecordingExecutor

from batchrun import dsl
from batchrun.engine.context import ExecutionContext
from batchrun.engine.resources import build_executor, prepare_engine_handles
from batchrun.errors import ConfigurationError, ResourceError
from batchrun.executor import DummyExecutor, OracleCliExecutor, PostgresExecutor
from batchrun.model import DbConnectionConfig, DbKind


def test_default_target_is_seeded():
    default = RecordingExecutor()
    handles = prepare_engine_handles(dsl.scenario("s"), default, ExecutionContext())
    assert handles.get_executor(None) is default
    assert handles.get_executor("default") is default
    with pytest.raises(ConfigurationError, match="undefined DB target: dw"):
        handles.get_executor("dw")


def test_declared_targets_are_built_with_expansion():
    sc = dsl.scenario(
        "s",
        db={
            "ora": dsl.oracle("${ORA_DSN}", user="scott", password="${ORA_PW}"),
            "scratch": dsl.dummy(),
        },
    )
    ctx = ExecutionContext({"ORA_DSN": "prod-db", "ORA_PW": "tiger"})
    handles = prepare_engine_handles(sc, DummyExecutor(), ctx)
    ora = handles.get_executor("ora")
    assert isinstance(ora, OracleCliExecutor)
    assert ora.dsn == "prod-db"
    assert "tiger" not in repr(ora)
    assert isinstance(handles.get_executor("scratch"), DummyExecutor)
    assert handles.targets() == ["default", "ora", "scratch"]


def test_oracle_requires_credentials():
    with pytest.raises(ConfigurationError):
        build_executor(DbConnectionConfig(DbKind.ORACLE, dsn="db"), ExecutionContext())


def test_postgres_requires_dsn():
    sc = dsl.scenario("s", db={"pg": DbConnectionConfig(DbKind.POSTGRES)})
    with pytest.raises(ResourceError, match="'pg'"):
        prepare_engine_handles(sc, DummyExecutor(), ExecutionContext())


def test_postgres_url_with_credential_override():
    executor = PostgresExecutor("postgresql://old@localhost:5432/batch", user="etl", password="pw")
    try:
        url = executor.engine.url
        assert url.drivername == "postgresql+psycopg2"
        assert url.username == "etl"
        assert url.database == "batch"
    finally:
        executor.close()


def test_close_only_disposes_owned_executors():
    default = RecordingExecutor()
    handles = prepare_engine_handles(dsl.scenario("s", db={"x": dsl.dummy()}), default, ExecutionContext())
    handles.close()
    assert default.closed is False


def test_oracle_script_terminates_batch():
    script = OracleCliExecutor("db", "u", "p").build_script("update t set x = 1;")
    assert script.startswith("SET HEADING OFF\nSET FEEDBACK OFF\n")
    assert script.endswith("update t set x = 1;\n/\nEXIT\n")


class _FakeConnection:
    def __init__(self, calls):
        self.calls = calls

    def exec_driver_sql(self, statement, parameters=None, execution_options=None):
        self.calls.append((statement, parameters, execution_options))


class _FakeEngine:
    def __init__(self):
        self.calls = []

    @contextmanager
    def begin(self):
        yield _FakeConnection(self.calls)


def test_postgres_sends_batch_without_parameters(monkeypatch):
    executor = PostgresExecutor("postgresql://etl@localhost:5432/batch")
    executor.close()
    fake = _FakeEngine()
    monkeypatch.setattr(executor, "_engine", fake)

    executor.execute_sql("delete from t where name like 'tmp%'")

    assert fake.calls == [("delete from t where name like 'tmp%'", None, {"no_parameters": True})]
