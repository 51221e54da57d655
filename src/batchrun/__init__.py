from .dsl import confirm, dummy, extract, loop, oracle, postgres, scenario, shell, sql, sql_file, sqlldr
from .engine import run_scenario
from .loader import load_scenario
from .model import Scenario, Step

__all__ = [
    "confirm",
    "dummy",
    "extract",
    "load_scenario",
    "loop",
    "oracle",
    "postgres",
    "run_scenario",
    "scenario",
    "shell",
    "sql",
    "sql_file",
    "sqlldr",
    "Scenario",
    "Step",
]
