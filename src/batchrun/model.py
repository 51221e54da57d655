# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


class DbKind(str, Enum):
    DUMMY = "dummy"
    POSTGRES = "postgres"
    ORACLE = "oracle"


class ConfirmDefault(str, Enum):
    YES = "yes"
    NO = "no"


class IterationFailurePolicy(str, Enum):
    STOP_ALL = "stop_all"
    CONTINUE = "continue"


@dataclass(frozen=True)
class DbConnectionConfig:
    """A named DB target declared by the scenario. Values may hold ${VAR} placeholders."""
    kind: DbKind
    dsn: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class ConfirmConfig:
    """Human approval gates around a step."""
    before: bool = False
    after: bool = False
    message_before: Optional[str] = None
    message_after: Optional[str] = None
    default_answer: ConfirmDefault = ConfirmDefault.YES


# ----------------------------------------------------------------------
# Shell error policies
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class FailPolicy:
    """Non-zero exit fails the step."""


@dataclass(frozen=True)
class IgnorePolicy:
    """Non-zero exit is logged and treated as success."""


@dataclass(frozen=True)
class RetryPolicy:
    """Re-spawn the process up to max_retries + 1 times, sleeping delay_seconds in between."""
    max_retries: int = 3
    delay_seconds: float = 5


ShellErrorPolicy = Union[FailPolicy, IgnorePolicy, RetryPolicy]


# ----------------------------------------------------------------------
# Step kinds
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SqlKind:
    sql: str
    target_db: Optional[str] = None


@dataclass(frozen=True)
class SqlFileKind:
    path: str
    target_db: Optional[str] = None


@dataclass(frozen=True)
class SqlLoaderKind:
    control_file: str
    data_file: Optional[str] = None
    log_file: Optional[str] = None
    bad_file: Optional[str] = None
    discard_file: Optional[str] = None
    conn: Optional[str] = None


@dataclass(frozen=True)
class ShellKind:
    script: str
    program: Optional[str] = None
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    working_dir: Optional[str] = None
    run_as: Optional[str] = None
    error_policy: ShellErrorPolicy = field(default_factory=FailPolicy)


@dataclass(frozen=True)
class ExtractVarKind:
    file_path: str
    line_number: int
    pattern: str
    capture_group: int
    var_name: str


@dataclass(frozen=True)
class LoopKind:
    glob_pattern: str
    loop_var: str
    child_steps: List["Step"] = field(default_factory=list)
    iteration_failure_policy: IterationFailurePolicy = IterationFailurePolicy.STOP_ALL


StepKind = Union[SqlKind, SqlFileKind, SqlLoaderKind, ShellKind, ExtractVarKind, LoopKind]

KIND_LABELS = {
    SqlKind: "sql",
    SqlFileKind: "sql_file",
    SqlLoaderKind: "sql_loader",
    ShellKind: "shell",
    ExtractVarKind: "extract_var",
    LoopKind: "loop",
}


def kind_label(kind: StepKind) -> str:
    return KIND_LABELS.get(type(kind), type(kind).__name__)


# ----------------------------------------------------------------------
# Steps and scenarios
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """
    Smallest schedulable unit of work.

    `depends_on` holds ids of steps in the same list (the scenario, or the
    enclosing loop body). Loop bodies nest further Steps, forming a tree.
    """
    id: str
    name: str
    kind: StepKind
    depends_on: List[str] = field(default_factory=list)
    allow_parallel: bool = False
    retry: int = 0
    timeout_seconds: int = 60
    confirm: Optional[ConfirmConfig] = None

    @property
    def kind_label(self) -> str:
        return kind_label(self.kind)


@dataclass(frozen=True)
class Scenario:
    """A named dependency graph of steps plus the DB targets it may use."""
    name: str
    steps: List[Step] = field(default_factory=list)
    db_connections: Dict[str, DbConnectionConfig] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.steps)
