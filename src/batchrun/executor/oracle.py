from __future__ import annotations

import subprocess

from .. import settings
from ..errors import ProcessFailure, StepExecutionError
from .base import DbExecutor


class OracleCliExecutor(DbExecutor):
    """Runs SQL through a `sqlplus -S` process per call."""

    def __init__(self, dsn: str, user: str, password: str, *, binary: str | None = None):
        self.dsn = dsn
        self.user = user
        self._password = password
        self.binary = binary or settings.SQLPLUS_BIN

    def __repr__(self) -> str:
        return f"OracleCliExecutor(user={self.user!r}, dsn={self.dsn!r})"

    def build_script(self, sql: str) -> str:
        return f"SET HEADING OFF\nSET FEEDBACK OFF\n{sql}\n/\nEXIT\n"

    def execute_sql(self, sql: str) -> None:
        connect = f"{self.user}/{self._password}@{self.dsn}"
        try:
            proc = subprocess.run(
                [self.binary, "-S", connect],
                input=self.build_script(sql),
                text=True,
                capture_output=True,
            )
        except FileNotFoundError as e:
            raise StepExecutionError(f"{self.binary} not found. Install Oracle client tools or fix PATH.") from e

        if proc.returncode != 0:
            # never echo the connect string: it carries the password
            raise ProcessFailure(command=f"{self.binary} -S {self.user}@{self.dsn}", exit_code=proc.returncode)
