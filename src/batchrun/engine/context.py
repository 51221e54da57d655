"""
Shared variable store for one scenario run.

Steps communicate only through this object: ExtractVar and Loop write
variables, every other kind reads them through ${VAR} placeholder expansion.
Readers may run concurrently; writers take exclusive access.
"""

from __future__ import annotations

import os
import re
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional

from ..errors import ExpansionError

# Upper-case names only, so lower-case shell variables such as ${f} in scripts pass through untouched.
PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


class _ReadWriteLock:
    """Many readers or one writer. Writers are preferred once waiting."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ExecutionContext:
    """Lock-guarded key/value store of string variables with ${VAR} expansion."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._vars: Dict[str, str] = {k: str(v) for k, v in (initial or {}).items()}
        self._lock = _ReadWriteLock()

    def set(self, key: str, value: str) -> None:
        with self._lock.write():
            self._vars[key] = str(value)

    def get(self, key: str) -> Optional[str]:
        with self._lock.read():
            return self._vars.get(key)

    def get_or_env(self, key: str) -> Optional[str]:
        """Context value first, then the process environment."""
        value = self.get(key)
        if value is not None:
            return value
        return os.environ.get(key)

    def snapshot(self) -> Dict[str, str]:
        with self._lock.read():
            return dict(self._vars)

    def expand(self, template: str) -> str:
        """
        Replace every ${NAME} in `template` using context-then-environment lookup.

        Raises:
          ExpansionError: a placeholder is still present after substitution.
          Partial substitution is never returned.
        """
        with self._lock.read():
            def _sub(m: re.Match) -> str:
                key = m.group(1)
                if key in self._vars:
                    return self._vars[key]
                env_val = os.environ.get(key)
                if env_val is not None:
                    return env_val
                return m.group(0)

            result = PLACEHOLDER.sub(_sub, template)

        if PLACEHOLDER.search(result):
            raise ExpansionError(template)
        return result

    def expand_required(self, template: str, field: str) -> str:
        """expand() with the field name attached to the error."""
        try:
            return self.expand(template)
        except ExpansionError as e:
            raise ExpansionError(e.template, field=field) from None

    def expand_optional(self, template: Optional[str], field: str) -> Optional[str]:
        if template is None:
            return None
        return self.expand_required(template, field)

    def __repr__(self) -> str:
        return f"ExecutionContext(keys={sorted(self.snapshot())})"
