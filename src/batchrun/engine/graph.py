from __future__ import annotations

from typing import Iterable, List, Set

from ..model import Step


class DependencyTracker:
    """
    Bookkeeping for one step list while it executes: which steps have been
    started, which succeeded and which failed.

    A step is ready once all of its dependencies succeeded; it is blocked
    once any dependency failed. Ready order is declaration order.
    """

    def __init__(self, steps: Iterable[Step]):
        self.steps: List[Step] = list(steps)
        self.started: Set[str] = set()
        self.succeeded: Set[str] = set()
        self.failed: Set[str] = set()

    def mark_started(self, step_id: str) -> None:
        self.started.add(step_id)

    def mark_succeeded(self, step_id: str) -> None:
        self.succeeded.add(step_id)

    def mark_failed(self, step_id: str) -> None:
        self.failed.add(step_id)

    def block_failed_dependents(self) -> List[Step]:
        """
        Fail every not-yet-started step with a failed dependency, transitively.

        Returns:
          The newly blocked steps, in the order they were blocked.
        """
        blocked: List[Step] = []
        changed = True
        while changed:
            changed = False
            for step in self.steps:
                if step.id in self.started:
                    continue
                if any(dep in self.failed for dep in step.depends_on):
                    self.started.add(step.id)
                    self.failed.add(step.id)
                    blocked.append(step)
                    changed = True
        return blocked

    def ready(self) -> List[Step]:
        return [
            s
            for s in self.steps
            if s.id not in self.started and all(dep in self.succeeded for dep in s.depends_on)
        ]

    def is_complete(self) -> bool:
        return len(self.succeeded) + len(self.failed) >= len(self.steps)
