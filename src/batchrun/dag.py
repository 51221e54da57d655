from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from .errors import ConfigurationError
from .model import LoopKind, Step


def build_dag(steps: List[Step], *, scope: str = "scenario") -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from Step objects of one step list.

    Requires:
      - step.id: str (unique within the list)
      - step.depends_on: ids of siblings that must succeed BEFORE this step

    Returns:
      adj:   dependency id -> ids of dependents
      indeg: step id -> number of dependencies
    """
    ids = [s.id for s in steps]
    for sid in ids:
        if not isinstance(sid, str) or not sid.strip():
            raise ConfigurationError(f"{scope}: step id must be a non-empty string")
        if "/" in sid:
            raise ConfigurationError(f"{scope}: step id '{sid}' must not contain '/'")
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ConfigurationError(f"{scope}: duplicate step ids found: {dupes}")

    id_set = set(ids)
    adj: Dict[str, Set[str]] = {i: set() for i in id_set}
    indeg: Dict[str, int] = {i: 0 for i in id_set}

    for step in steps:
        for dep in step.depends_on:
            if dep not in id_set:
                raise ConfigurationError(
                    f"{scope}: step '{step.id}' depends on missing step '{dep}'. "
                    f"Known steps: {sorted(id_set)}"
                )
            # Edge dep -> step.id (dep must succeed before step)
            if step.id not in adj[dep]:
                adj[dep].add(step.id)
                indeg[step.id] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int], *, scope: str = "scenario") -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Steps of one stage have no dependency on each other.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise ConfigurationError(f"{scope}: dependency cycle detected. Stuck steps: {remaining}")

    return levels


def plan_stages(steps: Iterable[Step], *, scope: str = "scenario") -> List[List[str]]:
    """Validate one step list and return its stages."""
    steps = list(steps)
    adj, indeg = build_dag(steps, scope=scope)
    return topo_levels(adj, indeg, scope=scope)


def validate_steps(steps: Iterable[Step], *, scope: str = "scenario") -> None:
    """
    Structural validation of a step list, recursing into loop bodies.

    Each loop body is validated against its own children only: a child may
    never depend on a step outside the loop.

    Raises:
      ConfigurationError: duplicate ids, missing dependencies or cycles.
    """
    steps = list(steps)
    plan_stages(steps, scope=scope)
    for step in steps:
        if isinstance(step.kind, LoopKind):
            validate_steps(step.kind.child_steps, scope=f"loop '{step.id}'")
