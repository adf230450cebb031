"""Dependency graph checks and topological ordering for tasks.

Tasks may list the ids of tasks they depend on. Before work is published or
executed in order, the graph must reference only known tasks, contain no
self references, and be acyclic. Ordering uses Kahn's algorithm with ready
tasks released in declaration order, so identical input always yields the
identical sequence.

Both entry points are pure: they accept Task records, or any object or
mapping exposing ``id`` and ``dependencies``.
"""

import heapq
import logging
from collections import defaultdict
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class DependencyError(Exception):
    """Base class for task dependency graph errors."""
    pass


class SelfReference(DependencyError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} depends on itself")


class InvalidReference(DependencyError):
    def __init__(self, task_id: str, missing_id: str):
        self.task_id = task_id
        self.missing_id = missing_id
        super().__init__(f"Task {task_id} depends on unknown task {missing_id}")


class DuplicateTaskId(DependencyError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task id {task_id} appears more than once")


class CycleDetected(DependencyError):
    """The graph has a cycle. ``nodes`` lists one concrete cycle."""

    def __init__(self, nodes: list[str]):
        self.nodes = nodes
        super().__init__(f"Dependency cycle detected among tasks: {', '.join(nodes)}")


def _field(task: Any, name: str):
    if isinstance(task, dict):
        return task.get(name)
    return getattr(task, name, None)


def _read_graph(tasks: Iterable[Any]) -> tuple[list[str], dict[str, list[str]]]:
    """Return (ids in declaration order, id -> deduplicated dependency ids)."""
    order: list[str] = []
    deps: dict[str, list[str]] = {}

    for task in tasks:
        task_id = _field(task, "id")
        if task_id in deps:
            raise DuplicateTaskId(task_id)
        order.append(task_id)
        deps[task_id] = list(dict.fromkeys(_field(task, "dependencies") or []))

    for task_id in order:
        for dep in deps[task_id]:
            if dep == task_id:
                raise SelfReference(task_id)
            if dep not in deps:
                raise InvalidReference(task_id, dep)

    return order, deps


def _find_cycle(remaining: list[str], deps: dict[str, list[str]]) -> list[str]:
    """Follow unresolved dependency edges until a node repeats."""
    pending = set(remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    node = remaining[0]

    # Every unvisited node still waits on at least one unvisited dependency,
    # so this walk always closes a loop.
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = next(d for d in deps[node] if d in pending)

    cycle = set(path[seen[node]:])
    return [n for n in remaining if n in cycle]


def _kahn(tasks: Iterable[Any]) -> list[str]:
    order, deps = _read_graph(tasks)
    position = {task_id: i for i, task_id in enumerate(order)}

    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree = {task_id: len(deps[task_id]) for task_id in order}
    for task_id in order:
        for dep in deps[task_id]:
            dependents[dep].append(task_id)

    ready = [position[t] for t in order if in_degree[t] == 0]
    heapq.heapify(ready)
    result: list[str] = []

    while ready:
        node = order[heapq.heappop(ready)]
        result.append(node)
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(result) != len(order):
        visited = set(result)
        remaining = [t for t in order if t not in visited]
        cycle = _find_cycle(remaining, deps)
        logger.debug(f"Unresolvable tasks: {remaining}; cycle: {cycle}")
        raise CycleDetected(cycle)

    return result


def validate_acyclic(tasks: Iterable[Any]) -> None:
    """
    Check a task collection's dependency graph.

    Raises:
        DuplicateTaskId: an id is declared twice
        SelfReference: a task lists itself as a dependency
        InvalidReference: a dependency id is not in the collection
        CycleDetected: the dependencies form a cycle
    """
    _kahn(tasks)


def topological_order(tasks: Iterable[Any]) -> list[str]:
    """
    Task ids ordered so every dependency precedes its dependents.

    Among tasks that are ready at the same time, the one declared first
    comes first.

    Raises:
        DependencyError: see validate_acyclic
    """
    return _kahn(tasks)
