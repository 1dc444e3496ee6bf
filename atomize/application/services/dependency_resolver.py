from __future__ import annotations

import heapq
import logging
from typing import Sequence, TypeVar, Union

from atomize.domain.errors import AtomizeError
from atomize.schemas import CalculatedTask, TaskDefinition

logger = logging.getLogger(__name__)

Task = TypeVar("Task", bound=Union[TaskDefinition, CalculatedTask])


def task_key(task: TaskDefinition | CalculatedTask) -> str | None:
    """Template id of a task, whether it is a definition or already calculated."""
    if isinstance(task, CalculatedTask):
        return task.template_id
    return task.id


def _adjacency(tasks: Sequence[TaskDefinition | CalculatedTask]) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for task in tasks:
        key = task_key(task)
        if key and key not in graph:
            graph[key] = list(task.depends_on)
    return graph


def detect_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """Every distinct cycle reachable in ``graph``, each listed from its entry node.

    Edges to nodes outside the graph are ignored.
    """
    visited: set[str] = set()
    on_stack: set[str] = set()
    reported: set[frozenset[str]] = set()
    cycles: list[list[str]] = []

    def visit(node: str, path: list[str]) -> None:
        if node in on_stack:
            cycle = path[path.index(node):]
            signature = frozenset(cycle)
            if signature not in reported:
                reported.add(signature)
                cycles.append(cycle)
            return
        if node in visited:
            return
        visited.add(node)
        on_stack.add(node)
        path.append(node)
        for dependency in graph.get(node, ()):
            if dependency in graph:
                visit(dependency, path)
        path.pop()
        on_stack.discard(node)

    for node in graph:
        if node not in visited:
            visit(node, [])
    return cycles


class DependencyResolver:
    """Orders tasks so that every task comes after the tasks it depends on."""

    def resolve_order(self, tasks: Sequence[Task]) -> list[Task]:
        index_of: dict[str, int] = {}
        for position, task in enumerate(tasks):
            key = task_key(task)
            if not key:
                if task.depends_on:
                    logger.warning("Task %r has dependencies but no id; its dependencies are ignored", task.title)
                continue
            if key in index_of:
                logger.warning("Duplicate task id %r; only the first task with it takes part in ordering", key)
                continue
            index_of[key] = position

        pending: dict[int, int] = {}
        dependents: dict[int, list[int]] = {i: [] for i in range(len(tasks))}
        for position, task in enumerate(tasks):
            key = task_key(task)
            if not key or index_of.get(key) != position:
                pending[position] = 0
                continue
            count = 0
            for dependency in task.depends_on:
                target = index_of.get(dependency)
                if target is None:
                    logger.warning("Task %r depends on unknown task id %r; dependency dropped", task.title, dependency)
                    continue
                dependents[target].append(position)
                count += 1
            pending[position] = count

        ready = [position for position, count in pending.items() if count == 0]
        heapq.heapify(ready)
        ordered: list[Task] = []
        while ready:
            position = heapq.heappop(ready)
            ordered.append(tasks[position])
            for dependent in dependents[position]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(ordered) != len(tasks):
            remaining = [tasks[p] for p, count in pending.items() if count > 0]
            cycles = detect_cycles(_adjacency(remaining))
            raise AtomizeError.circular_dependency(cycles[0] if cycles else [task_key(t) or t.title for t in remaining])

        logger.debug("Resolved task order: %s", " -> ".join(task.title for task in ordered))
        return ordered

    def detect_cycles(self, tasks: Sequence[TaskDefinition | CalculatedTask]) -> list[list[str]]:
        return detect_cycles(_adjacency(tasks))

    def build_dependency_map(self, tasks: Sequence[Task]) -> dict[str, list[Task]]:
        """Map each dependency id to the tasks that depend on it."""
        dependency_map: dict[str, list[Task]] = {}
        for task in tasks:
            for dependency in task.depends_on:
                dependency_map.setdefault(dependency, []).append(task)
        return dependency_map

    def validate_dependencies(self, tasks: Sequence[TaskDefinition | CalculatedTask]) -> list[str]:
        known = list(dict.fromkeys(key for key in map(task_key, tasks) if key))
        if known:
            hint = " Available task IDs: " + ", ".join(f'"{key}"' for key in known)
        else:
            hint = " Add an 'id' field to the task you want to depend on."
        errors: list[str] = []
        for task in tasks:
            for dependency in task.depends_on:
                if dependency not in known:
                    errors.append(
                        f'Task "{task.title}" (ID: {task_key(task)}) depends on non-existent task ID: "{dependency}".{hint}'
                    )
        return errors
