# graph.py
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Set

from .errors import CycleError, GraphError, TaskNotFound
from .model import Task


class TaskGraph(Mapping[str, Task]):
    """
    Immutable task name -> Task mapping.

    Built once (see build_graph) and passed explicitly to the Resolver.
    Iteration follows declaration order.
    """

    def __init__(self, tasks: Mapping[str, Task]):
        self._tasks = MappingProxyType(dict(tasks))

    def __getitem__(self, name: str) -> Task:
        return self._tasks[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return f"TaskGraph({list(self._tasks)})"

    def task(self, name: str) -> Task:
        """Like graph[name], but raises TaskNotFound naming the known tasks."""
        try:
            return self._tasks[name]
        except KeyError:
            raise TaskNotFound(name=name, known=list(self._tasks)) from None

    def dependents(self, name: str) -> List[str]:
        return [t.name for t in self._tasks.values() if name in t.needs]


def build_graph(tasks: Iterable[Task]) -> TaskGraph:
    """
    Validate Task objects and freeze them into a TaskGraph.

    Rejects:
      - duplicate task names
      - tasks without steps
      - needs on tasks that are not declared
      - cycles
      - a serve step that is not the last step of its task, or that lives
        in a task other tasks depend on (nothing may run after a server)
    """
    tasks = list(tasks)
    names = [t.name for t in tasks]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise GraphError(f"Duplicate task names found: {dupes}")

    by_name: Dict[str, Task] = {t.name: t for t in tasks}

    for t in tasks:
        if not t.steps:
            raise GraphError(f"Task '{t.name}' has no steps")
        for dep in t.needs:
            if dep not in by_name:
                raise TaskNotFound(name=dep, known=names, required_by=t.name)
        for i, step in enumerate(t.steps):
            if step.kind == "serve" and i != len(t.steps) - 1:
                raise GraphError(
                    f"Task '{t.name}': serve step '{step.name}' must be the last step"
                )

    graph = TaskGraph(by_name)

    for t in tasks:
        if t.long_running:
            dependents = graph.dependents(t.name)
            if dependents:
                raise GraphError(
                    f"Task '{t.name}' starts a server and cannot be a dependency "
                    f"(needed by {dependents})"
                )

    # walking every task surfaces any cycle, even in parts no one requests
    for name in graph:
        resolve_order(graph, name)

    return graph


def resolve_order(graph: Mapping[str, Task], target: str) -> List[str]:
    """
    Dependency-first order for `target`.

    Depth-first walk: each task's needs are visited in declaration order
    before the task itself; a task reachable through several paths appears once.
    """
    if target not in graph:
        raise TaskNotFound(name=target, known=list(graph))

    order: List[str] = []
    done: Set[str] = set()
    stack: List[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in stack:
            raise CycleError(cycle=stack[stack.index(name):] + [name])
        stack.append(name)
        task = graph[name]
        for dep in task.needs:
            if dep not in graph:
                raise TaskNotFound(name=dep, known=list(graph), required_by=name)
            visit(dep)
        stack.pop()
        done.add(name)
        order.append(name)

    visit(target)
    return order
