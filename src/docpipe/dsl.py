# src/docpipe/dsl.py
from __future__ import annotations

import shlex
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Union

from .model import Step, Task

Command = Union[str, Sequence[str]]


def _argv(cmd: Command) -> tuple[str, ...]:
    if isinstance(cmd, str):
        return tuple(shlex.split(cmd))
    return tuple(str(c) for c in cmd)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: Command, *, cwd: str | None = None, env: Optional[Dict[str, str]] = None) -> Step:
    """Create a command step. A string command is split like a shell would."""
    return Step(name=name, cmd=_argv(cmd), cwd=cwd, env=env or {})


def mkdir(name: str, path: str) -> Step:
    """Create a step that makes sure `path` exists (like `mkdir -p`)."""
    return Step(name=name, kind="mkdir", path=path)


def serve(name: str, cmd: Command, *, cwd: str | None = None, env: Optional[Dict[str, str]] = None) -> Step:
    """Create a long-running step; it must be the last step of its task."""
    return Step(name=name, cmd=_argv(cmd), cwd=cwd, env=env or {}, kind="serve")


# ---------------------------------------------------------------------
# Task helper
# ---------------------------------------------------------------------

def task(
    name: str,
    *steps: Step,  # allow: task("x", sh(...), sh(...))
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
    description: str = "",
) -> Task:
    if not steps:
        raise ValueError(f"task({name!r}) must have at least one step")

    steps_final = list(steps)
    if cwd is not None:
        steps_final = [
            s if s.cwd is not None or s.kind == "mkdir" else replace(s, cwd=cwd)
            for s in steps_final
        ]

    return Task(
        name=name,
        steps=tuple(steps_final),
        needs=tuple(needs or ()),
        env=env or {},
        description=description,
    )


def wf(*tasks: Task) -> List[Task]:
    """
    Task file helper.

        from docpipe import wf, task, sh

        def workflow():
            return wf(
                task("build", sh("compile", "make")),
                task("check", sh("test", "make test"), needs=["build"]),
            )

    Or use TASKS directly:
        TASKS = wf(task(...), task(...))
    """
    return list(tasks)
