# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple


STEP_KINDS = ("run", "mkdir", "serve")


@dataclass(frozen=True)
class Step:
    """
    A single step inside a task.

    kind:
      - "run":   external command, waited on
      - "mkdir": create `path` (and missing parents) if absent
      - "serve": long-running external command, spawned and handed back
    """
    name: str
    cmd: Tuple[str, ...] = ()
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    kind: str = "run"
    path: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in STEP_KINDS:
            raise ValueError(f"Step '{self.name}' has unknown kind {self.kind!r}")
        if self.kind == "mkdir":
            if not self.path:
                raise ValueError(f"Step '{self.name}' (mkdir) needs a path")
        elif not self.cmd:
            raise ValueError(f"Step '{self.name}' has an empty command")

    @property
    def display(self) -> str:
        if self.kind == "mkdir":
            return f"mkdir -p {self.path}"
        return " ".join(self.cmd)


@dataclass(frozen=True)
class Task:
    """A named task: ordered steps + the tasks that must run before it."""
    name: str
    steps: Tuple[Step, ...]
    needs: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    @property
    def long_running(self) -> bool:
        return any(s.kind == "serve" for s in self.steps)
