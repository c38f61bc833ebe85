# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class DocpipeError(Exception):
    """Base class for every error the task runner raises on purpose."""


@dataclass
class TaskNotFound(DocpipeError):
    name: str
    known: List[str] = field(default_factory=list)
    required_by: Optional[str] = None

    def __str__(self) -> str:
        if self.required_by:
            msg = f"Task '{self.required_by}' needs unknown task '{self.name}'"
        else:
            msg = f"Unknown task: '{self.name}'"
        if self.known:
            msg += f". Known tasks: {', '.join(self.known)}"
        return msg


@dataclass
class StepFailed(DocpipeError):
    task: str
    step_index: int
    step: str
    cmd: str
    exit_code: int
    hint: Optional[str] = None

    def __str__(self) -> str:
        return (
            f"[{self.task}] step {self.step_index} '{self.step}' failed "
            f"(exit={self.exit_code}): {self.cmd}"
        )


@dataclass
class FilesystemError(DocpipeError):
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Filesystem error at {self.path}: {self.reason}"


@dataclass
class TaskFileError(DocpipeError):
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid task file {self.path}: {self.reason}"


@dataclass
class CycleError(DocpipeError):
    cycle: List[str]

    def __str__(self) -> str:
        return f"Task graph has a cycle: {' -> '.join(self.cycle)}"


class GraphError(DocpipeError, ValueError):
    """Invalid task declarations (duplicates, empty tasks, misplaced serve steps)."""
