# runner.py
from __future__ import annotations

import enum
import os
import runpy
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .errors import DocpipeError, FilesystemError, StepFailed, TaskFileError
from .graph import TaskGraph, build_graph, resolve_order
from .log import get_logger
from .model import Step, Task
from .process import ServerProcess
from .ui.console import Console, get_console

log = get_logger("docpipe.runner")

# exit code shells use for "command not found"
EXIT_NOT_FOUND = 127

TOOL_HINTS = {
    "cargo": "Install Rust (includes cargo) or fix PATH.",
    "asciidoctor": "Install Asciidoctor (e.g., gem install asciidoctor).",
    "python3": "Install Python 3 or fix PATH (python3).",
    "python": "Install Python 3 or fix PATH.",
}

DEFAULT_STARTUP_GRACE = 0.5


class RunState(enum.Enum):
    PENDING = "pending"
    RESOLVING_DEPENDENCIES = "resolving_dependencies"
    EXECUTING_STEPS = "executing_steps"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunResult:
    target: str
    order: List[str] = field(default_factory=list)
    results: Dict[str, str] = field(default_factory=dict)
    state: RunState = RunState.PENDING
    server: Optional[ServerProcess] = None


# ----------------------------------------------------------------------
# Task file loading (local file)
# ----------------------------------------------------------------------

def load_tasks(path: str | Path) -> TaskGraph:
    """
    Load tasks from a python file path.

    The file must define either:
      - workflow() -> List[Task]
      - TASKS = [Task, ...]

    Returns:
      a validated TaskGraph
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise TaskFileError(path=str(wf_path), reason="file not found")
    if wf_path.suffix != ".py":
        raise TaskFileError(path=str(wf_path), reason="task file must be a .py file")

    module_name = f"docpipe_tasks_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

        tasks = None
        if "workflow" in globals_dict and callable(globals_dict["workflow"]):
            tasks = globals_dict["workflow"]()
        elif "TASKS" in globals_dict:
            tasks = globals_dict["TASKS"]
    except DocpipeError:
        raise
    except Exception as e:
        raise TaskFileError(path=str(wf_path), reason=f"{type(e).__name__}: {e}") from e

    if not isinstance(tasks, list) or not all(isinstance(t, Task) for t in tasks):
        raise TaskFileError(
            path=str(wf_path),
            reason="must return/define a List[Task]. "
            "Define workflow() -> List[Task] or TASKS = [Task, ...].",
        )

    return build_graph(tasks)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _step_env(task: Task, step: Step, base_env: Mapping[str, str]) -> Dict[str, str]:
    env = dict(base_env)
    env.update(task.env or {})
    env.update(step.env or {})
    return env


def _resolve_cwd(task: Task, step: Step, repo_root: Path) -> Path:
    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.is_dir():
        raise FilesystemError(
            path=str(cwd),
            reason=f"[{task.name}] step '{step.name}' working directory not found",
        )
    return cwd


def _ensure_dir(step: Step, repo_root: Path) -> None:
    target = repo_root / step.path
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(path=str(target), reason=e.strerror or str(e)) from e


def _not_found(task: Task, index: int, step: Step) -> StepFailed:
    program = Path(step.cmd[0]).name
    return StepFailed(
        task=task.name,
        step_index=index,
        step=step.name,
        cmd=step.display,
        exit_code=EXIT_NOT_FOUND,
        hint=TOOL_HINTS.get(program, f"Install {program} or fix PATH."),
    )


def _run_step(task: Task, index: int, step: Step, repo_root: Path, env: Mapping[str, str]) -> None:
    cwd = _resolve_cwd(task, step, repo_root)
    log.debug("[%s] run cwd=%s cmd=%s", task.name, cwd, step.cmd)

    try:
        proc = subprocess.run(
            list(step.cmd),
            cwd=str(cwd),
            env=_step_env(task, step, env),
        )
    except FileNotFoundError:
        raise _not_found(task, index, step) from None

    if proc.returncode != 0:
        raise StepFailed(
            task=task.name,
            step_index=index,
            step=step.name,
            cmd=step.display,
            exit_code=proc.returncode,
        )


def _start_server(
    task: Task,
    index: int,
    step: Step,
    repo_root: Path,
    env: Mapping[str, str],
    startup_grace: float,
) -> ServerProcess:
    cwd = _resolve_cwd(task, step, repo_root)
    try:
        server = ServerProcess.start(step.cmd, cwd=cwd, env=_step_env(task, step, env))
    except FileNotFoundError:
        raise _not_found(task, index, step) from None

    try:
        code = server.wait_for_startup(startup_grace)
    except BaseException:
        server.terminate()
        raise
    if code is not None and code != 0:
        raise StepFailed(
            task=task.name,
            step_index=index,
            step=step.name,
            cmd=step.display,
            exit_code=code,
        )
    return server


# ----------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------

class Resolver:
    """
    Runs a requested task and its transitive needs, dependency-first.

    Strictly sequential; the first failing step aborts the whole request
    and nothing already done is rolled back.
    """

    def __init__(
        self,
        graph: TaskGraph,
        *,
        repo_root: str | Path = ".",
        console: Optional[Console] = None,
        env: Optional[Mapping[str, str]] = None,
        startup_grace: float = DEFAULT_STARTUP_GRACE,
    ):
        self.graph = graph
        self.repo_root = Path(repo_root).resolve()
        self.console = console or get_console()
        self.env = dict(os.environ if env is None else env)
        self.startup_grace = startup_grace

    def plan(self, target: str) -> List[str]:
        return resolve_order(self.graph, target)

    def run(self, target: str, *, dry_run: bool = False) -> RunResult:
        result = RunResult(target=target)

        result.state = RunState.RESOLVING_DEPENDENCIES
        try:
            result.order = self.plan(target)
        except Exception:
            result.state = RunState.FAILED
            raise

        if dry_run:
            self.console.print_plan(result.order)
            result.results = {name: "planned" for name in result.order}
            result.state = RunState.COMPLETED
            return result

        self.console.print_run_started(target, result.order)
        result.state = RunState.EXECUTING_STEPS

        for name in result.order:
            try:
                result.server = self._run_task(self.graph[name]) or result.server
            except BaseException:
                result.results[name] = "failed"
                result.state = RunState.FAILED
                raise
            result.results[name] = "ok"

        result.state = RunState.COMPLETED
        return result

    def _run_task(self, task: Task) -> Optional[ServerProcess]:
        self.console.print_task_start(task.name)
        server = None

        try:
            for index, step in enumerate(task.steps):
                self.console.print_step(index, step.name, step.display)
                if step.kind == "mkdir":
                    _ensure_dir(step, self.repo_root)
                elif step.kind == "serve":
                    server = _start_server(
                        task, index, step, self.repo_root, self.env, self.startup_grace
                    )
                else:
                    _run_step(task, index, step, self.repo_root, self.env)

            self.console.print_success(task.name)
        except BaseException:
            if server is not None:
                server.terminate()
            raise
        return server


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_task(
    graph: TaskGraph,
    target: str,
    *,
    repo_root: str | Path = ".",
    console: Optional[Console] = None,
    env: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
    startup_grace: float = DEFAULT_STARTUP_GRACE,
) -> RunResult:
    resolver = Resolver(
        graph,
        repo_root=repo_root,
        console=console,
        env=env,
        startup_grace=startup_grace,
    )
    return resolver.run(target, dry_run=dry_run)
