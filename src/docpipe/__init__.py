from .dsl import task, sh, mkdir, serve, wf
from .errors import DocpipeError, TaskNotFound, StepFailed, FilesystemError, TaskFileError, CycleError, GraphError
from .graph import TaskGraph, build_graph, resolve_order
from .model import Step, Task
from .pipeline import DocConfig, doc_pipeline
from .runner import Resolver, RunResult, RunState, run_task, load_tasks

__all__ = [
    "task", "sh", "mkdir", "serve", "wf",
    "DocpipeError", "TaskNotFound", "StepFailed", "FilesystemError", "TaskFileError", "CycleError", "GraphError",
    "TaskGraph", "build_graph", "resolve_order",
    "Step", "Task",
    "DocConfig", "doc_pipeline",
    "Resolver", "RunResult", "RunState", "run_task", "load_tasks",
]
