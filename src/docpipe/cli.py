# cli.py
from __future__ import annotations

import contextlib
import shlex
import sys
from dataclasses import replace
from pathlib import Path

import click

from docpipe.errors import DocpipeError, StepFailed, TaskNotFound
from docpipe.graph import TaskGraph
from docpipe.log import configure_logging, get_logger
from docpipe.pipeline import DocConfig, doc_pipeline
from docpipe.process import sigterm_as_interrupt
from docpipe.runner import RunResult, load_tasks, run_task
from docpipe.ui.console import Console, get_console, set_console

log = get_logger("docpipe.cli")

EXIT_FAILURE = 1
EXIT_TASK_NOT_FOUND = 2
EXIT_INTERRUPTED = 130
EXIT_INTERNAL = 255


def exit_code_for(exc: BaseException) -> int:
    """Map an error to the process exit code."""
    if isinstance(exc, TaskNotFound):
        return EXIT_TASK_NOT_FOUND
    if isinstance(exc, StepFailed):
        if exc.exit_code < 0:
            # killed by signal N -> 128 + N, like a shell
            return 128 - exc.exit_code
        return exc.exit_code or EXIT_FAILURE
    # FilesystemError, TaskFileError, GraphError, CycleError
    if isinstance(exc, DocpipeError):
        return EXIT_FAILURE
    return EXIT_INTERNAL


def _report(console: Console, exc: BaseException) -> None:
    if isinstance(exc, StepFailed):
        console.print_failure(
            f"{exc.task} / step {exc.step_index} ({exc.step})",
            str(exc),
            exit_code=exc.exit_code,
            hint=exc.hint,
        )
    elif isinstance(exc, TaskNotFound):
        console.print_error(
            "Task not found",
            str(exc),
            suggestion="List available tasks with:\n  docpipe list",
        )
    elif isinstance(exc, DocpipeError):
        console.print_error(type(exc).__name__, str(exc))
    else:
        console.print_exception(exc)


def _load_graph(ctx: click.Context) -> TaskGraph:
    tasks_file = ctx.obj["tasks_file"]
    if tasks_file:
        return load_tasks(tasks_file)
    return doc_pipeline(ctx.obj["config"])


def _wait_for_server(console: Console, result: RunResult, url: str) -> int:
    server = result.server
    console.print_server_started(url=url, directory=str(server.cwd))
    code = server.serve_forever()
    if server.stopped_by_signal is not None:
        console.print_info("\nServer stopped.")
        return 0
    if code != 0:
        console.print_failure("server", f"server exited: {' '.join(server.cmd)}", exit_code=code)
        return 128 - code if code < 0 else code
    return 0


def _execute(ctx: click.Context, target: str, dry_run: bool = False) -> None:
    console = get_console()
    try:
        with sigterm_as_interrupt():
            graph = _load_graph(ctx)
            result = run_task(
                graph,
                target,
                repo_root=ctx.obj["root"],
                console=console,
                dry_run=dry_run,
            )
            # the server is terminated on any way out of this block
            with result.server or contextlib.nullcontext():
                console.print_results(result.results)
                if result.server is not None:
                    url = "(see server output)" if ctx.obj["tasks_file"] else ctx.obj["config"].url
                    code = _wait_for_server(console, result, url)
        if result.server is not None:
            sys.exit(code)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        log.debug("run of %r failed", target, exc_info=True)
        _report(console, e)
        sys.exit(exit_code_for(e))


def _split(value: str | None):
    return tuple(shlex.split(value)) if value else None


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Show stack traces and debug logging")
@click.option("--root", default=".", type=click.Path(file_okay=False), help="Repository root to run in")
@click.option("--tasks", "tasks_file", default=None, type=click.Path(dir_okay=False),
              help="Python task file replacing the built-in doc/serve pipeline")
@click.option("--generator", default=None, help="API doc generator command [DOCPIPE_GENERATOR]")
@click.option("--renderer", default=None, help="Markup renderer command [DOCPIPE_RENDERER]")
@click.option("--overview", default=None, help="Overview document to render [DOCPIPE_OVERVIEW]")
@click.option("--output-root", default=None, help="Build output root [DOCPIPE_OUTPUT_ROOT]")
@click.option("--doc-dir", default=None, help="Docs subdirectory of the output root [DOCPIPE_DOC_DIR]")
@click.option("--port", default=None, type=int, help="HTTP server port [DOCPIPE_PORT]")
@click.option("--bind", default=None, help="HTTP server bind address [DOCPIPE_BIND]")
@click.pass_context
def cli(ctx, debug, root, tasks_file, generator, renderer, overview, output_root, doc_dir, port, bind):
    """docpipe: build API docs + overview, then serve them locally."""
    console = Console(debug=debug)
    set_console(console)
    configure_logging(debug)

    overrides = {
        "generator": _split(generator),
        "renderer": _split(renderer),
        "overview": overview,
        "output_root": output_root,
        "doc_dir": doc_dir,
        "port": port,
        "bind": bind,
    }
    try:
        config = DocConfig.from_env()
    except ValueError as e:
        raise click.UsageError(f"Invalid DOCPIPE_* setting: {e}")
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["root"] = Path(root)
    ctx.obj["tasks_file"] = tasks_file
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def doc(ctx):
    """Generate API docs and render the overview document."""
    _execute(ctx, "doc")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to serve on (overrides the global option)")
@click.pass_context
def serve(ctx, port):
    """Build the docs, then serve them until interrupted."""
    if port is not None:
        ctx.obj["config"] = replace(ctx.obj["config"], port=port)
    _execute(ctx, "serve")


@cli.command("run")
@click.argument("name")
@click.option("--dry-run", is_flag=True, default=False, help="Print the execution plan without running it")
@click.pass_context
def run_cmd(ctx, name, dry_run):
    """Run any task (and its dependencies) by name."""
    _execute(ctx, name, dry_run=dry_run)


@cli.command("list")
@click.pass_context
def list_tasks(ctx):
    """List tasks and their dependencies."""
    console = get_console()
    try:
        graph = _load_graph(ctx)
    except Exception as e:
        _report(console, e)
        sys.exit(exit_code_for(e))

    console.print_header("Tasks")
    for t in graph.values():
        needs = f" (needs: {', '.join(t.needs)})" if t.needs else ""
        console.print_info(f"  {t.name}{needs}")
        if t.description:
            console.print_info(f"      {t.description}")


if __name__ == "__main__":
    cli()
