from __future__ import annotations

import os
import signal
import sys
import threading

import pytest

from docpipe.dsl import mkdir, serve, sh, task, wf
from docpipe.errors import FilesystemError, StepFailed, TaskFileError, TaskNotFound
from docpipe.graph import build_graph
from docpipe.process import sigterm_as_interrupt
from docpipe.runner import EXIT_NOT_FOUND, Resolver, RunState, load_tasks, run_task

PY = sys.executable


def _log_step(name, word):
    return sh(name, [PY, "-c", f"import os; open(os.environ['STUB_LOG'], 'a').write('{word}\\n')"])


def test_runs_dependencies_then_target(repo, calls, console):
    graph = build_graph(wf(
        task("first", _log_step("one", "first")),
        task("second", _log_step("two", "second"), _log_step("three", "third"), needs=["first"]),
    ))
    result = run_task(graph, "second", repo_root=repo, console=console)

    assert calls() == ["first", "second", "third"]
    assert result.order == ["first", "second"]
    assert result.results == {"first": "ok", "second": "ok"}
    assert result.state is RunState.COMPLETED
    assert result.server is None


def test_failed_step_stops_everything(repo, stubs, calls, console):
    graph = build_graph(wf(
        task("build", _log_step("a", "a"), sh("boom", [PY, str(stubs / "fail.py"), "4"]), _log_step("b", "b")),
        task("after", _log_step("c", "c"), needs=["build"]),
    ))
    resolver = Resolver(graph, repo_root=repo, console=console)

    with pytest.raises(StepFailed) as exc:
        resolver.run("after")

    err = exc.value
    assert (err.task, err.step_index, err.step, err.exit_code) == ("build", 1, "boom", 4)
    assert calls() == ["a"]


def test_unknown_task_runs_nothing(repo, calls, console):
    graph = build_graph([task("doc", _log_step("a", "a"))])
    with pytest.raises(TaskNotFound):
        run_task(graph, "deploy", repo_root=repo, console=console)
    assert calls() == []


def test_missing_program_is_a_step_failure(repo, console):
    graph = build_graph([task("doc", sh("gen", "definitely-not-a-real-tool-xyz --flag"))])
    with pytest.raises(StepFailed) as exc:
        run_task(graph, "doc", repo_root=repo, console=console)
    assert exc.value.exit_code == EXIT_NOT_FOUND
    assert exc.value.hint


def test_mkdir_is_idempotent(repo, console):
    graph = build_graph([task("dirs", mkdir("out", "target/doc"))])
    run_task(graph, "dirs", repo_root=repo, console=console)
    run_task(graph, "dirs", repo_root=repo, console=console)
    assert (repo / "target" / "doc").is_dir()


def test_mkdir_over_a_file_is_filesystem_error(repo, console):
    (repo / "target").write_text("not a directory")
    graph = build_graph([task("dirs", mkdir("out", "target/doc"))])
    with pytest.raises(FilesystemError):
        run_task(graph, "dirs", repo_root=repo, console=console)


def test_missing_cwd_is_filesystem_error(repo, console):
    graph = build_graph([task("doc", sh("ls", [PY, "-c", "pass"], cwd="nowhere"))])
    with pytest.raises(FilesystemError):
        run_task(graph, "doc", repo_root=repo, console=console)


def test_task_and_step_env_reach_the_process(repo, calls, console):
    step = sh(
        "env",
        [PY, "-c", "import os; open(os.environ['STUB_LOG'], 'a').write(os.environ['A'] + os.environ['B'] + '\\n')"],
        env={"B": "step"},
    )
    graph = build_graph([task("doc", step, env={"A": "task"})])
    run_task(graph, "doc", repo_root=repo, console=console)
    assert calls() == ["taskstep"]


def test_dry_run_executes_nothing(repo, calls, console):
    graph = build_graph(wf(
        task("first", _log_step("one", "first")),
        task("second", _log_step("two", "second"), needs=["first"]),
    ))
    result = run_task(graph, "second", repo_root=repo, console=console, dry_run=True)
    assert result.results == {"first": "planned", "second": "planned"}
    assert calls() == []


def test_load_tasks_from_file(tmp_path):
    path = tmp_path / "my_tasks.py"
    path.write_text(
        "from docpipe import wf, task, sh\n"
        "def workflow():\n"
        "    return wf(task('a', sh('x', 'echo a')), task('b', sh('y', 'echo b'), needs=['a']))\n"
    )
    graph = load_tasks(path)
    assert list(graph) == ["a", "b"]
    assert graph["b"].needs == ("a",)


def test_load_tasks_rejects_bad_file(tmp_path):
    path = tmp_path / "bad_tasks.py"
    path.write_text("TASKS = ['not a task']\n")
    with pytest.raises(TaskFileError):
        load_tasks(path)
    with pytest.raises(TaskFileError):
        load_tasks(tmp_path / "missing.py")


def test_load_tasks_wraps_errors_raised_by_the_file(tmp_path):
    path = tmp_path / "broken_tasks.py"
    path.write_text("from docpipe import task, sh\nTASKS = [task('a', sh('x', ''))]\n")
    with pytest.raises(TaskFileError) as exc:
        load_tasks(path)
    assert isinstance(exc.value.__cause__, ValueError)


def _pid_server_graph(stubs, port):
    cmd = [PY, str(stubs / "pid_server.py"), str(port), "--bind", "127.0.0.1"]
    return build_graph([task("serve", serve("http server", cmd))])


def _assert_gone(pid):
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
def test_interrupt_during_startup_grace_stops_server(repo, stubs, free_port, console, server_pid):
    graph = _pid_server_graph(stubs, free_port)
    threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGINT)).start()

    with pytest.raises(KeyboardInterrupt):
        run_task(graph, "serve", repo_root=repo, console=console, startup_grace=3.0)

    assert server_pid() is not None
    _assert_gone(server_pid())


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
def test_sigterm_during_startup_grace_stops_server(repo, stubs, free_port, console, server_pid):
    graph = _pid_server_graph(stubs, free_port)
    threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGTERM)).start()

    with pytest.raises(KeyboardInterrupt):
        with sigterm_as_interrupt():
            run_task(graph, "serve", repo_root=repo, console=console, startup_grace=3.0)

    assert server_pid() is not None
    _assert_gone(server_pid())
