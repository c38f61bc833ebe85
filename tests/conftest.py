from __future__ import annotations

import socket
import sys
import textwrap
from pathlib import Path

import pytest

from docpipe.pipeline import DocConfig
from docpipe.ui.console import Console


GENERATE = """
import os, pathlib
out = pathlib.Path("target/doc/ref")
out.mkdir(parents=True, exist_ok=True)
(out / "index.html").write_text("<h1>api reference</h1>")
with open(os.environ["STUB_LOG"], "a") as f:
    f.write("generate\\n")
"""

RENDER = """
import os, pathlib, sys
args = sys.argv[1:]
out = args[args.index("-o") + 1]
src = args[-1]
if not pathlib.Path(out).parent.is_dir():
    sys.exit(3)
pathlib.Path(out).write_text(pathlib.Path(src).read_text())
with open(os.environ["STUB_LOG"], "a") as f:
    f.write("render\\n")
"""

FAIL = """
import sys
sys.exit(int(sys.argv[1]) if len(sys.argv) > 1 else 1)
"""

# stands in for the HTTP server when only the spawn matters
IDLE_SERVER = """
import os, time
with open(os.environ["STUB_LOG"], "a") as f:
    f.write("serve\\n")
time.sleep(60)
"""

# real http.server that first records its pid
PID_SERVER = """
import os, runpy, sys
with open(os.environ["PID_FILE"], "w") as f:
    f.write(str(os.getpid()))
sys.argv = ["http.server", *sys.argv[1:]]
runpy.run_module("http.server", run_name="__main__", alter_sys=True)
"""

OVERVIEW = "<h1>Overview</h1>\n<p>rendered readme</p>\n"


@pytest.fixture
def stubs(tmp_path) -> Path:
    d = tmp_path / "stubs"
    d.mkdir()
    for name, body in {
        "generate.py": GENERATE,
        "render.py": RENDER,
        "fail.py": FAIL,
        "idle_server.py": IDLE_SERVER,
        "pid_server.py": PID_SERVER,
    }.items():
        (d / name).write_text(textwrap.dedent(body))
    return d


@pytest.fixture
def repo(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    (root / "README.adoc").write_text(OVERVIEW)
    monkeypatch.setenv("STUB_LOG", str(tmp_path / "calls.log"))
    monkeypatch.setenv("PID_FILE", str(tmp_path / "server.pid"))
    return root


@pytest.fixture
def calls(tmp_path):
    def read() -> list[str]:
        log = tmp_path / "calls.log"
        return log.read_text().split() if log.exists() else []
    return read


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def config(stubs, free_port) -> DocConfig:
    return DocConfig(
        generator=(sys.executable, str(stubs / "generate.py")),
        renderer=(sys.executable, str(stubs / "render.py")),
        port=free_port,
        bind="127.0.0.1",
    )


@pytest.fixture
def console() -> Console:
    return Console()


@pytest.fixture
def server_pid(tmp_path):
    def read() -> int | None:
        pid_file = tmp_path / "server.pid"
        return int(pid_file.read_text()) if pid_file.exists() and pid_file.read_text() else None
    return read
