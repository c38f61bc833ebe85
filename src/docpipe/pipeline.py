# pipeline.py
# The built-in documentation pipeline: `doc` builds, `serve` (needs doc) serves.
from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Mapping, Optional, Tuple

from .dsl import mkdir, serve, sh, task
from .graph import TaskGraph, build_graph

DEFAULT_PORT = 8000


def _default_server() -> Tuple[str, ...]:
    return (sys.executable, "-m", "http.server")


@dataclass(frozen=True)
class DocConfig:
    """
    Where the collaborators live and where their output lands.

    Layout:
      <output_root>/                       generator-owned subtree
      <output_root>/<doc_dir>/<html_name>  rendered overview (served root)
    """
    generator: Tuple[str, ...] = ("cargo", "doc")
    renderer: Tuple[str, ...] = ("asciidoctor",)
    overview: str = "README.adoc"
    output_root: str = "target"
    doc_dir: str = "doc"
    html_name: str = "README.html"
    server: Tuple[str, ...] = field(default_factory=_default_server)
    port: int = DEFAULT_PORT
    bind: Optional[str] = None

    @property
    def serve_dir(self) -> str:
        return str(PurePosixPath(self.output_root) / self.doc_dir)

    @property
    def html_path(self) -> str:
        return str(PurePosixPath(self.serve_dir) / self.html_name)

    @property
    def url(self) -> str:
        host = self.bind or "localhost"
        return f"http://{host}:{self.port}/{self.html_name}"

    def server_cmd(self) -> Tuple[str, ...]:
        cmd = self.server + (str(self.port),)
        if self.bind:
            cmd += ("--bind", self.bind)
        return cmd

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DocConfig":
        """Read DOCPIPE_* overrides; anything unset keeps its default."""
        environ = os.environ if environ is None else environ
        kwargs = {}
        for name in ("generator", "renderer", "server"):
            value = environ.get(f"DOCPIPE_{name.upper()}")
            if value:
                kwargs[name] = tuple(shlex.split(value))
        for name in ("overview", "output_root", "doc_dir", "html_name", "bind"):
            value = environ.get(f"DOCPIPE_{name.upper()}")
            if value:
                kwargs[name] = value
        port = environ.get("DOCPIPE_PORT")
        if port:
            kwargs["port"] = int(port)
        return cls(**kwargs)


def doc_pipeline(config: Optional[DocConfig] = None) -> TaskGraph:
    config = config or DocConfig()

    doc = task(
        "doc",
        sh("generate", config.generator),
        mkdir("ensure output dir", config.serve_dir),
        sh("render", config.renderer + ("-o", config.html_path, config.overview)),
        description="Generate API docs and render the overview document",
    )
    serve_task = task(
        "serve",
        serve("http server", config.server_cmd(), cwd=config.serve_dir),
        needs=["doc"],
        description=f"Serve {config.serve_dir} on port {config.port}",
    )
    return build_graph([doc, serve_task])
