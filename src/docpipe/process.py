# process.py
# Handle for the one long-running step kind (the HTTP server).
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence

from .log import get_logger

log = get_logger("docpipe.process")

POSIX = os.name == "posix"
FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def sigterm_as_interrupt() -> Iterator[None]:
    """
    Raise KeyboardInterrupt on SIGTERM while the block runs, so cleanup
    (terminating a half-started server) happens for both signals.

    No-op outside the main thread, where handlers cannot be installed.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _raise(signum, frame):
        raise KeyboardInterrupt

    previous = signal.signal(signal.SIGTERM, _raise)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


class ServerProcess:
    """
    A spawned long-running process handed back to the invoker.

    On POSIX the child gets its own session, so a Ctrl+C in the terminal
    only reaches it through serve_forever()'s explicit forwarding.
    """

    def __init__(self, proc: subprocess.Popen, cmd: Sequence[str], cwd: Path):
        self.proc = proc
        self.cmd = list(cmd)
        self.cwd = cwd
        self.stopped_by_signal: Optional[int] = None

    @classmethod
    def start(
        cls,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
    ) -> "ServerProcess":
        proc = subprocess.Popen(
            list(cmd),
            cwd=str(cwd),
            env=env,
            start_new_session=POSIX,
        )
        log.debug("spawned pid=%s cwd=%s cmd=%s", proc.pid, cwd, cmd)
        return cls(proc, cmd, cwd)

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.proc.poll()

    def running(self) -> bool:
        return self.proc.poll() is None

    def wait_for_startup(self, grace: float) -> Optional[int]:
        """
        Poll for `grace` seconds.

        Returns the exit code if the process already exited (e.g. the port
        was taken), or None if it is still up.
        """
        deadline = time.monotonic() + grace
        while time.monotonic() < deadline:
            code = self.proc.poll()
            if code is not None:
                return code
            time.sleep(0.05)
        return self.proc.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.proc.wait(timeout=timeout)

    def send_signal(self, sig: int) -> None:
        if self.running():
            log.debug("forwarding signal %s to pid=%s", sig, self.pid)
            self.proc.send_signal(sig)

    def interrupt(self) -> None:
        self.send_signal(signal.SIGINT if POSIX else signal.SIGTERM)

    def terminate(self, timeout: float = 5.0) -> int:
        """SIGTERM, then SIGKILL if the child does not exit within `timeout`."""
        if not self.running():
            return self.proc.returncode
        self.proc.terminate()
        try:
            return self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            log.warning("pid=%s ignored SIGTERM, killing", self.pid)
            self.proc.kill()
            return self.proc.wait()

    def serve_forever(self) -> int:
        """
        Block until the child exits, forwarding SIGINT/SIGTERM to it.

        Returns the child's exit code. Previous signal handlers are restored
        before returning.
        """

        def _forward(signum, frame):
            self.stopped_by_signal = signum
            self.send_signal(signum)

        previous = {sig: signal.signal(sig, _forward) for sig in FORWARDED_SIGNALS}
        try:
            while True:
                try:
                    return self.proc.wait()
                except KeyboardInterrupt:
                    # SIGINT raced the handler install; forward it by hand
                    _forward(signal.SIGINT, None)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def __enter__(self) -> "ServerProcess":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.terminate()
