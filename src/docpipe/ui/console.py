"""Console output formatting utilities for docpipe."""

from __future__ import annotations

import sys
from typing import Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, target: str, order: Sequence[str]) -> None:
        """Print the resolved plan for a request."""
        print("\nRUN STARTED")
        print(f"Target: {target}")
        print(f"Plan: {' -> '.join(order)}")

    def print_task_start(self, name: str) -> None:
        print(f"\nTASK STARTED: {name}")

    def print_step(self, index: int, name: str, cmd: str) -> None:
        """Print step start message."""
        print(f"STEP {index}: {name}")
        print(f"  $ {cmd}")

    def print_success(self, name: str) -> None:
        print(f"STATUS: {name} success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Task or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"\nFAILED: {name}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)
        print(f"Error: {reason}", file=sys.stderr)

    def print_plan(self, order: Sequence[str]) -> None:
        print("\nPLAN (dry run)")
        for i, name in enumerate(order, start=1):
            print(f"  {i}. {name}")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for task, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            print(f"  {task}: {status_display}")

    def print_server_started(self, url: str, directory: str) -> None:
        print("\nSERVING")
        print(f"Directory: {directory}")
        print(f"URL: {url}")
        print("Press Ctrl+C to stop")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
