"""Process invocation boundary.

This module handles:
- Executing external tools (git, cachi2, buildah, skopeo) with subprocess
- Propagating cancellation into in-flight child processes
- Enforcing an optional per-command timeout
- A deterministic fake invoker for tests

Everything that talks to the outside world goes through a ``ProcessInvoker``;
orchestrators receive one inside a ``Capabilities`` bundle.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from monolithic_builder.errors import CancellationError, ExternalToolError

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while a child runs
POLL_INTERVAL = 0.2

# Seconds a terminated child gets before it is killed
TERMINATE_GRACE = 10.0


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one external tool invocation.

    Attributes:
        name: Executable name.
        args: Arguments passed to the executable.
        exit_status: Process exit status.
        stdout: Captured standard output (empty when streamed).
        stderr: Captured standard error (empty when streamed).
    """

    name: str
    args: tuple[str, ...]
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def check(self) -> ProcessResult:
        """Return self, or raise ExternalToolError on a non-zero exit."""
        if not self.ok:
            raise ExternalToolError(
                self.name, self.args, self.exit_status, stderr=self.stderr
            )
        return self


class ProcessInvoker(Protocol):
    """Executes an external tool and reports its exit status and output."""

    def invoke(
        self,
        name: str,
        args: Sequence[str],
        *,
        stream: bool = False,
        cwd: Path | None = None,
    ) -> ProcessResult: ...


class CancelToken:
    """Single cancellation signal shared by a run and its invoker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError()


class SubprocessInvoker:
    """ProcessInvoker backed by subprocess.Popen.

    Args:
        cancel: Token polled while a child is running.
        timeout: Per-command timeout in seconds (None = no timeout).
        poll_interval: Seconds between cancellation checks.
    """

    def __init__(
        self,
        cancel: CancelToken | None = None,
        timeout: float | None = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self.cancel = cancel or CancelToken()
        self.timeout = timeout
        self.poll_interval = poll_interval

    def invoke(
        self,
        name: str,
        args: Sequence[str],
        *,
        stream: bool = False,
        cwd: Path | None = None,
    ) -> ProcessResult:
        """Run ``name args...`` to completion.

        Args:
            name: Executable to run.
            args: Arguments for the executable.
            stream: Let the child write to our stdout/stderr instead of
                capturing its output.
            cwd: Working directory for the child.

        Returns:
            ProcessResult with exit status and captured output.

        Raises:
            CancellationError: If the cancel token fired.
            ExternalToolError: If the tool could not be started or timed out.
        """
        self.cancel.raise_if_cancelled()

        cmd = [name, *args]
        logger.debug("Executing: %s", shlex.join(cmd))

        pipe = None if stream else subprocess.PIPE
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdout=pipe,
                stderr=pipe,
                text=True,
            )
        except FileNotFoundError as e:
            raise ExternalToolError(
                name, args, 127, message=f"{name}: command not found"
            ) from e
        except OSError as e:
            raise ExternalToolError(
                name, args, 126, message=f"Failed to execute {name}: {e}"
            ) from e

        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if self.cancel.cancelled:
                    logger.warning("Cancellation requested, terminating %s", name)
                    _terminate(proc)
                    raise CancellationError(
                        f"Run cancelled while executing {name}"
                    ) from None
                if deadline is not None and time.monotonic() >= deadline:
                    logger.error("%s timed out after %s seconds", name, self.timeout)
                    _terminate(proc)
                    raise ExternalToolError(
                        name,
                        args,
                        -1,
                        message=f"{name} timed out after {self.timeout} seconds",
                    ) from None

        return ProcessResult(
            name=name,
            args=tuple(args),
            exit_status=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )


def _terminate(proc: subprocess.Popen[str]) -> None:
    """Terminate a child, killing it if it ignores SIGTERM."""
    proc.terminate()
    try:
        proc.communicate(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


@dataclass
class _Response:
    exit_status: int = 0
    stdout: str = ""
    stderr: str = ""
    error: BaseException | None = None


class FakeInvoker:
    """Deterministic ProcessInvoker for tests.

    Records every command line and answers from scripted responses. The
    response registered for the longest matching command prefix wins;
    unmatched commands succeed with empty output.

    Example:
        fake = FakeInvoker()
        fake.on("skopeo", "inspect", "--raw", exit_status=1)
        fake.on("skopeo", "inspect", stdout='{"Digest": "sha256:abc"}')
    """

    def __init__(self, cancel: CancelToken | None = None) -> None:
        self.cancel = cancel or CancelToken()
        self.calls: list[tuple[str, ...]] = []
        self._responses: dict[tuple[str, ...], _Response] = {}

    def on(
        self,
        *command: str,
        exit_status: int = 0,
        stdout: str = "",
        stderr: str = "",
        error: BaseException | None = None,
    ) -> None:
        """Script the response for commands starting with ``command``."""
        self._responses[tuple(command)] = _Response(exit_status, stdout, stderr, error)

    def invoke(
        self,
        name: str,
        args: Sequence[str],
        *,
        stream: bool = False,
        cwd: Path | None = None,
    ) -> ProcessResult:
        self.cancel.raise_if_cancelled()
        cmd = (name, *args)
        self.calls.append(cmd)

        response = _Response()
        best = -1
        for prefix, candidate in self._responses.items():
            if cmd[: len(prefix)] == prefix and len(prefix) > best:
                response = candidate
                best = len(prefix)

        if response.error is not None:
            raise response.error
        return ProcessResult(
            name=name,
            args=tuple(args),
            exit_status=response.exit_status,
            stdout=response.stdout,
            stderr=response.stderr,
        )

    def calls_to(self, *prefix: str) -> list[tuple[str, ...]]:
        """Return recorded commands starting with ``prefix``."""
        return [c for c in self.calls if c[: len(prefix)] == prefix]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Capabilities:
    """Collaborators injected into every orchestrator.

    Attributes:
        invoker: Process invocation boundary.
        logger: Logger used for run progress.
        clock: Returns the current time (timezone-aware).
    """

    invoker: ProcessInvoker
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("monolithic_builder")
    )
    clock: Callable[[], datetime] = utc_now


__all__ = [
    "CancelToken",
    "Capabilities",
    "FakeInvoker",
    "ProcessInvoker",
    "ProcessResult",
    "SubprocessInvoker",
    "utc_now",
]
