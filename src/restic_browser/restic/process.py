"""Subprocess runner for the restic binary.

ProcessRunner spawns a program, waits for it and returns a CommandResult.
It never raises for a non-zero exit: failures are reported structurally via
``exit_code`` and ``stderr``. A process that cannot even be launched yields a
synthesized exit code of 1 with the launch error in ``stderr`` and ``error``.

Waiting is done in short polling slices so a timeout or a cancellation
token can terminate the child instead of merely abandoning it. Processes can
also be tagged with a command group: starting a new process in a group first
terminates the ones still running in it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

from restic_browser.core.exceptions import CommandCancelledError, CommandTimeoutError
from restic_browser.core.platform_command import get_creation_flags

logger = logging.getLogger(__name__)

# Seconds between checks for timeout / cancellation while waiting
DEFAULT_POLL_INTERVAL = 0.1
# Seconds between SIGTERM and SIGKILL when terminating a child
DEFAULT_TERMINATE_WAIT = 5.0

# Exit code synthesized when no process level exit status is available
LAUNCH_FAILURE_EXIT_CODE = 1


class ExitStatus(Enum):
    """Semantic classification of Unix process exit codes.

    Signal terminations are reported by the shell convention 128 + signum.
    """

    SUCCESS = "success"
    ERROR = "error"
    MISUSE = "misuse"
    CANNOT_EXECUTE = "cannot_execute"
    NOT_FOUND = "not_found"
    INVALID_EXIT = "invalid_exit"
    SIGNAL = "signal"

    @classmethod
    def from_code(cls, code: int) -> ExitStatus:
        """Classify an exit code.

        Args:
            code: Process exit code.

        Returns:
            The matching ExitStatus.

        """
        if code == 0:
            return cls.SUCCESS
        if code == 2:
            return cls.MISUSE
        if code == 126:
            return cls.CANNOT_EXECUTE
        if code == 127:
            return cls.NOT_FOUND
        if code == 128:
            return cls.INVALID_EXIT
        if code > 128:
            return cls.SIGNAL
        return cls.ERROR

    @staticmethod
    def get_signal_number(code: int) -> int | None:
        """Extract the signal number from a signal exit code.

        Args:
            code: Process exit code.

        Returns:
            Signal number for codes above 128, None otherwise.

        """
        if code > 128:
            return code - 128
        return None


def normalize_returncode(returncode: int) -> int:
    """Map Popen return codes to shell style exit codes.

    On POSIX a child killed by a signal has a negative returncode (-signum);
    it is reported as 128 + signum so ExitStatus classifies it as SIGNAL.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished (or unstartable) process.

    Attributes:
        args: Full argument vector including the program path.
        stdout: Decoded stdout ("" for redirected runs).
        stderr: Decoded stderr, or the launch error message.
        exit_code: Normalized exit code.
        error: The OSError that prevented launching, if any.

    """

    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: int
    error: OSError | None = None

    @property
    def exit_status(self) -> ExitStatus:
        """Semantic classification of exit_code."""
        return ExitStatus.from_code(self.exit_code)

    @property
    def succeeded(self) -> bool:
        """True if the process ran and exited with 0."""
        return self.error is None and self.exit_code == 0


class CancellationToken:
    """Thread-safe flag used to ask a running command to terminate."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout expires. Returns cancelled."""
        return self._event.wait(timeout)


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class ProcessRunner:
    """Spawns programs and collects their results.

    Command groups are scoped to the runner: starting a command in a group
    terminates the commands of the same group started by this runner only.

    Attributes:
        poll_interval: Seconds between timeout / cancellation checks.
        terminate_wait: Seconds to wait after SIGTERM before SIGKILL.

    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        terminate_wait: float = DEFAULT_TERMINATE_WAIT,
    ) -> None:
        self.poll_interval = poll_interval
        self.terminate_wait = terminate_wait
        # group name -> running processes; the lock is never held while waiting
        self._groups: dict[str, list[subprocess.Popen[bytes]]] = {}
        self._groups_lock = threading.Lock()

    # =========================================================================
    # Command groups
    # =========================================================================

    def terminate_group(self, group: str) -> int:
        """Terminate all running processes registered in a command group.

        Args:
            group: Command group name.

        Returns:
            Number of processes that were signalled.

        """
        with self._groups_lock:
            processes = self._groups.pop(group, [])

        count = 0
        for process in processes:
            if process.poll() is not None:
                continue
            logger.debug("Terminating process %d in group '%s'", process.pid, group)
            try:
                process.terminate()
                count += 1
            except OSError as e:
                logger.warning("Failed to terminate process %d: %s", process.pid, e)
        return count

    def running_in_group(self, group: str) -> int:
        """Number of registered processes of a command group."""
        with self._groups_lock:
            return len(self._groups.get(group, []))

    def _register(self, group: str, process: subprocess.Popen[bytes]) -> None:
        logger.debug("Process in group '%s' with PID %d started", group, process.pid)
        with self._groups_lock:
            self._groups.setdefault(group, []).append(process)

    def _unregister(self, group: str, process: subprocess.Popen[bytes]) -> None:
        with self._groups_lock:
            processes = self._groups.get(group)
            if processes and process in processes:
                processes.remove(process)
                if not processes:
                    del self._groups[group]

    # =========================================================================
    # Execution
    # =========================================================================

    def run(
        self,
        path: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        group: str | None = None,
    ) -> CommandResult:
        """Run a program and capture stdout and stderr in memory.

        Args:
            path: Program to execute.
            args: Arguments (excluding the program itself).
            env: Complete environment for the child. None inherits ours.
            timeout: Seconds before the child is terminated.
            cancel_token: Token that terminates the child when cancelled.
            group: Optional command group, see terminate_group().

        Returns:
            CommandResult with decoded stdout / stderr.

        Raises:
            CommandTimeoutError: If timeout expired.
            CommandCancelledError: If cancel_token fired.

        """
        return self._execute(
            path,
            args,
            stdout=subprocess.PIPE,
            env=env,
            timeout=timeout,
            cancel_token=cancel_token,
            group=group,
        )

    def run_redirected(
        self,
        path: str,
        args: Sequence[str],
        sink: BinaryIO,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        group: str | None = None,
    ) -> CommandResult:
        """Run a program streaming its stdout into a file.

        The sink is flushed and synced before returning, so a successful
        result guarantees the bytes are visible to later opens of the file.

        Args:
            path: Program to execute.
            args: Arguments (excluding the program itself).
            sink: Binary file object with a real file descriptor.
            env: Complete environment for the child. None inherits ours.
            timeout: Seconds before the child is terminated.
            cancel_token: Token that terminates the child when cancelled.
            group: Optional command group, see terminate_group().

        Returns:
            CommandResult with empty stdout.

        Raises:
            CommandTimeoutError: If timeout expired.
            CommandCancelledError: If cancel_token fired.

        """
        sink.flush()
        result = self._execute(
            path,
            args,
            stdout=sink,
            env=env,
            timeout=timeout,
            cancel_token=cancel_token,
            group=group,
        )
        try:
            sink.flush()
            os.fsync(sink.fileno())
        except OSError as e:
            logger.warning("Failed to sync redirected output: %s", e)
            if not result.stderr:
                return CommandResult(
                    args=result.args,
                    stdout="",
                    stderr=str(e),
                    exit_code=result.exit_code or LAUNCH_FAILURE_EXIT_CODE,
                    error=result.error or e,
                )
        return result

    def _execute(
        self,
        path: str,
        args: Sequence[str],
        *,
        stdout: int | BinaryIO,
        env: Mapping[str, str] | None,
        timeout: float | None,
        cancel_token: CancellationToken | None,
        group: str | None,
    ) -> CommandResult:
        argv = (path, *args)
        if group is not None:
            self.terminate_group(group)

        logger.debug("Running: %s", " ".join(argv))
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None,
                creationflags=get_creation_flags(),
            )
        except OSError as e:
            logger.warning("Failed to launch %s: %s", path, e)
            return CommandResult(
                args=argv,
                stdout="",
                stderr=str(e),
                exit_code=LAUNCH_FAILURE_EXIT_CODE,
                error=e,
            )

        if group is not None:
            self._register(group, process)
        try:
            out, err = self._wait(process, argv, timeout, cancel_token)
        finally:
            if group is not None:
                self._unregister(group, process)

        exit_code = normalize_returncode(process.returncode)
        logger.debug("Process %d exited with %d", process.pid, exit_code)
        return CommandResult(
            args=argv,
            stdout=_decode(out),
            stderr=_decode(err),
            exit_code=exit_code,
        )

    def _wait(
        self,
        process: subprocess.Popen[bytes],
        argv: tuple[str, ...],
        timeout: float | None,
        cancel_token: CancellationToken | None,
    ) -> tuple[bytes | None, bytes | None]:
        deadline = time.monotonic() + timeout if timeout is not None else None
        while True:
            try:
                return process.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                pass

            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Cancelling '%s' (PID %d)", argv[0], process.pid)
                self._terminate(process)
                raise CommandCancelledError(f"command cancelled: {' '.join(argv[1:])}")

            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(
                    "Command '%s' timed out after %.1fs (PID %d)", argv[0], timeout, process.pid
                )
                self._terminate(process)
                raise CommandTimeoutError(
                    f"command timed out after {timeout:.1f}s: {' '.join(argv[1:])}"
                )

    def _terminate(self, process: subprocess.Popen[bytes]) -> None:
        """Terminate a child: SIGTERM, then SIGKILL after terminate_wait."""
        try:
            process.terminate()
        except OSError as e:
            logger.debug("terminate() failed for PID %d: %s", process.pid, e)
        try:
            process.communicate(timeout=self.terminate_wait)
            return
        except subprocess.TimeoutExpired:
            logger.warning("Process %d ignored SIGTERM, killing", process.pid)
        process.kill()
        process.communicate()
