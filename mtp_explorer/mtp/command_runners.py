"""MTP CLI execution: bounded (call-and-return) and streaming modes."""

from __future__ import annotations

import os
import queue
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from mtp_explorer.domain.models import CleanedResult, RawResult
from mtp_explorer.logging import LoggerFactory

from .commands import Command
from .exceptions import SpawnError
from .sanitizer import clean_result

log = LoggerFactory.for_mtp()

# Exit statuses the shell uses when it cannot exec the target.
SHELL_NOT_EXECUTABLE = 126
SHELL_NOT_FOUND = 127

STDOUT = "stdout"
STDERR = "stderr"
EXIT = "exit"

# Seconds to wait after SIGTERM before escalating to SIGKILL.
KILL_TIMEOUT = 5.0


def _spawn(command: Command) -> subprocess.Popen:
    # Each command gets its own session so the shell and the CLI it forks
    # can be signalled together through the process group.
    try:
        return subprocess.Popen(
            command.shell_string,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        raise SpawnError(command.shell_string, str(e)) from e


def _signal_group(process: subprocess.Popen, sig: int) -> None:
    """Send ``sig`` to every process in the group led by ``process``."""
    try:
        # start_new_session makes the shell the group leader, so its pid is
        # the group id even after the leader itself has been reaped.
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        log.debug(f"Process group {process.pid} already gone")


def _kill(process: subprocess.Popen) -> None:
    _signal_group(process, signal.SIGKILL)
    process.wait()


def check_spawned(command: Command, returncode: Optional[int], stderr: str) -> None:
    if returncode in (SHELL_NOT_EXECUTABLE, SHELL_NOT_FOUND):
        reason = stderr.strip().splitlines()[-1] if stderr.strip() else (
            "permission denied"
            if returncode == SHELL_NOT_EXECUTABLE
            else "command not found"
        )
        raise SpawnError(command.shell_string, reason)


def run_bounded(
    command: Command,
    poll_callback: Optional[Callable[[], None]] = None,
    poll_interval: float = 1.0,
) -> RawResult:
    """Run ``command`` to completion and capture its output.

    When ``poll_callback`` is given it is invoked every ``poll_interval``
    seconds while the process is still running. If the callback raises,
    the process group is killed before the exception propagates.
    """
    log.debug(f"Running command: {command}")
    process = _spawn(command)
    timeout = poll_interval if poll_callback else None
    try:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=timeout)
                break
            except subprocess.TimeoutExpired:
                poll_callback()
    except BaseException:
        log.debug(f"Killing abandoned command: {command}")
        _kill(process)
        raise
    stdout = stdout or ""
    stderr = stderr or ""
    check_spawned(command, process.returncode, stderr)

    error = None
    if process.returncode != 0:
        error = stderr or f"Command failed with exit code {process.returncode}"
        log.debug(f"Command exited with code {process.returncode}")
    return RawResult(
        stdout=stdout,
        stderr=stderr,
        error=error,
        returncode=process.returncode,
    )


def run_cleaned(
    command: Command,
    poll_callback: Optional[Callable[[], None]] = None,
    poll_interval: float = 1.0,
) -> CleanedResult:
    """Bounded run followed by noise filtering."""
    result = clean_result(run_bounded(command, poll_callback, poll_interval))
    if not result.ok:
        log.debug(f"Command signalled: {result.message}")
    return result


@dataclass(frozen=True)
class StreamEvent:
    """One notification from a streaming process.

    ``kind`` is ``stdout``/``stderr`` (with ``line``) or ``exit`` (with
    ``returncode``). ``exit`` is always the last event.
    """

    kind: str
    line: Optional[str] = None
    returncode: Optional[int] = None


class StreamingProcess:
    """A long-lived CLI process exposing stdout/stderr as a line feed.

    Two reader threads push lines onto a queue; a waiter thread posts the
    exit event once both readers have drained, so consumers always see
    ``exit`` last.
    """

    def __init__(self, command: Command):
        self.command = command
        self._events: queue.Queue[StreamEvent] = queue.Queue()
        self._process: Optional[subprocess.Popen] = None
        self._threads: list[threading.Thread] = []

    def start(self) -> StreamingProcess:
        log.debug(f"Spawning streaming command: {self.command}")
        self._process = _spawn(self.command)

        readers = [
            threading.Thread(
                target=self._read, args=(self._process.stdout, STDOUT), daemon=True
            ),
            threading.Thread(
                target=self._read, args=(self._process.stderr, STDERR), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()
        waiter = threading.Thread(target=self._wait, args=(readers,), daemon=True)
        waiter.start()
        self._threads = [*readers, waiter]
        return self

    def _read(self, stream, kind: str) -> None:
        if stream is None:
            return
        for line in stream:
            self._events.put(StreamEvent(kind, line=line.rstrip("\r\n")))

    def _wait(self, readers: list[threading.Thread]) -> None:
        for reader in readers:
            reader.join()
        returncode = self._process.wait()
        self._events.put(StreamEvent(EXIT, returncode=returncode))

    def events(self) -> Iterator[StreamEvent]:
        """Yield events in arrival order, ending with ``exit``."""
        if self._process is None:
            raise RuntimeError("StreamingProcess.start() has not been called")
        while True:
            event = self._events.get()
            yield event
            if event.kind == EXIT:
                return

    def terminate(self) -> None:
        """Kill the process group; the consumer still receives ``exit``."""
        if self._process is not None and self._process.poll() is None:
            log.debug("Terminating streaming command")
            _signal_group(self._process, signal.SIGTERM)

    def close(self, kill_timeout: float = KILL_TIMEOUT) -> None:
        """Terminate if still running and reap the process.

        Escalates to SIGKILL when the group outlives ``kill_timeout``.
        """
        if self._process is None:
            return
        self.terminate()
        try:
            self._process.wait(timeout=kill_timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"Streaming command ignored SIGTERM: {self.command}")
            _kill(self._process)

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process is not None else None


def run_streaming(command: Command) -> StreamingProcess:
    return StreamingProcess(command).start()


__all__ = [
    "StreamEvent",
    "check_spawned",
    "StreamingProcess",
    "run_bounded",
    "run_cleaned",
    "run_streaming",
]
