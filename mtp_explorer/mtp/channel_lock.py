"""Serialises CLI invocations against one device channel.

The CLI/device channel is not reentrant, so each explorer pane owns one
:class:`ChannelLock` and every subprocess it starts runs inside
:meth:`ChannelLock.operation`.

Usage:
    lock = ChannelLock("mtp")

    with lock.operation("rename"):
        run_cleaned(command)

    # In UI polling code:
    if lock.is_active():
        ...
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator

from mtp_explorer.logging import LoggerFactory


log = LoggerFactory.for_mtp()


class ChannelLock:
    def __init__(self, name: str = "mtp"):
        self.name = name
        self._channel = threading.Lock()
        self._state_lock = threading.Lock()
        self._active_operation: str | None = None

    @contextmanager
    def operation(self, operation_name: str) -> Generator[None, None, None]:
        """Hold the channel for the duration of one CLI invocation.

        Blocks until any in-flight invocation on this channel finishes.

        Args:
            operation_name: Short label for logs (e.g. "paste", "rm")
        """
        self._channel.acquire()
        with self._state_lock:
            self._active_operation = operation_name
            log.debug(f"Channel {self.name} acquired for {operation_name}")
        try:
            yield
        finally:
            with self._state_lock:
                self._active_operation = None
                log.debug(f"Channel {self.name} released after {operation_name}")
            self._channel.release()

    def is_active(self) -> bool:
        """Check if an invocation is currently in flight on this channel."""
        with self._state_lock:
            return self._active_operation is not None

    @property
    def active_operation(self) -> str | None:
        with self._state_lock:
            return self._active_operation
