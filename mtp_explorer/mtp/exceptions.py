"""Custom exceptions for device and transfer operations.

Every exception carries an :class:`ErrorFlag` so the orchestrator can turn
any failure into the ``{error, stderr, data}`` report the GUI expects.

Exception Hierarchy:
    ExplorerError (base)
        ├── SessionError
        │   ├── NoSessionError
        │   └── DeviceVanishedError
        ├── InvalidArgumentError
        ├── SubprocessFailureError
        │   ├── ListingFailedError
        │   └── TransferFailedError
        └── SpawnError

Usage:
    from mtp_explorer.mtp.exceptions import InvalidArgumentError

    if not destination_folder:
        raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
"""

from __future__ import annotations

from mtp_explorer.domain.models import CleanedResult, ErrorFlag


class ExplorerError(Exception):
    """Base exception for all explorer operations."""

    flag: ErrorFlag = ErrorFlag.PROCESS_FAILED


class SessionError(ExplorerError):
    """Base exception for device-session errors."""

    flag = ErrorFlag.NO_MTP


class NoSessionError(SessionError):
    """Device detection failed; no session is live."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        msg = "No MTP device detected"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DeviceVanishedError(SessionError):
    """The device disappeared mid-session; the session has been cleared."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        msg = f"MTP device vanished during {operation}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidArgumentError(ExplorerError):
    """Rejected before any subprocess is spawned."""

    def __init__(self, message: str, flag: ErrorFlag = ErrorFlag.INVALID_PATH):
        self.flag = flag
        super().__init__(message)


class SubprocessFailureError(ExplorerError):
    """Signal lines survived noise filtering."""

    def __init__(
        self,
        message: str,
        result: CleanedResult | None = None,
        flag: ErrorFlag = ErrorFlag.PROCESS_FAILED,
    ):
        self.result = result or CleanedResult(error=message)
        self.flag = flag
        super().__init__(message)

    @property
    def stderr(self) -> str | None:
        return self.result.stderr

    @property
    def data(self) -> str | None:
        return self.result.data


class ListingFailedError(SubprocessFailureError):
    """Listing a source item before transfer failed."""

    def __init__(self, path: str, result: CleanedResult | None = None):
        self.path = path
        detail = result.message if result is not None else None
        msg = f"Failed to list {path}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, result)


class TransferFailedError(SubprocessFailureError):
    """Copying one item (or the whole streaming batch) failed.

    ``item`` is ``None`` for process-level failures of a streaming batch.
    """

    def __init__(
        self,
        message: str,
        result: CleanedResult | None = None,
        flag: ErrorFlag = ErrorFlag.PROCESS_FAILED,
        item: str | None = None,
    ):
        self.item = item
        super().__init__(message, result, flag)

    @property
    def is_process_level(self) -> bool:
        return self.item is None


class SpawnError(ExplorerError):
    """The CLI binary could not be started at all. Never retried."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to start {command}: {reason}")
