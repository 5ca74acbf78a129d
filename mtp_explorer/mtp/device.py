"""Per-operation device API on top of the MTP CLI.

Each public method ensures a device session first, runs one bounded CLI
invocation while holding the pane's channel, and translates the cleaned
result into a return value or a typed exception. Any "no device" signal
clears the session so the next call re-detects.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from mtp_explorer import local
from mtp_explorer.config import settings
from mtp_explorer.domain.models import (
    CleanedResult,
    DeviceSession,
    ErrorFlag,
    FileEntry,
    StorageEntry,
)
from mtp_explorer.logging import LoggerFactory

from . import commands
from .channel_lock import ChannelLock
from .command_runners import run_cleaned
from .exceptions import (
    DeviceVanishedError,
    InvalidArgumentError,
    NoSessionError,
    SubprocessFailureError,
)
from .sanitizer import indicates_no_device, indicates_not_found
from .session import SessionGuard

log = LoggerFactory.for_mtp()

ILLEGAL_NAME_CHARACTERS = re.compile(r'[/\\?%*:|"<>]')
_SIZE_FIELD = re.compile(r"\bsize\b\s*[:=]?\s*(\d+)", re.IGNORECASE)
# lsext: <object id> <is folder 0|1> <size> <mtime epoch> <name>
_LISTING_LINE = re.compile(r"^\s*(\d+)\s+([01])\s+(\d+)\s+(\d+)\s+(.*?)\s*$")
# storage-list: <storage id> <description>
_STORAGE_LINE = re.compile(r"^\s*(\d+)\s+(.*?)\s*$")


def validate_new_name(name: Optional[str]) -> str:
    """Reject blank names and names containing path/shell metacharacters."""
    if name is None or not name.strip():
        raise InvalidArgumentError("Invalid name.", ErrorFlag.INVALID_PATH)
    if ILLEGAL_NAME_CHARACTERS.search(name):
        raise InvalidArgumentError(
            "Error: Illegal characters.", ErrorFlag.ILLEGAL_CHARACTERS
        )
    return name


def parse_size(listing: Optional[str]) -> Optional[int]:
    """Pull a byte size out of ``properties`` output, if one is printed."""
    if not listing:
        return None
    match = _SIZE_FIELD.search(listing)
    return int(match.group(1)) if match else None


def parse_listing_line(line: str, folder: str) -> Optional[FileEntry]:
    """Decode one ``lsext`` row; None for banners and blank lines."""
    match = _LISTING_LINE.match(line)
    if match is None or not match.group(5):
        return None
    _object_id, folder_flag, size, mtime, name = match.groups()
    return FileEntry(
        name=name,
        path=posixpath.join(folder, name),
        extension=posixpath.splitext(name)[1],
        size=int(size),
        is_folder=folder_flag == "1",
        date_added=datetime.fromtimestamp(int(mtime)).strftime(local.DATE_FORMAT),
    )


def parse_storage_line(line: str) -> Optional[StorageEntry]:
    match = _STORAGE_LINE.match(line)
    if match is None:
        return None
    return StorageEntry(storage_id=match.group(1), description=match.group(2))


def detect_device(
    binary: Optional[str] = None, channel: Optional[ChannelLock] = None
) -> DeviceSession:
    """Probe for a device with a bare ``pwd``; raise NoSessionError if absent."""
    command = commands.bounded(commands.pwd(), binary=binary)
    if channel is not None:
        with channel.operation("detect"):
            result = run_cleaned(command)
    else:
        result = run_cleaned(command)
    if not result.ok:
        raise NoSessionError(result.message or "")
    return DeviceSession(description=(result.data or "").strip())


class MtpDevice:
    """Device-side counterpart of the local filesystem helpers."""

    def __init__(
        self,
        binary: Optional[str] = None,
        guard: Optional[SessionGuard] = None,
        channel: Optional[ChannelLock] = None,
    ):
        self.binary = binary
        self.channel = channel or ChannelLock("mtp")
        self.guard = guard or SessionGuard(
            lambda: detect_device(self.binary, self.channel)
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def storage_id(self):
        session = self.guard.session
        return session.storage_id if session is not None else None

    def _run(
        self,
        operation: str,
        *subcommands: str,
        flags=(),
        storage_id=None,
        with_storage: bool = True,
    ) -> CleanedResult:
        self.guard.ensure_session()
        if not with_storage:
            storage_id = None
        elif storage_id is None:
            storage_id = self.storage_id
        command = commands.bounded(
            *subcommands, storage_id=storage_id, flags=flags, binary=self.binary
        )
        with self.channel.operation(operation):
            result = run_cleaned(command)
        if not result.ok and indicates_no_device(result):
            self.guard.clear(f"{operation}: {result.message}")
            raise DeviceVanishedError(operation, result.message or "")
        return result

    def _require_ok(
        self,
        operation: str,
        result: CleanedResult,
        flag: ErrorFlag = ErrorFlag.PROCESS_FAILED,
    ) -> CleanedResult:
        if not result.ok:
            log.error(f"{operation} failed: {result.message}")
            raise SubprocessFailureError(
                result.message or f"{operation} failed", result, flag
            )
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def select_storage(self, storage_id) -> DeviceSession:
        """Select ``storage_id`` for every subsequent call."""
        if storage_id is None or str(storage_id).strip() == "":
            raise InvalidArgumentError("Invalid storage.", ErrorFlag.INVALID_PATH)
        session = self.guard.ensure_session()
        command = commands.bounded(commands.storage(storage_id), binary=self.binary)
        with self.channel.operation("storage"):
            result = run_cleaned(command)
        if not result.ok and indicates_no_device(result):
            self.guard.clear(f"storage: {result.message}")
            raise DeviceVanishedError("storage", result.message or "")
        self._require_ok("storage", result)
        session = replace(session, storage_id=str(storage_id))
        self.guard.update(session)
        return session

    def list_dir(
        self, path: str = "/", ignore_hidden: Optional[bool] = None
    ) -> list[FileEntry]:
        """List one device folder, non-recursively.

        ``ignore_hidden`` defaults to the ``hide_hidden_files["mtp"]``
        setting. Output lines that are not entry rows are skipped.
        """
        if path is None or not str(path).strip():
            raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
        if ignore_hidden is None:
            hidden = settings.get_setting("hide_hidden_files") or {}
            ignore_hidden = bool(hidden.get("mtp", True))
        result = self._require_ok("lsext", self._run("lsext", commands.lsext(path)))

        entries: list[FileEntry] = []
        for line in (result.data or "").splitlines():
            entry = parse_listing_line(line, path)
            if entry is None:
                continue
            if ignore_hidden and local.is_hidden(entry.name):
                continue
            entries.append(entry)
        log.debug(f"Listed {len(entries)} entries in {path}")
        return entries

    def list_storages(self) -> list[StorageEntry]:
        """Storage areas on the device, in the order the CLI reports them."""
        result = self._require_ok(
            "storage-list",
            self._run("storage-list", commands.storage_list(), with_storage=False),
        )
        storages = [
            storage
            for storage in map(parse_storage_line, (result.data or "").splitlines())
            if storage is not None
        ]
        log.debug(f"Found {len(storages)} storage area(s)")
        return storages

    def properties(self, path: str, storage_id=None) -> CleanedResult:
        if path is None:
            raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
        return self._require_ok(
            "properties",
            self._run(
                "properties", commands.properties(path), storage_id=storage_id
            ),
        )

    def file_exists(self, path: str) -> bool:
        if path is None:
            raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
        result = self._run("properties", commands.properties(path))
        if result.ok:
            return True
        if indicates_not_found(result):
            return False
        self._require_ok("properties", result)
        return False

    def files_exist(self, paths: Iterable[str]) -> bool:
        """True if any of ``paths`` already exists on the device."""
        return any(self.file_exists(path) for path in paths)

    def rename(self, old_path: str, new_path: str) -> None:
        if old_path is None or new_path is None:
            raise InvalidArgumentError(
                "No files selected.", ErrorFlag.NO_FILES_SELECTED
            )
        new_name = validate_new_name(posixpath.basename(new_path))
        self._require_ok(
            "rename", self._run("rename", commands.rename(old_path, new_name))
        )

    def delete(self, paths: Iterable[str]) -> None:
        paths = list(paths or [])
        if not paths:
            raise InvalidArgumentError(
                "No files selected.", ErrorFlag.NO_FILES_SELECTED
            )
        for path in paths:
            self._require_ok("rm", self._run("rm", commands.rm(path)))

    def new_folder(self, path: str) -> None:
        if path is None:
            raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
        validate_new_name(posixpath.basename(path.rstrip("/")))
        self._require_ok("mkpath", self._run("mkpath", commands.mkpath(path)))

    def verbose_report(self) -> CleanedResult:
        """Run the ``pwd -v`` diagnostic probe.

        Does not require a session: the report is most useful when
        detection is failing.
        """
        command = commands.verbose_report(binary=self.binary)
        with self.channel.operation("report"):
            result = run_cleaned(command)
        if not result.ok:
            log.warning(f"Verbose report signalled: {result.message}")
        return result
