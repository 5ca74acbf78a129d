"""Domain model for the explorer core.

Type-safe value objects shared by the MTP runners, the progress parser and
the transfer orchestrator, replacing the loose ``{error, stderr, data}``
dicts that otherwise end up scattered across callbacks.
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator


# ==============================================================================
# Enums
# ==============================================================================


class DeviceType(Enum):
    """Which pane/backend an operation targets."""

    LOCAL = "local"
    MTP = "mtp"


class TransferDirection(Enum):
    """Direction of a paste between the two panes."""

    LOCAL_TO_MTP = "localtoMtp"
    MTP_TO_LOCAL = "mtpToLocal"

    @property
    def verb(self) -> str:
        """CLI subcommand that moves one item in this direction."""
        return "put" if self is TransferDirection.LOCAL_TO_MTP else "get"

    @property
    def destination_device(self) -> DeviceType:
        if self is TransferDirection.LOCAL_TO_MTP:
            return DeviceType.MTP
        return DeviceType.LOCAL


class ErrorFlag(Enum):
    """Typed error flags surfaced to the GUI layer."""

    NO_MTP = "NO_MTP"
    INVALID_PATH = "INVALID_PATH"
    NO_FILES_SELECTED = "NO_FILES_SELECTED"
    INVALID_NOT_FOUND = "INVALID_NOT_FOUND"
    ILLEGAL_CHARACTERS = "ILLEGAL_CHARACTERS"
    DOWNLOAD_FILE_FAILED = "DOWNLOAD_FILE_FAILED"
    UPLOAD_FILE_FAILED = "UPLOAD_FILE_FAILED"
    PROCESS_FAILED = "PROCESS_FAILED"


class ProgressEvent(Enum):
    PROGRESS = "progress"
    DONE = "done"


class TransferPhase(Enum):
    """Lifecycle of one paste operation."""

    IDLE = "idle"
    PREFLIGHT = "preflight"
    LEGACY_PER_ITEM = "legacy_per_item"
    STREAMING_BATCH = "streaming_batch"
    DRAINING = "draining"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferPhase.SUCCESS, TransferPhase.FAILED)


# ==============================================================================
# Subprocess Results
# ==============================================================================


@dataclass(frozen=True)
class RawResult:
    """Unfiltered capture of one bounded CLI invocation."""

    stdout: str | None = None
    stderr: str | None = None
    error: str | None = None
    returncode: int | None = None


@dataclass(frozen=True)
class CleanedResult:
    """A RawResult after noise filtering.

    ``stderr`` and ``error`` are ``None`` exactly when no signal lines remain.
    """

    data: str | None = None
    stderr: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.stderr is None and self.error is None

    @property
    def message(self) -> str | None:
        """Best single line of text to show the user, if any."""
        return self.error or self.stderr


# ==============================================================================
# Transfer Queue
# ==============================================================================


@dataclass(frozen=True)
class TransferItem:
    """One source path enqueued for copy, with its resolved destination."""

    source: str
    destination: str

    @property
    def name(self) -> str:
        return os.path.basename(self.source.rstrip("/\\")) or self.source


def resolve_destination(
    source: str, destination_folder: str, direction: TransferDirection
) -> str:
    """Join the basename of ``source`` onto the destination folder.

    Device paths are always POSIX; local paths follow the host convention.
    """
    base = os.path.basename(source.rstrip("/\\")) or source
    if direction.destination_device is DeviceType.MTP:
        return posixpath.join(destination_folder, base)
    return os.path.join(destination_folder, base)


@dataclass(frozen=True)
class TransferQueue:
    """Ordered, immutable sequence of TransferItems for one paste."""

    items: tuple[TransferItem, ...] = ()

    @classmethod
    def build(
        cls,
        sources: Iterable[str],
        destination_folder: str,
        direction: TransferDirection,
    ) -> TransferQueue:
        return cls(
            tuple(
                TransferItem(
                    source=source,
                    destination=resolve_destination(
                        source, destination_folder, direction
                    ),
                )
                for source in sources
            )
        )

    def __iter__(self) -> Iterator[TransferItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> TransferItem:
        return self.items[index]


# ==============================================================================
# Progress
# ==============================================================================


@dataclass(frozen=True)
class ProgressSample:
    """One decoded line of streaming transfer output."""

    event: ProgressEvent
    file_path: str = ""
    bytes_sent: int = 0
    total_bytes: int = 0

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return min(100.0, (self.bytes_sent / self.total_bytes) * 100)


@dataclass(frozen=True)
class ProgressState:
    """Counters carried between samples of one file; zeroed on ``:done``.

    Timestamps are milliseconds.
    """

    prev_block_remaining: int = 0
    curr_block_remaining: int = 0
    prev_timestamp: float = 0
    curr_timestamp: float = 0


@dataclass(frozen=True)
class TransferProgress:
    """Payload handed to ``on_progress``."""

    elapsed_time: str
    speed: str
    speed_bytes: float
    active_file_progress: float
    current_file: str
    active_file_size: int
    active_file_size_sent: int
    total_files: int
    files_sent: int
    total_file_size: int
    total_file_size_sent: int
    total_file_progress: float
    direction: TransferDirection


@dataclass(frozen=True)
class TransferErrorReport:
    """Payload handed to ``on_error``."""

    error: str | None
    stderr: str | None = None
    data: str | None = None
    flag: ErrorFlag | None = None


# ==============================================================================
# Session / Listing
# ==============================================================================


@dataclass(frozen=True)
class DeviceSession:
    """A detected device with (optionally) a selected storage."""

    description: str = ""
    storage_id: str | None = None
    detected_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FileEntry:
    """One row of a directory listing."""

    name: str
    path: str
    extension: str
    size: int
    is_folder: bool
    date_added: str


@dataclass(frozen=True)
class StorageEntry:
    """One storage area (internal memory, SD card) exposed by the device."""

    storage_id: str
    description: str
