"""Domain models for the explorer core."""

from __future__ import annotations

from .models import (
    CleanedResult,
    DeviceSession,
    DeviceType,
    ErrorFlag,
    FileEntry,
    ProgressEvent,
    ProgressSample,
    ProgressState,
    RawResult,
    StorageEntry,
    TransferDirection,
    TransferErrorReport,
    TransferItem,
    TransferPhase,
    TransferProgress,
    TransferQueue,
)


__all__ = [
    "CleanedResult",
    "DeviceSession",
    "DeviceType",
    "ErrorFlag",
    "FileEntry",
    "ProgressEvent",
    "ProgressSample",
    "ProgressState",
    "RawResult",
    "StorageEntry",
    "TransferDirection",
    "TransferErrorReport",
    "TransferItem",
    "TransferPhase",
    "TransferProgress",
    "TransferQueue",
]
