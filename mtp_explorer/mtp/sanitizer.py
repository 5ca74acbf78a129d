"""Separate real CLI errors from the noise it prints on every call.

On some hosts the CLI reports a failed device probe even when the operation
succeeded. Those lines (and blank lines) are absorbed here and never reach
the user.
"""

from __future__ import annotations

import re
from typing import Optional

from mtp_explorer.domain.models import CleanedResult, RawResult
from mtp_explorer.logging import LoggerFactory

log = LoggerFactory.for_mtp()

BENIGN = "benign"
SIGNAL = "signal"

NOISE_MARKERS = (
    "device::find failed",
    "iocreateplugininterfaceforservice",
)

# Expected banner after "storage <id>" in a streaming batch.
STORAGE_BANNER_MARKER = "selected storage"
STORAGE_BANNER_MAX_INDEX = 2

NO_DEVICE_MARKERS = (
    "no mtp device",
    "no raw devices found",
    "device not found",
    "no devices",
)

NOT_FOUND_MARKERS = (
    "could not find",
    "not found",
    "no such file",
)

_LINE_SPLIT = re.compile(r"\r?\n")


def classify(line: str, index: Optional[int] = None) -> str:
    """Return ``BENIGN`` or ``SIGNAL`` for one output line.

    ``index`` is the line's position within a streaming batch; the storage
    banner is only benign in the first two lines.
    """
    if line in ("", "\n", "\r\n"):
        return BENIGN
    lowered = line.lower()
    if any(marker in lowered for marker in NOISE_MARKERS):
        return BENIGN
    if (
        index is not None
        and index < STORAGE_BANNER_MAX_INDEX
        and STORAGE_BANNER_MARKER in lowered
    ):
        return BENIGN
    return SIGNAL


def is_junk(line: str, index: Optional[int] = None) -> bool:
    return classify(line, index) == BENIGN


def split_lines(text: Optional[str]) -> list[str]:
    if text is None:
        return []
    return _LINE_SPLIT.split(text)


def filter_signal_lines(text: Optional[str]) -> list[str]:
    kept = []
    for line in split_lines(text):
        if is_junk(line):
            if line.strip():
                log.trace(f"Absorbed noise: {line.strip()}")
            continue
        kept.append(line)
    return kept


def clean_junk(
    error: Optional[str] = None,
    stdout: Optional[str] = None,
    stderr: Optional[str] = None,
) -> CleanedResult:
    """Filter ``error`` and ``stderr`` line by line; ``stdout`` passes through."""
    error_lines = filter_signal_lines(error)
    stderr_lines = filter_signal_lines(stderr)
    return CleanedResult(
        data=stdout,
        stderr="\n".join(stderr_lines) if stderr_lines else None,
        error="\n".join(error_lines) if error_lines else None,
    )


def clean_result(raw: RawResult) -> CleanedResult:
    return clean_junk(error=raw.error, stdout=raw.stdout, stderr=raw.stderr)


def _contains_any(result: CleanedResult, markers: tuple[str, ...]) -> bool:
    text = "\n".join(part for part in (result.error, result.stderr) if part).lower()
    return any(marker in text for marker in markers)


def indicates_no_device(result: CleanedResult) -> bool:
    """True when the surviving signal says the device is gone."""
    return _contains_any(result, NO_DEVICE_MARKERS)


def indicates_not_found(result: CleanedResult) -> bool:
    return _contains_any(result, NOT_FOUND_MARKERS)
