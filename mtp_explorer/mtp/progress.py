"""Progress decoding and rate-limited sampling for streaming transfers.

The CLI reports transfers as::

    :progress <path tokens...> <bytesSent> <totalBytes>
    :done

The path may itself contain spaces, so the two trailing integers are
recovered with a regex and everything between the tag and them is the path.
Unknown tags and malformed lines are dropped.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from mtp_explorer.domain.models import ProgressEvent, ProgressSample, ProgressState

PROGRESS_TAG = ":progress"
DONE_TAG = ":done"

# Minimum gap between externally visible samples.
SAMPLE_INTERVAL_MS = 1000

_TRAILING_COUNTERS = re.compile(r" (\d+) (\d+)$")


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """Decode one stdout line, or return None if it carries no event."""
    line = line.rstrip("\r\n")
    if not line:
        return None
    tokens = line.split(" ")
    tag = tokens[0]

    if tag == DONE_TAG:
        return ProgressSample(event=ProgressEvent.DONE)
    if tag != PROGRESS_TAG:
        return None
    if len(tokens) < 3:
        return None

    match = _TRAILING_COUNTERS.search(line)
    if not match:
        return None
    bytes_sent, total_bytes = int(match.group(1)), int(match.group(2))
    file_path = " ".join(tokens[1 : len(tokens) - 2])
    return ProgressSample(
        event=ProgressEvent.PROGRESS,
        file_path=file_path,
        bytes_sent=bytes_sent,
        total_bytes=total_bytes,
    )


def advance(
    state: ProgressState, sample: ProgressSample, now_ms: float
) -> tuple[ProgressState, Optional[float]]:
    """Fold one sample into ``state``.

    Returns the new state and the instantaneous speed in bytes/second, or
    ``None`` when the sample is coalesced because less than
    ``SAMPLE_INTERVAL_MS`` has passed since the last visible sample. A
    ``done`` sample zeroes the state and is never visible.
    """
    if sample.event is ProgressEvent.DONE:
        return ProgressState(), None

    current = replace(
        state,
        curr_block_remaining=sample.total_bytes - sample.bytes_sent,
        curr_timestamp=now_ms,
    )
    elapsed_ms = current.curr_timestamp - current.prev_timestamp
    if elapsed_ms < SAMPLE_INTERVAL_MS:
        return current, None

    speed = max(0, current.prev_block_remaining - current.curr_block_remaining) * (
        1000 / elapsed_ms
    )
    rolled = replace(
        current,
        prev_block_remaining=current.curr_block_remaining,
        prev_timestamp=current.curr_timestamp,
    )
    return rolled, speed


def human_size(size_bytes) -> str:
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def format_speed(speed_bytes: Optional[float]) -> str:
    if not speed_bytes:
        return "--"
    return human_size(speed_bytes)


def format_elapsed(milliseconds: float) -> str:
    """Format a duration as HH:MM:SS."""
    seconds = max(0, int(milliseconds // 1000))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def percentage(part: float, total: float) -> float:
    if not total:
        return 0.0
    return max(0.0, min(100.0, (part / total) * 100))
