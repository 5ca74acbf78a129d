"""MTP CLI driver.

This package turns the external MTP command-line client into typed calls:

Command Construction:
    - escape_shell_mtp(): Escape a path for the CLI's nested quoting
    - commands.bounded() / commands.streaming(): Build invocations

Command Execution:
    - run_bounded(): Run to completion, capture output
    - run_cleaned(): Bounded run with noise filtering
    - run_streaming(): Long-lived process with a line feed

Output Handling:
    - classify() / clean_junk(): Separate noise from real errors
    - parse_progress_line() / advance(): Decode and sample transfer progress

Session:
    - SessionGuard: Single-flight lazy device detection
    - MtpDevice: Per-operation device API (listing, storages, file ops)
"""

from . import commands
from .channel_lock import ChannelLock
from .command_runners import (
    StreamEvent,
    StreamingProcess,
    run_bounded,
    run_cleaned,
    run_streaming,
)
from .device import MtpDevice, detect_device
from .escaping import escape_shell_mtp
from .progress import advance, parse_progress_line
from .sanitizer import BENIGN, SIGNAL, classify, clean_junk
from .session import SessionGuard


__all__ = [
    "BENIGN",
    "SIGNAL",
    "ChannelLock",
    "MtpDevice",
    "SessionGuard",
    "StreamEvent",
    "StreamingProcess",
    "advance",
    "classify",
    "clean_junk",
    "commands",
    "detect_device",
    "escape_shell_mtp",
    "parse_progress_line",
    "run_bounded",
    "run_cleaned",
    "run_streaming",
]
