"""Local filesystem primitives for the explorer's local pane."""

from __future__ import annotations

import os
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from mtp_explorer.config import settings
from mtp_explorer.domain.models import ErrorFlag, FileEntry
from mtp_explorer.logging import LoggerFactory
from mtp_explorer.mtp.exceptions import InvalidArgumentError

log = LoggerFactory.for_local()

# OS metadata files that never belong in a listing.
JUNK_NAMES = {
    ".DS_Store",
    ".AppleDouble",
    ".LSOverride",
    ".Spotlight-V100",
    ".Trashes",
    ".fseventsd",
    ".DocumentRevisions-V100",
    ".TemporaryItems",
    "Thumbs.db",
    "ehthumbs.db",
    "Desktop.ini",
    "desktop.ini",
    "npm-debug.log",
}
_JUNK_PATTERNS = (
    re.compile(r"^\._.*"),  # AppleDouble resource forks
    re.compile(r"^\.nfs.*"),
    re.compile(r".*~$"),
    re.compile(r"^\..*\.swp$"),
)
_HIDDEN = re.compile(r"(^|/)\.[^/.]")
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def is_junk(name: str) -> bool:
    return name in JUNK_NAMES or any(p.match(name) for p in _JUNK_PATTERNS)


def is_hidden(name: str) -> bool:
    return bool(_HIDDEN.search(name))


def list_local_dir(
    path: str, ignore_hidden: Optional[bool] = None
) -> list[FileEntry]:
    """List one directory, skipping OS junk (and dotfiles if requested).

    ``ignore_hidden`` defaults to the ``hide_hidden_files["local"]`` setting.

    Raises:
        OSError: If the directory cannot be read
    """
    if ignore_hidden is None:
        hidden = settings.get_setting("hide_hidden_files") or {}
        ignore_hidden = bool(hidden.get("local", True))
    names = [name for name in os.listdir(path) if not is_junk(name)]
    if ignore_hidden:
        names = [name for name in names if not is_hidden(name)]

    entries: list[FileEntry] = []
    seen: set[str] = set()
    for name in names:
        full_path = os.path.abspath(os.path.join(path, name))
        if full_path in seen or not os.path.exists(full_path):
            continue
        seen.add(full_path)
        stat = os.stat(full_path)
        entries.append(
            FileEntry(
                name=name,
                path=full_path,
                extension=os.path.splitext(name)[1],
                size=stat.st_size,
                is_folder=os.path.isdir(full_path) and not os.path.islink(full_path),
                date_added=datetime.fromtimestamp(stat.st_atime).strftime(
                    DATE_FORMAT
                ),
            )
        )
    return entries


def local_files_exist(paths: Iterable[str]) -> bool:
    """True if any of ``paths`` exists."""
    return any(os.path.exists(os.path.abspath(p)) for p in paths)


def delete_local_files(paths: Iterable[str]) -> None:
    """Delete files and folders in order; the first failure stops.

    Raises:
        InvalidArgumentError: If nothing was selected
        OSError: If a deletion fails
    """
    paths = list(paths or [])
    if not paths:
        raise InvalidArgumentError("No files selected.", ErrorFlag.NO_FILES_SELECTED)
    for item in paths:
        target = Path(item)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()
        log.debug(f"Deleted {item}")


def rename_local_file(old_path: Optional[str], new_path: Optional[str]) -> None:
    if old_path is None or new_path is None:
        raise InvalidArgumentError("No files selected.", ErrorFlag.NO_FILES_SELECTED)
    os.rename(old_path, new_path)
    log.debug(f"Renamed {old_path} -> {new_path}")


def new_local_folder(path: Optional[str]) -> None:
    if path is None:
        raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
    os.makedirs(path, exist_ok=True)
    log.debug(f"Created folder {path}")


def walk_local_tree(path: str) -> tuple[int, int]:
    """Count files and total bytes under ``path`` (a file counts as one)."""
    if os.path.isfile(path):
        return 1, os.path.getsize(path)
    files = 0
    total = 0
    for root, _dirs, filenames in os.walk(path):
        for name in filenames:
            full_path = os.path.join(root, name)
            try:
                total += os.path.getsize(full_path)
            except OSError:
                log.debug(f"Skipping unreadable file {full_path}")
                continue
            files += 1
    return files, total


def local_size_on_disk(path: str) -> int:
    """Bytes currently present at ``path`` (0 if it does not exist yet)."""
    if not os.path.exists(path):
        return 0
    return walk_local_tree(path)[1]
