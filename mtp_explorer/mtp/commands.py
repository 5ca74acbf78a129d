"""Builders for MTP CLI invocations.

Two shapes are produced:

* bounded: ``<bin> "<subcommand>"... [flags]``
* streaming: ``<bin> -e "<subcommand>" -e "<subcommand>" ...``

Paths inside a subcommand are wrapped in ``\\"...\\"`` and passed through
:func:`escape_shell_mtp`, then any bare ``$`` is backslashed so the outer
``sh -c`` string does not expand it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from mtp_explorer.config import settings
from mtp_explorer.domain.models import TransferDirection, TransferQueue

from .escaping import escape_shell_mtp

REPEAT_FLAG = "-e"
# A $ preceded by an even (possibly empty) run of backslashes.
_UNESCAPED_DOLLAR = re.compile(r"(?<!\\)((?:\\\\)*)\$")


@dataclass(frozen=True)
class Command:
    """Immutable token sequence for one CLI invocation."""

    tokens: tuple[str, ...]

    @property
    def shell_string(self) -> str:
        return " ".join(self.tokens)

    def __str__(self) -> str:
        return self.shell_string


def cli_binary(path: Optional[str] = None) -> str:
    return escape_shell_mtp(path or settings.resolve_cli_path())


def escape_shell_dollar(text: str) -> str:
    """Backslash every ``$`` the outer shell would otherwise expand.

    A ``$`` already preceded by an odd run of backslashes is left alone.
    """
    return _UNESCAPED_DOLLAR.sub(lambda m: m.group(1) + "\\$", text)


def quote_path(path: str) -> str:
    return f'\\"{escape_shell_dollar(escape_shell_mtp(path))}\\"'


def _subcommand(verb: str, *paths: str) -> str:
    return " ".join([verb, *(quote_path(path) for path in paths)])


def storage(storage_id) -> str:
    return f"storage {storage_id}"


def properties(path: str) -> str:
    return _subcommand("properties", path)


def rename(old_path: str, new_name: str) -> str:
    return _subcommand("rename", old_path, new_name)


def rm(path: str) -> str:
    return _subcommand("rm", path)


def mkpath(path: str) -> str:
    return _subcommand("mkpath", path)


def get(source: str, destination: str) -> str:
    return _subcommand("get", source, destination)


def put(source: str, destination: str) -> str:
    return _subcommand("put", source, destination)


def pwd() -> str:
    return "pwd"


def lsext(path: str) -> str:
    return _subcommand("lsext", path)


def storage_list() -> str:
    return "storage-list"


def bounded(
    *subcommands: str,
    storage_id=None,
    flags: Iterable[str] = (),
    binary: Optional[str] = None,
) -> Command:
    """Build a call-and-return invocation.

    When ``storage_id`` is given the storage selection is prepended.
    """
    chain = list(subcommands)
    if storage_id is not None:
        chain.insert(0, storage(storage_id))
    tokens = [cli_binary(binary), *(f'"{sub}"' for sub in chain), *flags]
    return Command(tuple(tokens))


def streaming(
    subcommands: Iterable[str], binary: Optional[str] = None
) -> Command:
    """Build a chained invocation, one ``-e`` block per subcommand."""
    tokens = [cli_binary(binary)]
    for sub in subcommands:
        tokens.extend([REPEAT_FLAG, f'"{sub}"'])
    return Command(tuple(tokens))


def transfer_chain(
    queue: TransferQueue, direction: TransferDirection, storage_id=None
) -> list[str]:
    """Subcommands moving every queue item, in queue order."""
    chain = []
    if storage_id is not None:
        chain.append(storage(storage_id))
    build = put if direction is TransferDirection.LOCAL_TO_MTP else get
    for item in queue:
        chain.append(build(item.source, item.destination))
    return chain


def verbose_report(binary: Optional[str] = None) -> Command:
    return bounded(pwd(), flags=("-v",), binary=binary)
