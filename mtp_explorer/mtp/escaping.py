"""Escaping for paths embedded in MTP CLI subcommands.

The CLI takes each subcommand as one double-quoted shell word whose paths
are themselves wrapped in ``\\"...\\"``. Its flex-based quote parser mangles
some backslash/quote combinations, so the replacement factors below were
worked out against the CLI and must be kept byte-for-byte.

Rules are evaluated top to bottom; the first matching predicate wins. Each
rule applies, in this order: backtick escaping, backslash multiplication,
quote escaping. Backslashes introduced by the backtick step are multiplied
by the backslash step; those introduced by the quote step are not.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

BACKTICK = "`"
BACKSLASH = "\\"
QUOTE = '"'

ESCAPED_QUOTE = BACKSLASH + QUOTE  # \"
QUOTE_BACKSLASH = QUOTE + BACKSLASH  # "\
QUOTED_BACKSLASH = QUOTE + BACKSLASH + QUOTE  # "\"


@dataclass(frozen=True)
class EscapeRule:
    name: str
    matches: Callable[[str], bool]
    backslash: str
    quote: str

    def apply(self, raw: str) -> str:
        return (
            raw.replace(BACKTICK, BACKSLASH + BACKTICK)
            .replace(BACKSLASH, self.backslash)
            .replace(QUOTE, self.quote)
        )


ESCAPE_RULES: tuple[EscapeRule, ...] = (
    EscapeRule(
        name="escaped-quote-and-quote-backslash",
        matches=lambda raw: ESCAPED_QUOTE in raw and QUOTE_BACKSLASH in raw,
        backslash=BACKSLASH * 4,
        quote=BACKSLASH * 3 + QUOTE,
    ),
    EscapeRule(
        name="quoted-backslash",
        matches=lambda raw: QUOTED_BACKSLASH in raw,
        backslash=BACKSLASH * 4,
        quote=BACKSLASH * 3 + QUOTE,
    ),
    EscapeRule(
        name="escaped-quote-only",
        matches=lambda raw: ESCAPED_QUOTE in raw,
        backslash=BACKSLASH * 3,
        quote=BACKSLASH * 4 + QUOTE,
    ),
    EscapeRule(
        name="quote-backslash-only",
        matches=lambda raw: QUOTE_BACKSLASH in raw,
        backslash=BACKSLASH * 4,
        quote=BACKSLASH * 3 + QUOTE,
    ),
)

DEFAULT_RULE = EscapeRule(
    name="default",
    matches=lambda raw: True,
    backslash=BACKSLASH * 3,
    quote=BACKSLASH * 3 + QUOTE,
)


def select_rule(raw: str) -> EscapeRule:
    """Return the first rule whose predicate matches ``raw``."""
    for rule in ESCAPE_RULES:
        if rule.matches(raw):
            return rule
    return DEFAULT_RULE


def escape_shell_mtp(raw: str) -> str:
    """Escape ``raw`` for the second level of the CLI's nested quoting."""
    return select_rule(raw).apply(raw)
