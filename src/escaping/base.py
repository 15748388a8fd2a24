"""Base class for Telegram parse-mode escapers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import overload

# Ordered (name, pattern) pairs. Order is significant: when two patterns match at
# the same position, the one declared first wins.
PatternTable = tuple[tuple[str, re.Pattern[str]], ...]


class Escaper(ABC):
    """Makes free text safe to send under one Telegram parse mode.

    Escapers hold no per-call state; a single instance is shared process-wide.
    """

    parse_mode: str

    @overload
    def escape(self, text: str) -> str: ...

    @overload
    def escape(self, text: None) -> None: ...

    def escape(self, text: str | None) -> str | None:
        if not text:
            return text
        return self._escape(text)

    @abstractmethod
    def _escape(self, text: str) -> str:
        """Escape non-empty text. Subclasses implement the dialect rules."""
        ...


def combine(patterns: PatternTable, flags: int = 0) -> re.Pattern[str]:
    """Join a pattern table into one alternation, preserving declaration order."""
    return re.compile("|".join(p.pattern for _, p in patterns), flags)


def escape_outside(
    text: str, combined: re.Pattern[str], escape_plain: Callable[[str], str],
) -> str:
    """Escape the text between recognized spans; copy the spans through verbatim."""
    parts: list[str] = []
    last = 0
    for match in combined.finditer(text):
        if match.start() > last:
            parts.append(escape_plain(text[last:match.start()]))
        parts.append(match.group(0))
        last = match.end()
    if last < len(text):
        parts.append(escape_plain(text[last:]))
    return "".join(parts)


def backslash_escape(chars: re.Pattern[str]) -> Callable[[str], str]:
    """Build a function that prefixes every character matched by ``chars`` with a backslash."""

    def _escape(text: str) -> str:
        return chars.sub(lambda m: "\\" + m.group(1), text)

    return _escape
