"""Escaper for Telegram's legacy Markdown parse mode."""

from __future__ import annotations

import re

from src.escaping.base import (
    Escaper,
    PatternTable,
    backslash_escape,
    combine,
    escape_outside,
)

PATTERNS: PatternTable = (
    ("bold", re.compile(r"\*\*(.*?)\*\*")),
    ("italic_asterisk", re.compile(r"\*(.*?)\*")),
    ("italic_underscore", re.compile(r"_(.*?)_")),
    ("inline_code", re.compile(r"`(.*?)`")),
    ("pre_code", re.compile(r"```(.*?)```", re.DOTALL)),
    ("link", re.compile(r"\[(.*?)\]\((.*?)\)")),
)

_COMBINED = combine(PATTERNS, re.DOTALL)

_escape_special = backslash_escape(re.compile(r"([_*`\[\]])"))


class MarkdownEscaper(Escaper):
    """Legacy Markdown: recognized spans pass through untouched, the rest is escaped.

    Only ``_ * ` [ ]`` are special in this dialect, so characters such as ``#`` or
    ``.`` are left alone.
    """

    parse_mode = "Markdown"

    def _escape(self, text: str) -> str:
        return escape_outside(text, _COMBINED, _escape_special)
