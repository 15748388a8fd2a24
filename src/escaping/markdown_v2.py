"""Escaper for Telegram's MarkdownV2 parse mode.

Two passes over the text:

1. Everything outside a recognized entity span has the full MarkdownV2 special
   set escaped; spans are copied through as-is.
2. Each entity pattern, in table order, is re-run over the partially escaped
   text and the captured content is escaped according to the entity's rules
   (code: backtick and backslash only; link: ``)`` and backslash in the URL,
   the full set in the label; everything else: the full set).

Pass 2 re-scans already escaped text with the same lazy patterns, so
mis-nested input (a bold marker inside a link label, for example) can be split
differently than a human would read it. That is the current, tested behavior.
"""

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
    ("bold", re.compile(r"\*(.*?)\*")),
    ("italic", re.compile(r"_(.*?)_")),
    ("underline", re.compile(r"__(.*?)__")),
    ("strikethrough", re.compile(r"~(.*?)~")),
    ("spoiler", re.compile(r"\|\|(.*?)\|\|")),
    ("inline_code", re.compile(r"`(.*?)`")),
    ("pre_code", re.compile(r"```(.*?)```", re.DOTALL)),
    ("link", re.compile(r"\[(.*?)\]\((.*?)\)")),
)

# Pass 1 lets every span cross newlines; pass 2 uses each pattern's own flags.
_COMBINED = combine(PATTERNS, re.DOTALL)

_DELIMITERS: dict[str, tuple[str, str]] = {
    "bold": ("*", "*"),
    "italic": ("_", "_"),
    "underline": ("__", "__"),
    "strikethrough": ("~", "~"),
    "spoiler": ("||", "||"),
    "inline_code": ("`", "`"),
    "pre_code": ("```", "```"),
}

escape_special = backslash_escape(re.compile(r"([*_`\[\]()~>#+\-=|{}.!])"))
escape_code = backslash_escape(re.compile(r"([`\\])"))
_escape_url = backslash_escape(re.compile(r"([)\\])"))


def _escape_within(entity: str, match: re.Match[str]) -> str:
    if entity == "link":
        label, url = match.group(1), match.group(2)
        return f"[{escape_special(label)}]({_escape_url(url)})"
    content = match.group(1)
    if entity in ("inline_code", "pre_code"):
        content = escape_code(content)
    else:
        content = escape_special(content)
    opening, closing = _DELIMITERS[entity]
    return f"{opening}{content}{closing}"


class MarkdownV2Escaper(Escaper):
    """MarkdownV2: escape outside entities, then escape inside each entity type."""

    parse_mode = "MarkdownV2"

    def _escape(self, text: str) -> str:
        escaped = escape_outside(text, _COMBINED, escape_special)
        for entity, pattern in PATTERNS:
            escaped = pattern.sub(lambda m, e=entity: _escape_within(e, m), escaped)
        return escaped
