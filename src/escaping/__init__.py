"""Parse-mode escapers for Telegram message text."""

from __future__ import annotations

from src.escaping.base import Escaper
from src.escaping.html import HtmlEscaper
from src.escaping.markdown import MarkdownEscaper
from src.escaping.markdown_v2 import MarkdownV2Escaper
from src.models import ParseMode

_ESCAPERS: dict[ParseMode, Escaper] = {
    ParseMode.MARKDOWN: MarkdownEscaper(),
    ParseMode.MARKDOWN_V2: MarkdownV2Escaper(),
    ParseMode.HTML: HtmlEscaper(),
}


def get_escaper(parse_mode: str | ParseMode) -> Escaper:
    """Return the shared escaper for a parse mode. Raises ValueError if unknown."""
    return _ESCAPERS[ParseMode.parse(parse_mode)]


def escape_for_parse_mode(text: str | None, parse_mode: str | ParseMode) -> str | None:
    """Escape text for the given parse mode; unknown modes return text unchanged."""
    if not text:
        return text
    try:
        escaper = get_escaper(parse_mode)
    except ValueError:
        return text
    return escaper.escape(text)


__all__ = [
    "Escaper",
    "HtmlEscaper",
    "MarkdownEscaper",
    "MarkdownV2Escaper",
    "escape_for_parse_mode",
    "get_escaper",
]
