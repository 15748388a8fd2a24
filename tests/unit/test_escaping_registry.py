"""Tests for escaper selection by parse mode."""

from __future__ import annotations

import pytest

from src.escaping import (
    HtmlEscaper,
    MarkdownEscaper,
    MarkdownV2Escaper,
    escape_for_parse_mode,
    get_escaper,
)
from src.models import ParseMode


class TestGetEscaper:
    @pytest.mark.parametrize("mode,expected", [
        ("Markdown", MarkdownEscaper),
        ("MarkdownV2", MarkdownV2Escaper),
        ("HTML", HtmlEscaper),
        ("html", HtmlEscaper),
        ("markdownv2", MarkdownV2Escaper),
        (ParseMode.MARKDOWN, MarkdownEscaper),
    ])
    def test_selects_escaper(self, mode: str | ParseMode, expected: type) -> None:
        assert isinstance(get_escaper(mode), expected)

    def test_instances_are_shared(self) -> None:
        assert get_escaper("HTML") is get_escaper(ParseMode.HTML)

    def test_unknown_mode_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported parse mode"):
            get_escaper("plain")


class TestEscapeForParseMode:
    def test_dispatches_by_mode(self) -> None:
        assert escape_for_parse_mode("a.b", "MarkdownV2") == "a\\.b"
        assert escape_for_parse_mode("a.b", "Markdown") == "a.b"
        assert escape_for_parse_mode("a<b", "HTML") == "a&lt;b"

    def test_unknown_mode_returns_text_unchanged(self) -> None:
        assert escape_for_parse_mode("a.b <c>", "plain") == "a.b <c>"

    def test_none_and_empty(self) -> None:
        assert escape_for_parse_mode(None, "HTML") is None
        assert escape_for_parse_mode("", "HTML") == ""
