"""Tests for the legacy Markdown escaper."""

from __future__ import annotations

import pytest

from src.escaping.markdown import MarkdownEscaper


@pytest.fixture
def escaper() -> MarkdownEscaper:
    return MarkdownEscaper()


def test_none_and_empty(escaper: MarkdownEscaper) -> None:
    assert escaper.escape(None) is None
    assert escaper.escape("") == ""


def test_italic_span_unchanged(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("Text with *bold*") == "Text with *bold*"


def test_hash_not_special(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("Text # hashtag") == "Text # hashtag"


def test_punctuation_not_special(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("Price: 5.00 (approx)!") == "Price: 5.00 (approx)!"


def test_lone_underscore_escaped(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("snake_case name") == "snake\\_case name"


def test_lone_asterisk_escaped_after_bold(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("**bold** and 2*3") == "**bold** and 2\\*3"


def test_brackets_without_link_escaped(escaper: MarkdownEscaper) -> None:
    assert escaper.escape("[1] item") == "\\[1\\] item"


def test_spans_copied_verbatim(escaper: MarkdownEscaper) -> None:
    # No escaping happens inside recognized spans.
    assert escaper.escape("`a_b*c`") == "`a_b*c`"
    assert escaper.escape("[my_link](https://x.io/a_b)") == "[my_link](https://x.io/a_b)"


def test_pre_block_spans_lines(escaper: MarkdownEscaper) -> None:
    text = "```\nrow_1\nrow_2\n```"
    assert escaper.escape(text) == text


def test_not_idempotent(escaper: MarkdownEscaper) -> None:
    once = escaper.escape("a_b")
    twice = escaper.escape(once)
    assert once == "a\\_b"
    # The backslash is not special, so only the underscore gains another escape.
    assert twice == "a\\\\_b"
