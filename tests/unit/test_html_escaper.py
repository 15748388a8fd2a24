"""Tests for the HTML parse-mode escaper."""

from __future__ import annotations

import pytest

from src.escaping.html import PATTERNS, HtmlEscaper, escape_text


@pytest.fixture
def escaper() -> HtmlEscaper:
    return HtmlEscaper()


class TestEmptyInput:
    def test_none_passes_through(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape(None) is None

    def test_empty_string_passes_through(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("") == ""


class TestSupportedTags:
    """Telegram-supported tags survive; their content is escaped as text."""

    def test_bold_tag_preserved(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("Text with <b>bold</b>") == "Text with <b>bold</b>"

    @pytest.mark.parametrize("text", [
        "<strong>x</strong>",
        "<i>x</i>",
        "<em>x</em>",
        "<u>x</u>",
        "<ins>x</ins>",
        "<s>x</s>",
        "<strike>x</strike>",
        "<del>x</del>",
        "<tg-spoiler>x</tg-spoiler>",
        "<code>x</code>",
        "<pre>x</pre>",
        "<blockquote>x</blockquote>",
        "<blockquote expandable>x</blockquote>",
    ])
    def test_simple_tags_round_trip(self, escaper: HtmlEscaper, text: str) -> None:
        assert escaper.escape(text) == text

    def test_uppercase_tags_normalized(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<B>bold</B> and <I>it</I>") == "<b>bold</b> and <i>it</i>"

    def test_content_inside_tag_is_escaped(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<b>1 < 2 & 3 > 2</b>") == "<b>1 &lt; 2 &amp; 3 &gt; 2</b>"

    def test_link_href_kept_and_quotes_normalized(self, escaper: HtmlEscaper) -> None:
        result = escaper.escape("<a href='https://x.io/?a=1&b=2'>R&D</a>")
        assert result == '<a href="https://x.io/?a=1&b=2">R&amp;D</a>'

    def test_spoiler_span_quotes_normalized(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<span class='tg-spoiler'>x</span>") == (
            '<span class="tg-spoiler">x</span>'
        )

    def test_custom_emoji_preserved(self, escaper: HtmlEscaper) -> None:
        text = '<tg-emoji emoji-id="5368324170671202286"></tg-emoji>'
        assert escaper.escape(text) == text

    def test_pre_code_with_language(self, escaper: HtmlEscaper) -> None:
        text = '<pre><code class="language-python">if x < 1:\n    pass</code></pre>'
        assert escaper.escape(text) == (
            '<pre><code class="language-python">if x &lt; 1:\n    pass</code></pre>'
        )

    def test_pre_code_without_language(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<pre><code>a&b</code></pre>") == "<pre><code>a&amp;b</code></pre>"

    def test_blockquote_spans_lines(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<blockquote>a\nb</blockquote>") == "<blockquote>a\nb</blockquote>"


class TestPlainText:
    def test_script_tag_fully_escaped(self, escaper: HtmlEscaper) -> None:
        result = escaper.escape("<script>x</script>")
        assert result == "&lt;script&gt;x&lt;/script&gt;"
        assert "<" not in result and ">" not in result

    def test_unclosed_tag_escaped_as_text(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<b>never closed") == "&lt;b&gt;never closed"

    def test_bold_does_not_cross_lines(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<b>a\nb</b>") == "&lt;b&gt;a\nb&lt;/b&gt;"

    def test_literal_backslash_n_becomes_newline(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("line1\\nline2") == "line1\nline2"

    def test_ampersand_escaped_first(self) -> None:
        assert escape_text("&lt;") == "&amp;lt;"


class TestMatchOrder:
    """Leftmost match wins; nested tags are not re-scanned."""

    def test_nested_tag_rendered_literally(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<b>a <i>b</i></b>") == "<b>a &lt;i&gt;b&lt;/i&gt;</b>"

    def test_leftmost_construct_wins(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<i>x</i> <b>y</b>") == "<i>x</i> <b>y</b>"

    def test_pre_code_declared_before_pre(self) -> None:
        names = [name for name, _ in PATTERNS]
        assert names.index("pre_code") < names.index("pre_simple")

    def test_tie_resolved_by_declaration_order(self, escaper: HtmlEscaper) -> None:
        # pre_code and pre_simple both start at index 0.
        assert escaper.escape("<pre><code>x</code></pre>") == "<pre><code>x</code></pre>"

    def test_text_between_tags_escaped(self, escaper: HtmlEscaper) -> None:
        assert escaper.escape("<b>a</b> > <i>b</i>") == "<b>a</b> &gt; <i>b</i>"
