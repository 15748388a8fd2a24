"""Escaper for Telegram's HTML parse mode."""

from __future__ import annotations

import re

from src.escaping.base import Escaper, PatternTable

_I = re.IGNORECASE
_IS = re.IGNORECASE | re.DOTALL

# Tags supported by the Bot API. Each pattern only knows its own closing tag;
# table order breaks ties between patterns matching at the same index.
PATTERNS: PatternTable = (
    ("bold", re.compile(r"<b>(.*?)</b>", _I)),
    ("strong", re.compile(r"<strong>(.*?)</strong>", _I)),
    ("italic", re.compile(r"<i>(.*?)</i>", _I)),
    ("emphasis", re.compile(r"<em>(.*?)</em>", _I)),
    ("underline", re.compile(r"<u>(.*?)</u>", _I)),
    ("insert", re.compile(r"<ins>(.*?)</ins>", _I)),
    ("strikethrough_s", re.compile(r"<s>(.*?)</s>", _I)),
    ("strikethrough_strike", re.compile(r"<strike>(.*?)</strike>", _I)),
    ("strikethrough_del", re.compile(r"<del>(.*?)</del>", _I)),
    ("spoiler_span", re.compile(r"""<span\s+class=["']tg-spoiler["']>(.*?)</span>""", _I)),
    ("spoiler_tg", re.compile(r"<tg-spoiler>(.*?)</tg-spoiler>", _I)),
    ("link", re.compile(r"""<a\s+href=["'](.*?)["']>(.*?)</a>""", _I)),
    ("emoji", re.compile(r"""<tg-emoji\s+emoji-id=["'](\d+)["']></tg-emoji>""", _I)),
    (
        "pre_code",
        re.compile(
            r"""<pre><code(?:\s+class=["']language-(\w+)["'])?>(.*?)</code></pre>""", _IS,
        ),
    ),
    ("pre_simple", re.compile(r"<pre>(.*?)</pre>", _IS)),
    ("code", re.compile(r"<code>(.*?)</code>", _I)),
    ("blockquote_simple", re.compile(r"<blockquote>(.*?)</blockquote>", _IS)),
    ("blockquote_expandable", re.compile(r"<blockquote\s+expandable>(.*?)</blockquote>", _IS)),
)

_TAG_NAMES: dict[str, str] = {
    "bold": "b",
    "strong": "strong",
    "italic": "i",
    "emphasis": "em",
    "underline": "u",
    "insert": "ins",
    "strikethrough_s": "s",
    "strikethrough_strike": "strike",
    "strikethrough_del": "del",
    "spoiler_tg": "tg-spoiler",
    "pre_simple": "pre",
    "code": "code",
    "blockquote_simple": "blockquote",
}


def escape_text(text: str) -> str:
    """Entity-escape ``& < >`` and turn literal ``\\n`` sequences into newlines."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\\n", "\n")
    )


def _find_nearest(text: str, pos: int) -> tuple[str, re.Match[str]] | None:
    nearest: tuple[str, re.Match[str]] | None = None
    for name, pattern in PATTERNS:
        match = pattern.search(text, pos)
        # Strict comparison keeps the earlier-declared pattern on a tie.
        if match and (nearest is None or match.start() < nearest[1].start()):
            nearest = (name, match)
    return nearest


def _rebuild(name: str, match: re.Match[str]) -> str:
    if name == "link":
        href, label = match.group(1), match.group(2)
        return f'<a href="{href}">{escape_text(label)}</a>'
    if name == "emoji":
        return f'<tg-emoji emoji-id="{match.group(1)}"></tg-emoji>'
    if name == "pre_code":
        language, code = match.group(1), match.group(2)
        if language:
            return f'<pre><code class="language-{language}">{escape_text(code)}</code></pre>'
        return f"<pre><code>{escape_text(code)}</code></pre>"
    if name == "spoiler_span":
        return f'<span class="tg-spoiler">{escape_text(match.group(1))}</span>'
    if name == "blockquote_expandable":
        return f"<blockquote expandable>{escape_text(match.group(1))}</blockquote>"
    tag = _TAG_NAMES[name]
    return f"<{tag}>{escape_text(match.group(1))}</{tag}>"


class HtmlEscaper(Escaper):
    """HTML: keep supported tags (lowercased), entity-escape everything else.

    Content inside a recognized tag is escaped as plain text and never scanned
    for nested tags, so ``<b>a <i>b</i></b>`` keeps the ``<b>`` and renders the
    inner ``<i>`` literally. Unclosed or unknown tags are escaped as text.
    """

    parse_mode = "HTML"

    def _escape(self, text: str) -> str:
        parts: list[str] = []
        pos = 0
        while pos < len(text):
            found = _find_nearest(text, pos)
            if found is None:
                parts.append(escape_text(text[pos:]))
                break
            name, match = found
            if match.start() > pos:
                parts.append(escape_text(text[pos:match.start()]))
            parts.append(_rebuild(name, match))
            pos = match.end()
        return "".join(parts)
