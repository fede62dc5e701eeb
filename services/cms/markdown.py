"""Markdown -> HTML converter for the constrained dialect accepted by the adapters.

Used as a fallback whenever a post arrives without pre-rendered HTML.
Line-oriented: every construct is one regex pass over the whole text, in
a fixed order. Nested lists are not supported.

Code (fenced blocks and inline spans) is stashed behind NUL-delimited
placeholders right after escaping, so later passes cannot rewrite it.
"""

from __future__ import annotations

import re

_PLACEHOLDER_RE = re.compile(r"\x00([BI])(\d+)\x00")
_BLOCK_PLACEHOLDER_LINE_RE = re.compile(r"^\x00B\d+\x00$")

_FENCE_RE = re.compile(r"```([^\s`\"']+)?[ \t]*\n(.*?)(?:```|\Z)", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")

_HR_LINE_RE = re.compile(r"^(?:---|\*\*\*|___)\s*$")

# Triple before double before single; markers must hug non-space text and
# underscores never open or close inside a word.
_EMPHASIS_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\*\*\*(?=\S)(.+?)(?<=\S)\*\*\*"), r"<strong><em>\1</em></strong>"),
    (re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"\*(?=\S)(.+?)(?<=\S)\*"), r"<em>\1</em>"),
    (re.compile(r"(?<!\w)___(?=\S)(.+?)(?<=\S)___(?!\w)"), r"<strong><em>\1</em></strong>"),
    (re.compile(r"(?<!\w)__(?=\S)(.+?)(?<=\S)__(?!\w)"), r"<strong>\1</strong>"),
    (re.compile(r"(?<!\w)_(?=\S)(.+?)(?<=\S)_(?!\w)"), r"<em>\1</em>"),
)

_STRIKE_RE = re.compile(r"~~(.+?)~~")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")

_BLOCKQUOTE_RE = re.compile(r"^&gt;\s?(.*)$")
_UL_ITEM_RE = re.compile(r"^[*\-+]\s+(.+)$")
_OL_ITEM_RE = re.compile(r"^\d+\.\s+(.+)$")

_BLOCK_ELEMENT_RE = re.compile(r"^<(h[1-6]|ul|ol|li|pre|code|blockquote|figure|hr|p)\b")


def markdown_to_html(markdown: str) -> str:
    """Convert markdown to HTML.

    Not idempotent: feeding the output back in is allowed but undefined.
    """
    if not markdown:
        return ""

    stash: list[str] = []
    html = escape_html(markdown.replace("\x00", "").replace("\r\n", "\n"))

    html = _stash_code_blocks(html, stash)
    html = _stash_inline_code(html, stash)
    html = _convert_headings(html)
    html = _convert_emphasis(html)
    html = _STRIKE_RE.sub(r"<del>\1</del>", html)
    html = _IMAGE_RE.sub(r'<figure><img src="\2" alt="\1"><figcaption>\1</figcaption></figure>', html)
    html = _LINK_RE.sub(r'<a href="\2">\1</a>', html)
    html = _convert_blockquotes(html)
    html = _convert_lists(html, _UL_ITEM_RE, "ul")
    html = _convert_lists(html, _OL_ITEM_RE, "ol")
    html = "\n".join("<hr>" if _HR_LINE_RE.match(line) else line for line in html.split("\n"))
    html = _convert_paragraphs(html)
    html = _restore(html, stash)

    return html.strip()


def escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def unescape_html(text: str) -> str:
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


# ---------------------------------------------------------------------------
# passes
# ---------------------------------------------------------------------------


def _stash_code_blocks(html: str, stash: list[str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        lang = match.group(1)
        lang_class = f' class="language-{lang}"' if lang else ""
        code = unescape_html(match.group(2)).strip("\n")
        stash.append(f"<pre><code{lang_class}>{code}</code></pre>")
        return f"\n\x00B{len(stash) - 1}\x00\n"

    return _FENCE_RE.sub(_replace, html)


def _stash_inline_code(html: str, stash: list[str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        stash.append(f"<code>{match.group(1)}</code>")
        return f"\x00I{len(stash) - 1}\x00"

    return _INLINE_CODE_RE.sub(_replace, html)


def _convert_headings(html: str) -> str:
    for level in range(6, 0, -1):
        pattern = re.compile(rf"^{'#' * level}\s+(.+)$", re.MULTILINE)
        html = pattern.sub(rf"<h{level}>\1</h{level}>", html)
    return html


def _convert_emphasis(html: str) -> str:
    lines = html.split("\n")
    for i, line in enumerate(lines):
        if _HR_LINE_RE.match(line):
            continue
        for pattern, replacement in _EMPHASIS_RULES:
            line = pattern.sub(replacement, line)
        lines[i] = line
    return "\n".join(lines)


def _convert_blockquotes(html: str) -> str:
    result: list[str] = []
    quote: list[str] = []

    for line in html.split("\n"):
        match = _BLOCKQUOTE_RE.match(line)
        if match:
            quote.append(match.group(1))
            continue
        if quote:
            result.append(f"<blockquote>{'<br>'.join(quote)}</blockquote>")
            quote = []
        result.append(line)

    if quote:
        result.append(f"<blockquote>{'<br>'.join(quote)}</blockquote>")
    return "\n".join(result)


def _convert_lists(html: str, item_re: re.Pattern[str], tag: str) -> str:
    result: list[str] = []
    items: list[str] = []

    for line in html.split("\n"):
        match = item_re.match(line)
        if match and not _HR_LINE_RE.match(line):
            items.append(f"<li>{match.group(1)}</li>")
            continue
        if items:
            result.append(f"<{tag}>{''.join(items)}</{tag}>")
            items = []
        result.append(line)

    if items:
        result.append(f"<{tag}>{''.join(items)}</{tag}>")
    return "\n".join(result)


def _is_block_line(line: str) -> bool:
    return bool(_BLOCK_ELEMENT_RE.match(line) or _BLOCK_PLACEHOLDER_LINE_RE.match(line))


def _convert_paragraphs(html: str) -> str:
    result: list[str] = []
    paragraph: list[str] = []

    def _flush() -> None:
        if paragraph:
            result.append(f"<p>{' '.join(paragraph)}</p>")
            paragraph.clear()

    for line in html.split("\n"):
        stripped = line.strip()
        if not stripped:
            _flush()
        elif _is_block_line(stripped):
            _flush()
            result.append(stripped)
        else:
            paragraph.append(stripped)

    _flush()
    return "\n".join(result)


def _restore(html: str, stash: list[str]) -> str:
    return _PLACEHOLDER_RE.sub(lambda m: stash[int(m.group(2))], html)
