"""Markdown -> Notion block tree, plus rich-text and block builders.

Blocks are plain JSON dicts in the shape the Notion API accepts for
``children``. Each line is classified in a fixed priority order:
heading 3, heading 2, heading 1, divider, bulleted item, numbered item,
quote, fenced code, paragraph. Inline formatting becomes annotated
rich-text spans rather than markup.
"""

from __future__ import annotations

import re
from typing import Any, Literal

NotionBlock = dict[str, Any]
RichText = dict[str, Any]
NotionColor = str

# Notion rejects text objects longer than this
RICH_TEXT_LIMIT = 2000

_NUMBERED_RE = re.compile(r"^(\d+)\.\s+(.+)$")
_HR_LINES = frozenset({"---", "***", "___"})

_INLINE_RE = re.compile(
    r"`(?P<code>[^`]+)`"
    r"|\*\*(?P<bold>(?=\S).+?(?<=\S))\*\*"
    r"|~~(?P<strike>(?=\S).+?(?<=\S))~~"
    r"|\*(?P<italic>(?=\S).+?(?<=\S))\*"
    r"|\[(?P<link_text>[^\]]+)\]\((?P<link_url>[^)\s]+)\)"
)

_LANGUAGE_ALIASES = {
    "": "plain text",
    "text": "plain text",
    "plaintext": "plain text",
    "txt": "plain text",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python3": "python",
    "sh": "shell",
    "zsh": "shell",
    "console": "shell",
    "yml": "yaml",
    "rb": "ruby",
    "rs": "rust",
    "golang": "go",
    "c++": "c++",
    "cpp": "c++",
    "cs": "c#",
    "csharp": "c#",
    "md": "markdown",
    "html": "html",
    "htm": "html",
    "dockerfile": "docker",
    "kt": "kotlin",
}

# Subset of the languages accepted by the Notion API for code blocks
_NOTION_LANGUAGES = frozenset(
    {
        "bash",
        "c",
        "c#",
        "c++",
        "css",
        "dart",
        "diff",
        "docker",
        "elixir",
        "go",
        "graphql",
        "haskell",
        "html",
        "java",
        "javascript",
        "json",
        "kotlin",
        "lua",
        "makefile",
        "markdown",
        "php",
        "plain text",
        "powershell",
        "python",
        "r",
        "ruby",
        "rust",
        "scala",
        "shell",
        "sql",
        "swift",
        "typescript",
        "xml",
        "yaml",
    }
)


# ---------------------------------------------------------------------------
# rich text
# ---------------------------------------------------------------------------


def _chunks(text: str) -> list[str]:
    if len(text) <= RICH_TEXT_LIMIT:
        return [text]
    return [text[i : i + RICH_TEXT_LIMIT] for i in range(0, len(text), RICH_TEXT_LIMIT)]


def _span(content: str, annotations: dict[str, Any] | None = None, url: str | None = None) -> list[RichText]:
    spans: list[RichText] = []
    for chunk in _chunks(content):
        text: dict[str, Any] = {"content": chunk}
        if url:
            text["link"] = {"url": url}
        item: RichText = {"type": "text", "text": text}
        if annotations:
            item["annotations"] = dict(annotations)
        spans.append(item)
    return spans


def text_to_rich_text(text: str, annotations: dict[str, Any] | None = None) -> list[RichText]:
    """Plain text as rich text, split at Notion's per-object length limit."""
    return _span(text, annotations)


def create_link(text: str, url: str, annotations: dict[str, Any] | None = None) -> RichText:
    return _span(text[:RICH_TEXT_LIMIT], annotations, url)[0]


def rich_text_to_plain_text(rich_text: list[RichText] | None) -> str:
    if not rich_text:
        return ""
    return "".join(rt.get("plain_text") or (rt.get("text") or {}).get("content", "") for rt in rich_text)


def parse_inline(text: str) -> list[RichText]:
    """Tokenize inline markdown into annotated spans (flat, no nesting)."""
    spans: list[RichText] = []
    pos = 0
    for match in _INLINE_RE.finditer(text):
        if match.start() > pos:
            spans.extend(_span(text[pos : match.start()]))
        if match.group("code") is not None:
            spans.extend(_span(match.group("code"), {"code": True}))
        elif match.group("bold") is not None:
            spans.extend(_span(match.group("bold"), {"bold": True}))
        elif match.group("strike") is not None:
            spans.extend(_span(match.group("strike"), {"strikethrough": True}))
        elif match.group("italic") is not None:
            spans.extend(_span(match.group("italic"), {"italic": True}))
        else:
            spans.append(create_link(match.group("link_text"), match.group("link_url")))
        pos = match.end()

    if pos < len(text):
        spans.extend(_span(text[pos:]))
    return spans or text_to_rich_text(text)


def _as_rich_text(text: str | list[RichText]) -> list[RichText]:
    return text_to_rich_text(text) if isinstance(text, str) else text


# ---------------------------------------------------------------------------
# block builders
# ---------------------------------------------------------------------------


def _text_block(block_type: str, text: str | list[RichText], color: NotionColor | None) -> NotionBlock:
    body: dict[str, Any] = {"rich_text": _as_rich_text(text)}
    if color:
        body["color"] = color
    return {"object": "block", "type": block_type, block_type: body}


def create_paragraph(text: str | list[RichText], color: NotionColor | None = None) -> NotionBlock:
    return _text_block("paragraph", text, color)


def create_heading(
    level: Literal[1, 2, 3],
    text: str | list[RichText],
    color: NotionColor | None = None,
) -> NotionBlock:
    if level not in (1, 2, 3):
        msg = f"Notion supports heading levels 1-3, got {level}"
        raise ValueError(msg)
    return _text_block(f"heading_{level}", text, color)


def create_bulleted_list_item(text: str | list[RichText], color: NotionColor | None = None) -> NotionBlock:
    return _text_block("bulleted_list_item", text, color)


def create_numbered_list_item(text: str | list[RichText], color: NotionColor | None = None) -> NotionBlock:
    return _text_block("numbered_list_item", text, color)


def create_quote(text: str | list[RichText], color: NotionColor | None = None) -> NotionBlock:
    return _text_block("quote", text, color)


def create_code_block(code: str, language: str = "plain text") -> NotionBlock:
    return {
        "object": "block",
        "type": "code",
        "code": {"rich_text": text_to_rich_text(code), "language": normalize_language(language)},
    }


def create_divider() -> NotionBlock:
    return {"object": "block", "type": "divider", "divider": {}}


def normalize_language(language: str) -> str:
    """Map a fence info string onto a Notion code language (default: plain text)."""
    lang = language.strip().lower()
    lang = _LANGUAGE_ALIASES.get(lang, lang)
    return lang if lang in _NOTION_LANGUAGES else "plain text"


# ---------------------------------------------------------------------------
# markdown -> blocks
# ---------------------------------------------------------------------------


def markdown_to_blocks(markdown: str) -> list[NotionBlock]:
    """Convert markdown into a flat list of Notion blocks."""
    blocks: list[NotionBlock] = []
    lines = markdown.replace("\r\n", "\n").split("\n") if markdown else []

    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1

        if not line:
            continue

        if line.startswith("### "):
            blocks.append(create_heading(3, parse_inline(line[4:].strip())))
        elif line.startswith("## "):
            blocks.append(create_heading(2, parse_inline(line[3:].strip())))
        elif line.startswith("# "):
            blocks.append(create_heading(1, parse_inline(line[2:].strip())))
        elif line in _HR_LINES:
            blocks.append(create_divider())
        elif line.startswith(("- ", "* ")):
            blocks.append(create_bulleted_list_item(parse_inline(line[2:].strip())))
        elif numbered := _NUMBERED_RE.match(line):
            blocks.append(create_numbered_list_item(parse_inline(numbered.group(2))))
        elif line.startswith("> "):
            blocks.append(create_quote(parse_inline(line[2:].strip())))
        elif line.startswith("```"):
            language = line[3:].strip() or "plain text"
            code_lines: list[str] = []
            # unclosed fences consume to end of input
            while i < len(lines) and not lines[i].strip().startswith("```"):
                code_lines.append(lines[i])
                i += 1
            i += 1  # closing fence
            blocks.append(create_code_block("\n".join(code_lines), language))
        else:
            blocks.append(create_paragraph(parse_inline(line)))

    return blocks
