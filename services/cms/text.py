"""Text helpers shared by adapters: tags, slugs, truncation, URL checks."""

from __future__ import annotations

import html
import re

import httpx

_TAG_DISALLOWED_RE = re.compile(r"[^a-zA-Z0-9\s\-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HTML_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_tags(tags: list[str] | None, max_tags: int = 5) -> list[str]:
    """Trim, dedupe (case-insensitive), limit and strip special characters.

    Dedupe and limit run before character stripping, so a tag that becomes
    empty after stripping still occupies one of the ``max_tags`` slots.
    """
    if not tags:
        return []

    seen: set[str] = set()
    unique: list[str] = []
    for raw in tags:
        if not isinstance(raw, str):
            continue
        tag = raw.strip()
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        unique.append(tag)

    cleaned = (_WHITESPACE_RE.sub(" ", _TAG_DISALLOWED_RE.sub("", tag)).strip() for tag in unique[:max_tags])
    return [tag for tag in cleaned if tag]


def slugify(text: str) -> str:
    """URL-friendly slug; keeps unicode word characters."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def generate_slug(title: str) -> str:
    """ASCII-only slug (drops anything outside a-z, 0-9, space and hyphen)."""
    slug = re.sub(r"[^a-z0-9\s-]", "", title.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def truncate_text(text: str, max_length: int) -> str:
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3].strip() + "..."


def html_to_plain_text(value: str) -> str:
    return html.unescape(_HTML_TAG_RE.sub("", value).replace("&nbsp;", " ")).strip()


def is_valid_url(url: str) -> bool:
    """True for absolute URLs with a scheme and host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return False
    return bool(parsed.scheme and parsed.host)
