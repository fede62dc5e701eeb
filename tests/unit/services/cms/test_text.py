"""Tests for services/cms/text.py — tag/slug/URL helpers."""

from __future__ import annotations

import pytest

from services.cms.text import (
    generate_slug,
    html_to_plain_text,
    is_valid_url,
    sanitize_tags,
    slugify,
    truncate_text,
)


class TestSanitizeTags:
    def test_medium_example(self) -> None:
        tags = sanitize_tags(["SEO", "seo", "  ", "a!!b", "t1", "t2", "t3", "t4", "t5", "t6"])
        assert tags == ["SEO", "ab", "t1", "t2", "t3"]
        assert len(tags) <= 5
        assert len({t.lower() for t in tags}) == len(tags)
        assert "" not in tags

    def test_empty(self) -> None:
        assert sanitize_tags(None) == []
        assert sanitize_tags([]) == []

    def test_collapses_whitespace(self) -> None:
        assert sanitize_tags(["  machine   learning "]) == ["machine learning"]

    def test_custom_limit(self) -> None:
        assert sanitize_tags(["a", "b", "c"], max_tags=2) == ["a", "b"]

    def test_stripped_to_nothing_is_dropped(self) -> None:
        assert sanitize_tags(["!!!", "ok"]) == ["ok"]


class TestSlugs:
    def test_slugify(self) -> None:
        assert slugify("Hello, World!  Again") == "hello-world-again"

    def test_slugify_keeps_unicode(self) -> None:
        assert slugify("Привет мир") == "привет-мир"

    def test_generate_slug_ascii_only(self) -> None:
        assert generate_slug("Café -- Menu 2024") == "caf-menu-2024"


class TestTruncate:
    def test_short_text_unchanged(self) -> None:
        assert truncate_text("abc", 10) == "abc"

    def test_truncates_with_ellipsis(self) -> None:
        assert truncate_text("abcdefghij", 6) == "abc..."


class TestHtmlToPlainText:
    def test_strips_tags_and_entities(self) -> None:
        assert html_to_plain_text("<p>a&nbsp;<b>b</b> &amp; c</p>") == "a b & c"


class TestIsValidUrl:
    @pytest.mark.parametrize("url", ["https://example.com", "http://localhost:8080/x"])
    def test_valid(self, url: str) -> None:
        assert is_valid_url(url) is True

    @pytest.mark.parametrize("url", ["", "example.com", "/relative/path"])
    def test_invalid(self, url: str) -> None:
        assert is_valid_url(url) is False
