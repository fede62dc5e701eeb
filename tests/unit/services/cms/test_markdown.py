"""Tests for services/cms/markdown.py — markdown to HTML fallback converter."""

from __future__ import annotations

import pytest

from services.cms.markdown import escape_html, markdown_to_html, unescape_html


class TestBlocks:
    def test_heading(self) -> None:
        assert markdown_to_html("# Hi") == "<h1>Hi</h1>"

    def test_heading_levels(self) -> None:
        assert markdown_to_html("### Three\n###### Six") == "<h3>Three</h3>\n<h6>Six</h6>"

    def test_paragraph_with_emphasis(self) -> None:
        assert markdown_to_html("**bold** and *italic*") == "<p><strong>bold</strong> and <em>italic</em></p>"

    def test_paragraph_joins_lines(self) -> None:
        assert markdown_to_html("line one\nline two\n\nnext") == "<p>line one line two</p>\n<p>next</p>"

    def test_blockquote(self) -> None:
        assert markdown_to_html("> quote\n> more") == "<blockquote>quote<br>more</blockquote>"

    def test_unordered_list(self) -> None:
        assert markdown_to_html("- a\n- b") == "<ul><li>a</li><li>b</li></ul>"

    def test_ordered_list(self) -> None:
        assert markdown_to_html("1. one\n2. two") == "<ol><li>one</li><li>two</li></ol>"

    def test_horizontal_rule(self) -> None:
        assert markdown_to_html("---") == "<hr>"
        assert markdown_to_html("***") == "<hr>"


class TestCode:
    def test_fenced_code_not_escaped(self) -> None:
        html = markdown_to_html("```python\nif a < b && c:\n    pass\n```")
        assert html == '<pre><code class="language-python">if a < b && c:\n    pass</code></pre>'

    def test_fenced_code_keeps_markdown_literal(self) -> None:
        html = markdown_to_html("```\n# not a heading\n**x**\n```")
        assert html == "<pre><code># not a heading\n**x**</code></pre>"

    @pytest.mark.parametrize("lang", ["c++", "objective-c", "c#"])
    def test_fence_language_with_symbols(self, lang: str) -> None:
        html = markdown_to_html(f"```{lang}\nif (a < b && c) {{}}\n```")
        assert html == f'<pre><code class="language-{lang}">if (a < b && c) {{}}</code></pre>'

    def test_unclosed_fence_runs_to_end(self) -> None:
        assert markdown_to_html("```\nx = 1") == "<pre><code>x = 1</code></pre>"

    def test_inline_code_escaped(self) -> None:
        assert markdown_to_html("use `<div>` here") == "<p>use <code>&lt;div&gt;</code> here</p>"

    def test_inline_code_protects_emphasis(self) -> None:
        assert markdown_to_html("`**x**`") == "<p><code>**x**</code></p>"


class TestInline:
    def test_link(self) -> None:
        assert markdown_to_html("[site](https://e.com)") == '<p><a href="https://e.com">site</a></p>'

    def test_image_is_figure(self) -> None:
        assert markdown_to_html("![alt](u.png)") == (
            '<figure><img src="u.png" alt="alt"><figcaption>alt</figcaption></figure>'
        )

    def test_strikethrough(self) -> None:
        assert markdown_to_html("~~x~~") == "<p><del>x</del></p>"

    def test_underscores_inside_words_untouched(self) -> None:
        assert markdown_to_html("snake_case_name") == "<p>snake_case_name</p>"

    def test_text_is_escaped(self) -> None:
        assert markdown_to_html("a < b & c") == "<p>a &lt; b &amp; c</p>"


class TestEdgeCases:
    def test_empty(self) -> None:
        assert markdown_to_html("") == ""

    def test_second_pass_does_not_crash(self) -> None:
        once = markdown_to_html("# Title\n\n**b** `c`\n\n- x\n- y")
        assert isinstance(markdown_to_html(once), str)

    def test_crlf_input(self) -> None:
        assert markdown_to_html("# A\r\n\r\nb") == "<h1>A</h1>\n<p>b</p>"


class TestEscaping:
    def test_escape_round_trip(self) -> None:
        raw = "<a href='x'>&amp;</a>"
        assert unescape_html(escape_html(raw)) == raw
