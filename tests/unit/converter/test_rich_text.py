"""Tests for converter/rich_text.py: inline tokens to Feishu text elements."""

from __future__ import annotations

from larkdown.converter.ast_normalizer import ASTNormalizer
from larkdown.converter.rich_text import (
    build_elements,
    elements_text,
    equation,
    has_content,
    is_absolute_http,
    normalize_url,
    text_run,
)


def _inline(markdown: str, warnings: list | None = None) -> list[dict]:
    paragraph = ASTNormalizer().parse(markdown)[0]
    return build_elements(paragraph.get("children", []), warnings=warnings)


class TestConstructors:
    def test_text_run_without_style(self):
        assert text_run("hi") == {"text_run": {"content": "hi"}}

    def test_text_run_keeps_only_set_flags(self):
        run = text_run("hi", {"bold": True, "italic": False, "link": None})
        assert run == {"text_run": {"content": "hi", "text_element_style": {"bold": True}}}

    def test_text_run_link(self):
        run = text_run("hi", {"link": "https://a.com"})
        assert run["text_run"]["text_element_style"] == {"link": {"url": "https://a.com"}}

    def test_equation(self):
        assert equation("x") == {"equation": {"content": "x"}}

    def test_elements_text(self):
        assert elements_text([text_run("a"), equation("b"), text_run("c")]) == "abc"

    def test_has_content(self):
        assert not has_content([text_run("  ")])
        assert has_content([text_run(" x ")])
        assert has_content([equation("")])


class TestUrls:
    def test_feishu_doc_rewritten(self):
        assert normalize_url("feishu://doc/abc") == "https://feishu.cn/docx/abc"

    def test_feishu_wiki_rewritten(self):
        assert normalize_url("feishu://wiki/w1") == "https://feishu.cn/wiki/w1"

    def test_percent_encoded_decoded(self):
        assert normalize_url("https%3A%2F%2Fexample.com") == "https://example.com"

    def test_is_absolute_http(self):
        assert is_absolute_http("http://a")
        assert is_absolute_http("https://a")
        assert not is_absolute_http("ftp://a")
        assert not is_absolute_http("docs/a.md")


class TestBuildElements:
    def test_plain(self):
        assert _inline("hello") == [text_run("hello")]

    def test_bold_link_overlay(self):
        elements = _inline("**[x](https://a.com)**")
        assert elements == [
            {
                "text_run": {
                    "content": "x",
                    "text_element_style": {"bold": True, "link": {"url": "https://a.com"}},
                }
            }
        ]

    def test_nested_emphasis_overlays(self):
        elements = _inline("***both***")
        style = elements[0]["text_run"]["text_element_style"]
        assert style == {"bold": True, "italic": True}

    def test_strikethrough(self):
        elements = _inline("~~gone~~")
        assert elements[0]["text_run"]["text_element_style"] == {"strikethrough": True}

    def test_inline_code(self):
        elements = _inline("run `ls -la` now")
        assert [e["text_run"]["content"] for e in elements] == ["run ", "ls -la", " now"]
        assert elements[1]["text_run"]["text_element_style"] == {"inline_code": True}

    def test_underline_tags(self):
        elements = _inline("a <u>b</u> c")
        assert elements_text(elements) == "a b c"
        underlined = [e for e in elements if e["text_run"].get("text_element_style")]
        assert underlined == [text_run("b", {"underline": True})]

    def test_inline_math(self):
        elements = _inline("mass $E=mc^2$ energy")
        assert equation("E=mc^2") in elements

    def test_softbreak_becomes_space(self):
        assert elements_text(_inline("a\nb")) == "a b"

    def test_hard_break_becomes_newline(self):
        assert elements_text(_inline("a  \nb")) == "a\nb"

    def test_feishu_link_becomes_https(self):
        elements = _inline("[doc](feishu://doc/abc)")
        style = elements[0]["text_run"]["text_element_style"]
        assert style == {"link": {"url": "https://feishu.cn/docx/abc"}}

    def test_relative_link_degrades_with_warning(self):
        warnings: list = []
        elements = _inline("[other](other.md)", warnings)
        assert elements == [text_run("other")]
        assert [w.code for w in warnings] == ["LINK_DEGRADED"]

    def test_inline_image_kept_as_text(self):
        warnings: list = []
        elements = _inline("see ![chart](https://x.io/c.png) here", warnings)
        assert "[Image: chart]" in elements_text(elements)
        assert [w.code for w in warnings] == ["INLINE_IMAGE"]

    def test_inherited_style(self):
        elements = build_elements([{"type": "text", "raw": "x"}], style={"italic": True})
        assert elements == [text_run("x", {"italic": True})]
