"""Tests for converter/inline_renderer.py.

Covers escaping, style nesting order, mentions, equations, colour spans,
run merging and plain-text extraction.
"""

from __future__ import annotations

from larkdown.converter.inline_renderer import (
    link_target,
    markdown_escape,
    merge_adjacent_runs,
    plain_text,
    render_elements,
)


def _run(content: str, **style) -> dict:
    run: dict = {"content": content}
    if style:
        run["text_element_style"] = style
    return {"text_run": run}


class TestMarkdownEscape:
    def test_special_characters_escaped(self):
        assert markdown_escape("a*b_c") == "a\\*b\\_c"
        assert markdown_escape("[x]") == "\\[x\\]"
        assert markdown_escape("$5 | #1 > ~") == "\\$5 \\| \\#1 \\> \\~"

    def test_backslash_escaped(self):
        assert markdown_escape("a\\b") == "a\\\\b"

    def test_code_context_untouched(self):
        assert markdown_escape("*x*", "code") == "*x*"

    def test_url_context_encodes_parentheses(self):
        assert markdown_escape("https://x.com/a_(b)", "url") == "https://x.com/a_%28b%29"

    def test_link_target_decodes_percent_encoding(self):
        assert link_target("https%3A%2F%2Fexample.com%2Fa") == "https://example.com/a"


class TestStyles:
    def test_plain_text(self):
        assert render_elements([_run("hello")]) == "hello"

    def test_bold_italic_strike_underline(self):
        assert render_elements([_run("b", bold=True)]) == "**b**"
        assert render_elements([_run("i", italic=True)]) == "*i*"
        assert render_elements([_run("s", strikethrough=True)]) == "~~s~~"
        assert render_elements([_run("u", underline=True)]) == "<u>u</u>"

    def test_nesting_order(self):
        md = render_elements([_run("x", bold=True, italic=True, strikethrough=True)])
        assert md == "~~***x***~~"

    def test_inline_code_suppresses_other_marks(self):
        md = render_elements([_run("a*b", inline_code=True, bold=True)])
        assert md == "`a*b`"

    def test_edge_spaces_kept_outside_markers(self):
        md = render_elements([_run("bold ", bold=True), _run("plain")])
        assert md == "**bold** plain"
        assert render_elements([_run("  x ", italic=True, strikethrough=True)]) == "  ~~*x*~~ "

    def test_whitespace_only_run_unstyled(self):
        assert render_elements([_run("a"), _run(" ", bold=True), _run("b")]) == "a b"

    def test_link_wraps_outermost(self):
        md = render_elements([_run("text", bold=True, link={"url": "https://a.com"})])
        assert md == "[**text**](https://a.com)"

    def test_link_on_code_span(self):
        md = render_elements([_run("f()", inline_code=True, link={"url": "https://a.com"})])
        assert md == "[`f()`](https://a.com)"

    def test_highlight_off_by_default(self):
        assert render_elements([_run("red", text_color=1)]) == "red"

    def test_highlight_span(self):
        md = render_elements([_run("red", text_color=1, background_color=3)], highlight=True)
        assert md == '<span style="color: #ef4444; background-color: #fefce8">red</span>'

    def test_highlight_without_colour_is_plain(self):
        assert render_elements([_run("x")], highlight=True) == "x"


class TestOtherElements:
    def test_user_mention(self):
        assert render_elements([{"mention_user": {"user_id": "ou_1"}}]) == "@[user:ou_1]"

    def test_doc_mention_with_url(self):
        md = render_elements([{"mention_doc": {"title": "Roadmap", "url": "https://x.cn/d"}}])
        assert md == "[Roadmap](https://x.cn/d)"

    def test_doc_mention_without_url(self):
        md = render_elements([{"mention_doc": {"title": "Roadmap", "token": "dox1"}}])
        assert md == "[Roadmap](feishu://doc/dox1)"

    def test_inline_equation(self):
        assert render_elements([{"equation": {"content": " x^2 \n"}}]) == "$x^2$"

    def test_empty_and_none(self):
        assert render_elements(None) == ""
        assert render_elements([]) == ""

    def test_unknown_elements_skipped(self):
        assert render_elements([{"reminder": {}}, _run("ok")]) == "ok"


class TestMergeAdjacentRuns:
    def test_same_style_merged(self):
        merged = merge_adjacent_runs([_run("a", bold=True), _run("b", bold=True)])
        assert merged == [{"text_run": {"content": "ab", "text_element_style": {"bold": True}}}]

    def test_different_style_kept(self):
        merged = merge_adjacent_runs([_run("a", bold=True), _run("b")])
        assert len(merged) == 2

    def test_different_links_kept(self):
        merged = merge_adjacent_runs([
            _run("a", link={"url": "https://a.com"}),
            _run("b", link={"url": "https://b.com"}),
        ])
        assert len(merged) == 2

    def test_input_not_mutated(self):
        first = _run("a")
        merge_adjacent_runs([first, _run("b")])
        assert first == {"text_run": {"content": "a"}}

    def test_merged_bold_renders_once(self):
        assert render_elements([_run("a", bold=True), _run("b", bold=True)]) == "**ab**"


class TestPlainText:
    def test_concatenates_without_markup(self):
        elements = [
            _run("a*", bold=True),
            {"equation": {"content": "x"}},
            {"mention_user": {"user_id": "u"}},
            {"mention_doc": {"title": "T"}},
        ]
        assert plain_text(elements) == "a*xuT"

    def test_none(self):
        assert plain_text(None) == ""
