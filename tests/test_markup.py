"""
Tests for the post markup renderer.

Covers escaping, quote lines, bold and italic, and reply link resolution.
"""

import pytest

from core.markup import (
    EMPTY_CONTENT,
    MAX_POST_ID,
    MarkupRenderer,
    apply_bold,
    apply_italic,
    find_reply_ids,
    format_lines,
    link_replies,
    post_url,
    split_lines,
    thread_url,
)


def no_posts(ids):
    return {}


@pytest.fixture
def renderer():
    return MarkupRenderer()


class TestPasses:
    """Tests for the individual rendering passes."""

    def test_format_lines_escapes_html(self):
        assert format_lines("<script>alert(1)</script>") == "&lt;script&gt;alert(1)&lt;/script&gt;"

    def test_format_lines_marks_quotes(self):
        assert format_lines(">implying") == '<span class="quote">&gt;implying</span>'

    def test_reply_marker_is_not_a_quote(self):
        assert format_lines(">>12") == "&gt;&gt;12"

    def test_lines_joined_with_br(self):
        assert format_lines("one\ntwo\r\nthree") == "one<br>two<br>three"

    def test_only_newline_splits_lines(self):
        assert split_lines("a b\x0bc\r\nd\n") == ["a b\x0bc", "d", ""]

    def test_inline_markup_stays_within_line(self):
        assert format_lines(">a *b\nc* d") == '<span class="quote">&gt;a *b</span><br>c* d'

    def test_bold_then_italic(self):
        html = apply_italic(apply_bold("**strong** and *soft*"))
        assert html == "<b>strong</b> and <em>soft</em>"

    def test_find_reply_ids_dedupes_in_order(self):
        assert find_reply_ids("&gt;&gt;3 &gt;&gt;1 &gt;&gt;3") == [3, 1]

    def test_find_reply_ids_ignores_oversized_numbers(self):
        assert find_reply_ids(f"&gt;&gt;{MAX_POST_ID + 1}") == []

    def test_link_replies_leaves_unresolved_text(self):
        html = link_replies("&gt;&gt;1 &gt;&gt;2", "b", {1: 1})
        assert html == '<a href="/b/1#1">&gt;&gt;1</a> &gt;&gt;2'

    def test_urls(self):
        assert thread_url("b", 4) == "/b/4"
        assert post_url("b", 4, 9) == "/b/4#9"


class TestMarkupRenderer:
    """Tests for MarkupRenderer.render."""

    def test_empty_content(self, renderer):
        result = renderer.render("", "b", no_posts)
        assert result.html == EMPTY_CONTENT
        assert result.reply_ids == []

    def test_none_content(self, renderer):
        assert renderer.render(None, "b", no_posts).html == EMPTY_CONTENT

    @pytest.mark.parametrize("raw_text", ["\n", "  ", "\r\n\t"])
    def test_whitespace_only_content(self, renderer, raw_text):
        assert renderer.render(raw_text, "b", no_posts).html == EMPTY_CONTENT

    def test_unicode_line_separator_kept(self, renderer):
        assert renderer.render("line\u2028two", "b", no_posts).html == "line\u2028two"

    def test_reply_link_keeps_typed_digits(self, renderer):
        result = renderer.render(">>00005", "b", lambda ids: {5: 1})
        assert result.html == '<a href="/b/1#5">&gt;&gt;00005</a>'
        assert result.reply_ids == [5]

    def test_plain_text(self, renderer):
        assert renderer.render("hello world", "b", no_posts).html == "hello world"

    def test_quote_with_formatting(self, renderer):
        result = renderer.render(">**loud** quote", "b", no_posts)
        assert result.html == '<span class="quote">&gt;<b>loud</b> quote</span>'

    def test_reply_links_resolved_posts(self, renderer):
        calls = []

        def lookup(ids):
            calls.append(list(ids))
            return {5: 1, 7: 7}

        result = renderer.render(">>5\nsee >>7 and >>99", "b", lookup)

        assert calls == [[5, 7, 99]]
        assert result.reply_ids == [5, 7]
        assert result.html == (
            '<a href="/b/1#5">&gt;&gt;5</a><br>'
            'see <a href="/b/7#7">&gt;&gt;7</a> and &gt;&gt;99'
        )

    def test_lookup_skipped_without_markers(self, renderer):
        def lookup(ids):
            raise AssertionError("lookup should not be called")

        assert renderer.render("no replies here", "b", lookup).reply_ids == []

    def test_markup_inside_tags_is_escaped(self, renderer):
        result = renderer.render('<a href="x">**hi**</a>', "b", no_posts)
        assert result.html == "&lt;a href=&#34;x&#34;&gt;<b>hi</b>&lt;/a&gt;"
