"""Tests for notecore.converters (Markdown <-> editor HTML)."""

import textwrap

import pytest
from bs4 import BeautifulSoup

from notecore.converters import (
    MarkupCodec,
    escape_text,
    html_to_markdown,
    is_html_content,
    markdown_to_html,
    normalize_html,
)
from notecore.links import LinkResolver


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _round_trip(html: str) -> str:
    return markdown_to_html(html_to_markdown(html))


# Documents the editor can produce
EDITOR_DOCUMENTS = [
    "<h1>Title</h1><p>Some <strong>bold</strong> and <em>italic</em> text.</p>",
    "<h2>Section</h2><p>First paragraph.</p><p>Second paragraph.</p>",
    '<ul data-type="taskList">'
    '<li data-type="taskItem" data-checked="true"><p>done</p></li>'
    '<li data-type="taskItem" data-checked="false"><p>todo</p></li>'
    "</ul>",
    "<ul><li><p>one</p></li><li><p>two</p></li></ul>",
    "<ol><li><p>first</p></li><li><p>second</p></li></ol>",
    "<ul><li><p>parent</p><ul><li><p>child</p></li></ul></li></ul>",
    "<blockquote><p>quoted text</p></blockquote>",
    '<pre><code class="language-python">print("hi")\nx = 1</code></pre>',
    "<p>Use <code>pip install</code> here</p>",
    '<p>See <a href="https://example.com">the site</a> now</p>',
    "<p>2. not a list</p><p># not a heading</p><p>*not emphasis* and snake_case</p>",
    '<p>Link to <wiki-link data-target="project-alpha.md" data-label="Project Alpha" '
    'data-target-name="Project Alpha">Project Alpha</wiki-link> today</p>',
    '<img src="asset://localhost/pics/cat.png" alt="cat" width="300" data-alignment="center">',
    "<p>a &amp; b &lt; c</p>",
    "<p>Line one<br>Line two</p>",
    "<p>Some <u>underlined</u> and <s>struck</s> words</p>",
    "<hr>",
    "<ul><li><p>[ ] literal</p></li><li><p>[x] also literal</p></li></ul>",
    "<h2>Title {#anchor}</h2>",
    "<p>foo<br>===</p>",
    "<p>Term<br>: definition</p>",
    "<p>a<br><br>b</p>",
    "<p>ends with a break<br></p>",
]


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


class TestDecode:
    def test_empty_input(self):
        assert markdown_to_html("") == ""
        assert markdown_to_html("   \n\n  ") == ""

    def test_heading_and_paragraph(self):
        soup = _soup(markdown_to_html("# Hello\n\nWorld"))
        assert soup.find("h1").get_text() == "Hello"
        assert soup.find("p").get_text() == "World"

    def test_wiki_link_becomes_link_node(self):
        soup = _soup(markdown_to_html("[[Project Alpha]]"))
        link = soup.find("wiki-link")
        assert link is not None
        assert link["data-target"] == "project-alpha.md"
        assert link["data-label"] == "Project Alpha"
        assert link.get_text() == "Project Alpha"

    def test_aliased_link_keeps_display_and_target(self):
        link = _soup(markdown_to_html("[[the plan|Project Alpha]]")).find("wiki-link")
        assert link["data-label"] == "the plan"
        assert link["data-target-name"] == "Project Alpha"
        assert link["data-target"] == "project-alpha.md"

    def test_link_inside_code_stays_literal(self):
        soup = _soup(markdown_to_html("Type `[[Name]]` to link"))
        assert soup.find("wiki-link") is None
        assert soup.find("code").get_text() == "[[Name]]"

    def test_task_items(self):
        soup = _soup(markdown_to_html("- [ ] open\n- [x] closed"))
        ul = soup.find("ul")
        assert ul["data-type"] == "taskList"
        items = ul.find_all("li")
        assert [li["data-checked"] for li in items] == ["false", "true"]
        assert [li.get_text() for li in items] == ["open", "closed"]

    def test_mixed_list_is_split(self):
        html = markdown_to_html("- [ ] a\n- plain b\n- [x] c")
        lists = _soup(html).find_all("ul", recursive=False)
        assert len(lists) == 2
        tasks, plain = lists
        assert tasks["data-type"] == "taskList"
        assert [li.get_text() for li in tasks.find_all("li")] == ["a", "c"]
        assert plain.get("data-type") is None
        assert [li.get_text() for li in plain.find_all("li")] == ["plain b"]

    def test_mixed_list_starting_with_plain_item(self):
        lists = _soup(markdown_to_html("- b\n- [ ] a")).find_all("ul", recursive=False)
        assert lists[0].get("data-type") is None
        assert lists[1]["data-type"] == "taskList"

    def test_list_items_hold_paragraphs(self):
        li = _soup(markdown_to_html("- item")).find("li")
        assert li.find("p").get_text() == "item"

    def test_fenced_code_keeps_language(self):
        markup = textwrap.dedent("""\
            ```python
            print("hi")
            ```
        """)
        code = _soup(markdown_to_html(markup)).find("code")
        assert code["class"] == ["language-python"]
        assert code.get_text() == 'print("hi")'

    def test_image_tag_survives(self):
        html = markdown_to_html('<img src="asset://localhost/a.png" alt="a" width="200" data-alignment="right">')
        img = _soup(html).find("img")
        assert img["src"] == "asset://localhost/a.png"
        assert img["width"] == "200"
        assert img["data-alignment"] == "right"
        assert img.parent.name != "p"

    def test_stored_html_is_only_sanitized(self):
        html = markdown_to_html('<p>old <script>alert(1)</script>note</p>')
        assert "script" not in html
        assert _soup(html).find("p").get_text() == "old note"

    def test_unsafe_markup_is_sanitized(self):
        html = markdown_to_html('[click](javascript:alert(1))\n\n<span onclick="x">hi</span>')
        assert "javascript" not in html
        assert "onclick" not in html

    def test_escaped_checkbox_stays_text(self):
        ul = _soup(markdown_to_html("- \\[ \\] literal\n- \\[x\\] also")).find("ul")
        assert ul.get("data-type") is None
        assert [li.get_text() for li in ul.find_all("li")] == ["[ ] literal", "[x] also"]

    def test_checkbox_in_code_block_stays_literal(self):
        code = _soup(markdown_to_html("```\n- [ ] not a task\n```")).find("code")
        assert code.get_text() == "- [ ] not a task"

    def test_checkbox_in_ordered_list_stays_literal(self):
        li = _soup(markdown_to_html("1. [x] step")).find("li")
        assert li.get("data-type") is None
        assert li.get_text() == "[x] step"

    def test_task_list_inside_blockquote(self):
        ul = _soup(markdown_to_html("> - [x] quoted")).find("blockquote").find("ul")
        assert ul["data-type"] == "taskList"

    def test_attribute_and_definition_syntax_is_text(self):
        soup = _soup(markdown_to_html("## Title {#anchor}\n\nTerm\n: definition"))
        assert soup.find("h2").get_text() == "Title {#anchor}"
        assert soup.find("h2").get("id") is None
        assert soup.find("dl") is None

    @pytest.mark.parametrize("markup", ["[[", "]] [[|]]", "<<<>>>", "- [", "```", "\x00", "[[a|]]"])
    def test_never_raises(self, markup):
        assert isinstance(markdown_to_html(markup), str)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


class TestEncode:
    def test_empty_document(self):
        assert html_to_markdown("") == ""
        assert html_to_markdown("<p></p>") == ""

    def test_headings(self):
        assert html_to_markdown("<h1>A</h1><h3>B</h3>") == "# A\n\n### B\n"

    def test_paragraphs_separated_by_blank_line(self):
        assert html_to_markdown("<p>one</p><p>two</p>") == "one\n\ntwo\n"

    def test_task_items(self):
        html = (
            '<ul data-type="taskList">'
            '<li data-type="taskItem" data-checked="true"><p>  done  </p></li>'
            '<li data-checked="false" data-type="taskItem"><p>todo</p></li>'
            "</ul>"
        )
        assert html_to_markdown(html) == "- [x] done\n- [ ] todo\n"

    def test_link_uses_display_label(self):
        html = '<p><wiki-link data-target="project-alpha.md" data-label="Project Alpha">Project Alpha</wiki-link></p>'
        assert html_to_markdown(html) == "[[Project Alpha]]\n"

    def test_link_short_form_drops_alias_by_default(self):
        html = '<p><wiki-link data-target="x.md" data-label="Shown" data-target-name="X">Shown</wiki-link></p>'
        assert html_to_markdown(html) == "[[Shown]]\n"

    def test_link_alias_preserved_when_enabled(self):
        codec = MarkupCodec(links=LinkResolver(preserve_aliases=True))
        html = '<p><wiki-link data-target="x.md" data-label="Shown" data-target-name="X">Shown</wiki-link></p>'
        assert codec.encode(html) == "[[Shown|X]]\n"

    def test_image_keeps_metadata(self):
        markup = html_to_markdown('<img src="a.png" alt="A" width="120" data-alignment="left">')
        assert markup == '<img src="a.png" alt="A" width="120" data-alignment="left">\n'

    def test_alignment_kept_as_attribute(self):
        markup = html_to_markdown('<p style="text-align: center">Middle</p>')
        assert markup == '<p style="text-align: center">Middle</p>\n'

    def test_metacharacters_escaped(self):
        assert html_to_markdown("<p>*a* _b_ [c]</p>") == "\\*a\\* \\_b\\_ \\[c\\]\n"

    def test_line_start_markers_escaped(self):
        assert html_to_markdown("<p>- not a bullet</p>") == "\\- not a bullet\n"
        assert html_to_markdown("<p>1. not a number</p>") == "1\\. not a number\n"

    def test_nested_list_indented(self):
        html = "<ul><li><p>parent</p><ul><li><p>child</p></li></ul></li></ul>"
        assert html_to_markdown(html) == "- parent\n    - child\n"

    def test_code_block(self):
        html = '<pre><code class="language-js">let a = 1;</code></pre>'
        assert html_to_markdown(html) == "```js\nlet a = 1;\n```\n"

    def test_braces_escaped(self):
        assert html_to_markdown("<h2>Title {#anchor}</h2>") == "## Title \\{#anchor\\}\n"

    def test_setext_and_definition_lines_written_as_references(self):
        assert html_to_markdown("<p>foo<br>===</p>") == "foo  \n&#61;==\n"
        assert html_to_markdown("<p>Term<br>: definition</p>") == "Term  \n&#58; definition\n"

    def test_repeated_and_trailing_breaks(self):
        assert html_to_markdown("<p>a<br><br>b</p>") == "a<br>  \nb\n"
        assert html_to_markdown("<p>end<br></p>") == "end<br>\n"

    def test_source_newline_after_break_is_whitespace(self):
        assert html_to_markdown("<p>one<br/>\ntwo</p>") == "one  \ntwo\n"

    def test_literal_checkbox_text_escaped(self):
        assert html_to_markdown("<ul><li><p>[ ] literal</p></li></ul>") == "- \\[ \\] literal\n"

    def test_registered_rule(self):
        codec = MarkupCodec()
        codec.register_block_rule("hr", lambda codec, tag: "***")
        assert codec.encode("<hr>") == "***\n"


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


class TestRoundTrip:
    @pytest.mark.parametrize("document", EDITOR_DOCUMENTS)
    def test_decode_encode_is_structurally_equal(self, document):
        assert normalize_html(_round_trip(document)) == normalize_html(document)

    @pytest.mark.parametrize("document", EDITOR_DOCUMENTS)
    def test_second_round_trip_is_stable(self, document):
        once = _round_trip(document)
        assert normalize_html(_round_trip(once)) == normalize_html(once)

    def test_project_alpha_link(self):
        html = markdown_to_html("[[Project Alpha]]")
        assert html_to_markdown(html).strip() == "[[Project Alpha]]"

    def test_markdown_idempotent_after_one_trip(self):
        markup = textwrap.dedent("""\
            # Plan

            * first
            * second

            - [ ] call   Bob
            - [x] email [[Alice Smith]]

            Some *emphasis*  and trailing text.
        """)
        first = markdown_to_html(markup)
        second = markdown_to_html(html_to_markdown(first))
        assert normalize_html(second) == normalize_html(first)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize("content", ["<p>x</p>", "  <h2>x</h2>", "<div>x</div>", "<pre>x</pre>"])
    def test_html_sniff(self, content):
        assert is_html_content(content)

    @pytest.mark.parametrize("content", ["", "plain", "# heading", "<span>x</span>", "<P>x</P>"])
    def test_html_sniff_rejects(self, content):
        assert not is_html_content(content)

    def test_escape_text(self):
        assert escape_text("a*b<c&d") == "a\\*b&lt;c&amp;d"

    def test_normalize_ignores_attribute_order_and_whitespace(self):
        a = '<ul data-type="taskList"><li data-checked="true" data-type="taskItem"><p> x </p></li></ul>'
        b = '<ul data-type="taskList">\n  <li data-type="taskItem" data-checked="true"><p>x</p></li>\n</ul>'
        assert normalize_html(a) == normalize_html(b)
