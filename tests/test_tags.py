"""Tests for notecore.tags."""

import pytest

from notecore.converters import html_to_markdown
from notecore.tags import (
    aggregate_tags,
    extract_tags,
    extract_tags_from_markdown,
    has_tag,
    is_valid_tag,
    note_tags,
    rename_tag_in_content,
    sort_tags_by_count,
)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractTags:
    def test_from_html(self):
        html = '<h1>Plan #Work</h1><p>call <strong>#home-office</strong> about #work</p>'
        assert extract_tags(html) == ["home-office", "work"]

    def test_tags_split_by_markup_stay_apart(self):
        assert extract_tags("<p>#one</p><p>two</p>") == ["one"]

    def test_attribute_values_ignored(self):
        assert extract_tags('<p><a href="#section">jump</a></p>') == []

    def test_from_plain_text(self):
        assert extract_tags("#alpha, #beta; #alpha") == ["alpha", "beta"]

    @pytest.mark.parametrize("content", ["", "# heading", "#1 first", "issue #42", "C# code"])
    def test_not_tags(self, content):
        assert extract_tags(content) == []

    def test_url_fragments_ignored(self):
        html = '<p>see https://example.com/page#intro and www.example.com/#top but #real</p>'
        assert extract_tags(html) == ["real"]


class TestExtractTagsFromMarkdown:
    def test_from_markdown(self):
        markdown = "# Heading\n\n- [ ] ask about #Budget\n- #budget again\n\n**#q3-plan**\n"
        assert extract_tags_from_markdown(markdown) == ["budget", "q3-plan"]

    def test_link_fragment_ignored(self):
        markdown = "[docs](https://example.com/guide#install) #setup\n"
        assert extract_tags_from_markdown(markdown) == ["setup"]

    def test_tag_at_paragraph_start_survives_storage(self):
        markdown = html_to_markdown("<p>#inbox item</p>")
        assert extract_tags_from_markdown(markdown) == ["inbox"]

    def test_empty(self):
        assert extract_tags_from_markdown("") == []


class TestNoteTags:
    def test_html_and_markdown_notes(self):
        assert note_tags("<p>#old style</p>") == ["old"]
        assert note_tags("new #style\n") == ["style"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize("tag", ["work", "q3-plan", "A1"])
    def test_valid(self, tag):
        assert is_valid_tag(tag)

    @pytest.mark.parametrize("tag", ["", "1st", "-x", "has space", "#work"])
    def test_invalid(self, tag):
        assert not is_valid_tag(tag)

    def test_has_tag_ignores_case(self):
        assert has_tag("<p>#Work</p>", " work ")
        assert not has_tag("<p>#Work</p>", "home")

    def test_aggregate_counts_notes(self):
        counts = aggregate_tags(["#a #b #a", "<p>#b</p>", "#c"])
        assert counts == {"a": 1, "b": 2, "c": 1}

    def test_sort_by_count_then_name(self):
        assert sort_tags_by_count({"b": 1, "a": 1, "c": 3}) == [("c", 3), ("a", 1), ("b", 1)]


class TestRenameTag:
    def test_every_case_replaced(self):
        assert rename_tag_in_content("#Work and #work.", "work", "job") == "#job and #job."

    def test_longer_tags_untouched(self):
        assert rename_tag_in_content("#work-log #worker #work", "work", "job") == "#work-log #worker #job"

    def test_html_boundary(self):
        assert rename_tag_in_content("<p>#work</p>", "work", "job") == "<p>#job</p>"

    def test_missing_arguments_leave_content(self):
        assert rename_tag_in_content("#work", "", "job") == "#work"
