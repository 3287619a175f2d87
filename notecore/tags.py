"""``#tag`` extraction, counting and renaming.

A tag is ``#`` followed by a letter and then letters, digits or hyphens.
Tags compare lowercased, and a ``#`` inside a URL (a fragment identifier)
is never a tag.
"""

import re
from collections import Counter
from collections.abc import Iterable

from bs4 import BeautifulSoup

from .converters import is_html_content

TAG_RE = re.compile(r"#([a-zA-Z][a-zA-Z0-9-]*)")
_VALID_TAG_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]*$")
_URL_RE = re.compile(r"(?:https?://|www\.)[^\s<>\"']+", re.IGNORECASE)
# Characters that may follow a tag being renamed
_TAG_END = r"(?=[\s.,!?;:\])}\"'<>]|$)"


def _tags_in_text(text: str) -> list[str]:
    text = _URL_RE.sub(" ", text)
    return sorted({match.group(1).lower() for match in TAG_RE.finditer(text)})


def extract_tags(content: str) -> list[str]:
    """Unique tags in stored content (editor HTML or plain text), sorted.

    Only the document text is searched, so attribute values such as
    ``href="#section"`` never count.
    """
    if not content:
        return []
    if "<" in content:
        content = BeautifulSoup(content, "html.parser").get_text(" ")
    return _tags_in_text(content)


def extract_tags_from_markdown(markdown: str) -> list[str]:
    """Unique tags in Markdown source, sorted."""
    if not markdown:
        return []
    return _tags_in_text(markdown)


def note_tags(content: str) -> list[str]:
    """Tags of a stored note, whichever form (Markdown or older HTML) it is in."""
    if is_html_content(content):
        return extract_tags(content)
    return extract_tags_from_markdown(content)


def is_valid_tag(tag: str) -> bool:
    """True for a tag name (without ``#``) that :data:`TAG_RE` would match whole."""
    return _VALID_TAG_RE.match(tag) is not None


def normalize_tag(tag: str) -> str:
    return tag.strip().lower()


def has_tag(content: str, tag: str) -> bool:
    return normalize_tag(tag) in extract_tags(content)


def aggregate_tags(contents: Iterable[str]) -> Counter:
    """Count, for each tag, the notes that carry it."""
    counts: Counter = Counter()
    for content in contents:
        counts.update(note_tags(content))
    return counts


def sort_tags_by_count(counts: dict[str, int]) -> list[tuple[str, int]]:
    """``(tag, count)`` pairs, most used first, ties alphabetical."""
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def rename_tag_in_content(content: str, old_tag: str, new_tag: str) -> str:
    """Replace every ``#old_tag`` (any case) with ``#new_tag``.

    Longer tags sharing the prefix, such as ``#old-tag-2``, are left alone.
    """
    if not content or not old_tag or not new_tag:
        return content
    pattern = re.compile("#" + re.escape(old_tag) + _TAG_END, re.IGNORECASE)
    return pattern.sub(lambda _: f"#{new_tag}", content)
