"""Wiki-link (``[[Note Name]]``) extraction, rewriting and backlink lookup."""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from .models import WikiLink

# [[Display Text]] or [[Display Text|target note]]
WIKI_LINK_RE = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")

# Private-use code points survive Markdown parsing untouched
PLACEHOLDER_OPEN = "\ue000"
PLACEHOLDER_CLOSE = "\ue001"
PLACEHOLDER_RE = re.compile(PLACEHOLDER_OPEN + r"wl(\d+)" + PLACEHOLDER_CLOSE)

WIKI_LINK_TAG = "wiki-link"


def note_name_to_filename(note_name: str) -> str:
    """Convert a note name to its slug filename.

    Lowercase, whitespace runs to hyphens, anything outside ``[a-z0-9-]``
    removed, ``.md`` appended. Whether the note exists is not checked.
    """
    slug = re.sub(r"\s+", "-", note_name.lower().strip())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    return f"{slug}.md"


def parse_wiki_links(text: str) -> list[WikiLink]:
    """Return every wiki link in *text*, in order, duplicates included."""
    links = []
    for match in WIKI_LINK_RE.finditer(text):
        display = match.group(1).strip()
        target_name = (match.group(2) or match.group(1)).strip()
        links.append(WikiLink(display, target_name, note_name_to_filename(target_name)))
    return links


def placeholder(index: int) -> str:
    return f"{PLACEHOLDER_OPEN}wl{index}{PLACEHOLDER_CLOSE}"


class LinkResolver:
    """Rewrites link syntax to link nodes and back.

    Args:
        preserve_aliases: Emit ``[[display|target]]`` when a node's target
            is not the slug of its display text. Off by default, in which
            case links are always written in the short ``[[display]]`` form.
    """

    def __init__(self, preserve_aliases: bool = False) -> None:
        self.preserve_aliases = preserve_aliases

    def to_placeholder(self, markup: str) -> tuple[str, list[WikiLink]]:
        """Replace each link occurrence with an opaque placeholder.

        Returns the rewritten markup and the links in placeholder order, so
        the general Markdown parser never sees link syntax.
        """
        links: list[WikiLink] = []

        def _swap(match: re.Match) -> str:
            display = match.group(1).strip()
            target_name = (match.group(2) or match.group(1)).strip()
            links.append(WikiLink(display, target_name, note_name_to_filename(target_name)))
            return placeholder(len(links) - 1)

        return WIKI_LINK_RE.sub(_swap, markup), links

    @staticmethod
    def source_text(link: WikiLink) -> str:
        """Literal source form of a link, used where links must stay text (code)."""
        if link.target_name != link.display_text:
            return f"[[{link.display_text}|{link.target_name}]]"
        return f"[[{link.display_text}]]"

    @staticmethod
    def make_node(soup: BeautifulSoup, link: WikiLink) -> Tag:
        """Build the ``<wiki-link>`` element the editor understands."""
        node = soup.new_tag(WIKI_LINK_TAG)
        node["data-target"] = link.target
        node["data-label"] = link.display_text
        node["data-target-name"] = link.target_name
        node.string = link.display_text
        return node

    def to_markup(self, node: Tag) -> str:
        """Serialize a link node back to ``[[displayText]]``.

        The retained display label is used, never the resolved target, so a
        round trip does not rename user-visible text.
        """
        label = (node.get("data-label") or node.get_text() or "").strip()
        if self.preserve_aliases:
            target_name = (node.get("data-target-name") or "").strip()
            target = node.get("data-target") or ""
            if target_name and target and target != note_name_to_filename(label):
                return f"[[{label}|{target_name}]]"
        return f"[[{label}]]"


# ---------------------------------------------------------------------------
# Backlinks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Backlink:
    source_path: str
    source_name: str
    is_daily: bool


def normalize_note_name(note_name: str) -> str:
    """Lowercase, trimmed name without a ``.md`` suffix."""
    return re.sub(r"\.md$", "", note_name.strip(), flags=re.IGNORECASE).lower().strip()


def extract_wiki_links(content: str) -> list[str]:
    """Collect link targets from stored HTML or raw Markdown.

    Targets from ``<wiki-link data-target>`` elements and from raw link
    syntax are merged, lowercased, de-duplicated and sorted.
    """
    if not content:
        return []

    targets: set[str] = set()
    if "<" in content:
        soup = BeautifulSoup(content, "html.parser")
        for node in soup.find_all(WIKI_LINK_TAG):
            target = (node.get("data-target") or "").strip().lower()
            if target:
                targets.add(target)

    for link in parse_wiki_links(content):
        if link.target_name:
            targets.add(link.target_name.lower())

    return sorted(targets)


def link_matches_note(link_target: str, note_name: str) -> bool:
    """True if a link target refers to *note_name* (by name, slug or basename)."""
    target = normalize_note_name(link_target)
    note = normalize_note_name(note_name)
    if target == note:
        return True
    basename = note.split("/")[-1]
    if target == basename:
        return True
    # slug form, so [[Project Alpha]] matches project-alpha.md
    slug = note_name_to_filename(target)
    return slug != ".md" and slug == note_name_to_filename(basename)


def find_backlinks(
    target_note_name: str,
    note_contents: dict[str, str],
    note_info: dict[str, tuple[str, bool]],
) -> list[Backlink]:
    """Find the notes whose content links to *target_note_name*.

    Args:
        target_note_name: Name or filename of the linked-to note
        note_contents: Note path -> stored content (HTML or Markdown)
        note_info: Note path -> ``(name, is_daily)``

    Returns:
        Daily notes first (most recent first), then other notes alphabetically.
        Self references are skipped.
    """
    target = normalize_note_name(target_note_name)
    backlinks = []

    for path, content in note_contents.items():
        info = note_info.get(path)
        if info is None:
            continue
        name, is_daily = info
        if normalize_note_name(name) == target:
            continue
        if any(link_matches_note(link, target_note_name) for link in extract_wiki_links(content)):
            backlinks.append(Backlink(path, re.sub(r"\.md$", "", name, flags=re.IGNORECASE), is_daily))

    daily = sorted((b for b in backlinks if b.is_daily), key=lambda b: b.source_name, reverse=True)
    other = sorted((b for b in backlinks if not b.is_daily), key=lambda b: b.source_name.lower())
    return daily + other
