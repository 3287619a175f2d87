"""Converters between stored Markdown and the editor's HTML document tree.

Decoding runs Python-Markdown and then a fixed series of passes over the
parsed tree (link restoration, list-item shaping, task-list normalization,
sanitizing). Encoding walks the tree with a per-tag rule table.
"""

import copy
import html
import logging
import re
from collections.abc import Callable

import markdown
from bs4 import BeautifulSoup, NavigableString, Tag

from .links import PLACEHOLDER_OPEN, PLACEHOLDER_RE, WIKI_LINK_TAG, LinkResolver
from .sanitizer import ContentSanitizer
from .tasks import (
    TASK_ITEM,
    TASK_LIST,
    mark_checkboxes,
    normalize_task_lists,
    shape_task_items,
    unmark_checkboxes,
)

_LOG = logging.getLogger(__name__)

# Parser configuration: built once, never changed per call
# "extra" without attr_list and def_list: editor text has no escape for their syntax
MARKDOWN_EXTENSIONS = ("abbr", "fenced_code", "footnotes", "md_in_html", "tables", "sane_lists")

# Stored content starting with one of these is already editor HTML
HTML_BLOCK_PREFIXES = ("<p>", "<h1>", "<h2>", "<h3>", "<ul>", "<ol>", "<blockquote>", "<pre>", "<div>")

BLOCK_TAGS = frozenset({
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "blockquote",
    "pre", "hr", "div", "table", "dl",
})
_CONTAINER_TAGS = ("ul", "ol", "blockquote", "div")
_HEADINGS = {f"h{level}": level for level in range(1, 7)}

_ESCAPE_RE = re.compile(r"([\\`*_{}\[\]])")
_LINE_START_RE = re.compile(r"^(\s*)([#>+\-])")
# Not backslash-escapable in Markdown; written as character references
_LINE_START_ENTITIES = {"=": "&#61;", ":": "&#58;"}
_ORDERED_START_RE = re.compile(r"^(\s*\d+)([.)])")
_TEXT_ALIGN_RE = re.compile(r"text-align\s*:\s*(\w+)")
_WHITESPACE_RE = re.compile(r"\s+")

BlockRule = Callable[["MarkupCodec", Tag], str]
InlineRule = Callable[["MarkupCodec", Tag], str]


def is_html_content(content: str) -> bool:
    """Detect content stored in the editor's HTML form (older notes).

    This is a prefix heuristic, not a format marker: a plain-text note that
    literally starts with ``<p>`` is treated as HTML too.
    """
    if not content:
        return False
    return content.strip().startswith(HTML_BLOCK_PREFIXES)


def escape_text(text: str) -> str:
    """Escape Markdown metacharacters in a text run."""
    text = _ESCAPE_RE.sub(r"\\\1", text)
    text = text.replace("&", "&amp;").replace("<", "&lt;")
    return text


def _escape_line_starts(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        line = _LINE_START_RE.sub(r"\1\\\2", line, count=1)
        line = _ORDERED_START_RE.sub(r"\1\\\2", line, count=1)
        body = line.lstrip()
        if body[:1] in _LINE_START_ENTITIES:
            line = line[: len(line) - len(body)] + _LINE_START_ENTITIES[body[0]] + body[1:]
        lines.append(line)
    return "\n".join(lines)


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def _wrap_inline(content: str, marker: str) -> str:
    """Wrap *content* in an emphasis marker, keeping edge spaces outside."""
    stripped = content.strip()
    if not stripped:
        return content
    lead = content[: len(content) - len(content.lstrip())]
    trail = content[len(content.rstrip()):]
    return f"{lead}{marker}{stripped}{marker}{trail}"


def _alignment(tag: Tag) -> str | None:
    match = _TEXT_ALIGN_RE.search(tag.get("style") or "")
    if match and match.group(1).lower() not in ("left", "start"):
        return match.group(1).lower()
    return None


def _is_blank(node) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


# ---------------------------------------------------------------------------
# Decode passes
# ---------------------------------------------------------------------------


def _inside(node, names: set[str]) -> bool:
    return any(parent.name in names for parent in node.parents)


def _restore_links(soup: BeautifulSoup, links, resolver: LinkResolver) -> None:
    """Swap placeholders for link nodes (or back to literal syntax inside code)."""

    def literal(match: re.Match) -> str:
        index = int(match.group(1))
        return resolver.source_text(links[index]) if index < len(links) else match.group(0)

    for string in list(soup.find_all(string=PLACEHOLDER_RE)):
        if _inside(string, {"code", "pre"}):
            string.replace_with(NavigableString(PLACEHOLDER_RE.sub(literal, str(string))))
            continue

        pieces = PLACEHOLDER_RE.split(str(string))
        nodes = []
        for position, piece in enumerate(pieces):
            if position % 2 == 0:
                if piece:
                    nodes.append(NavigableString(piece))
                continue
            index = int(piece)
            if index < len(links):
                nodes.append(resolver.make_node(soup, links[index]))
            else:
                nodes.append(NavigableString(piece))
        for node in nodes:
            string.insert_before(node)
        string.extract()

    for tag in soup.find_all(True):
        for key, value in list(tag.attrs.items()):
            if isinstance(value, str) and PLACEHOLDER_OPEN in value:
                tag[key] = PLACEHOLDER_RE.sub(literal, value)


def _trim_paragraph(p: Tag) -> None:
    if p.contents and isinstance(p.contents[0], NavigableString):
        first = p.contents[0]
        first.replace_with(NavigableString(first.lstrip()))
    if p.contents and isinstance(p.contents[-1], NavigableString):
        last = p.contents[-1]
        last.replace_with(NavigableString(last.rstrip()))
    for child in list(p.contents):
        if isinstance(child, NavigableString) and not child:
            child.extract()


def _wrap_list_items(soup: BeautifulSoup) -> None:
    """Give every list item paragraph content, as the editor schema expects."""
    for li in soup.find_all("li"):
        run: list = []

        def flush() -> None:
            if not run:
                return
            if all(_is_blank(node) for node in run):
                for node in run:
                    node.extract()
            else:
                paragraph = soup.new_tag("p")
                run[0].insert_before(paragraph)
                for node in run:
                    paragraph.append(node.extract())
                _trim_paragraph(paragraph)
            run.clear()

        for child in list(li.children):
            if isinstance(child, Tag) and child.name in BLOCK_TAGS:
                flush()
            else:
                run.append(child)
        flush()


def _drop_block_whitespace(soup: BeautifulSoup) -> None:
    for child in list(soup.children):
        if _is_blank(child):
            child.extract()
    for container in soup.find_all(list(_CONTAINER_TAGS)):
        for child in list(container.children):
            if _is_blank(child):
                child.extract()


def _unwrap_image_paragraphs(soup: BeautifulSoup) -> None:
    for p in soup.find_all("p"):
        meaningful = [c for c in p.children if not _is_blank(c)]
        if len(meaningful) == 1 and isinstance(meaningful[0], Tag) and meaningful[0].name == "img":
            if p.parent is not None and p.parent.name == "li":
                continue
            p.replace_with(meaningful[0].extract())


def _trim_code_blocks(soup: BeautifulSoup) -> None:
    for code in soup.select("pre > code"):
        text = code.get_text()
        if text.endswith("\n"):
            code.string = text[:-1]


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class MarkupCodec:
    """Bidirectional Markdown <-> editor HTML converter.

    ``block_rules`` and ``inline_rules`` map tag names to serializers and
    can be extended per instance with :meth:`register_block_rule` and
    :meth:`register_inline_rule`.
    """

    def __init__(
        self,
        sanitizer: ContentSanitizer | None = None,
        links: LinkResolver | None = None,
    ) -> None:
        self.sanitizer = sanitizer or ContentSanitizer()
        self.links = links or LinkResolver()
        self.block_rules: dict[str, BlockRule] = dict(_BLOCK_RULES)
        self.inline_rules: dict[str, InlineRule] = dict(_INLINE_RULES)

    def register_block_rule(self, tag: str, rule: BlockRule) -> None:
        self.block_rules[tag] = rule

    def register_inline_rule(self, tag: str, rule: InlineRule) -> None:
        self.inline_rules[tag] = rule

    # -- decode -------------------------------------------------------------

    def decode(self, markup: str) -> str:
        """Convert stored Markdown to sanitized editor HTML.

        Never raises: content that cannot be parsed is returned as escaped
        paragraphs so the note stays openable.
        """
        if not markup or not markup.strip():
            return ""

        if is_html_content(markup):
            return self.sanitizer.sanitize(markup)

        try:
            return self._decode_markdown(markup)
        except Exception:
            _LOG.warning("Markdown decode failed; falling back to plain paragraphs", exc_info=True)
            blocks = [b.strip() for b in re.split(r"\n\s*\n", markup) if b.strip()]
            return self.sanitizer.sanitize("".join(f"<p>{html.escape(b)}</p>" for b in blocks))

    def _decode_markdown(self, markup: str) -> str:
        processed, links = self.links.to_placeholder(markup)
        processed = mark_checkboxes(processed)
        rendered = markdown.markdown(processed, extensions=list(MARKDOWN_EXTENSIONS))

        soup = BeautifulSoup(rendered, "html.parser")
        _restore_links(soup, links, self.links)
        _wrap_list_items(soup)
        _drop_block_whitespace(soup)
        _unwrap_image_paragraphs(soup)
        _trim_code_blocks(soup)
        normalize_task_lists(soup)
        shape_task_items(soup)
        unmark_checkboxes(soup)
        self.sanitizer.sanitize_tree(soup)
        return str(soup)

    # -- encode -------------------------------------------------------------

    def encode(self, document: str) -> str:
        """Convert editor HTML to Markdown for storage. Empty documents give ``""``."""
        if not document or not document.strip():
            return ""
        soup = BeautifulSoup(document, "html.parser")
        blocks = self.blocks(soup)
        if not blocks:
            return ""
        return "\n\n".join(blocks) + "\n"

    def blocks(self, container: Tag) -> list[str]:
        """Serialize the block children of *container*; empty blocks are dropped."""
        result: list[str] = []
        inline_run: list = []

        def flush() -> None:
            if inline_run:
                text = "".join(self.inline_node(node) for node in inline_run).strip()
                if text:
                    result.append(_escape_line_starts(text))
                inline_run.clear()

        for child in container.children:
            if isinstance(child, Tag) and child.name in self.block_rules:
                flush()
                text = self.block_rules[child.name](self, child)
                if text.strip():
                    result.append(text)
            elif isinstance(child, Tag) and child.name in BLOCK_TAGS:
                flush()
                result.extend(self.blocks(child))
            elif _is_blank(child) and not inline_run:
                continue
            else:
                inline_run.append(child)
        flush()
        return result

    def inline(self, tag: Tag) -> str:
        return "".join(self.inline_node(child) for child in tag.children)

    def inline_node(self, node) -> str:
        if isinstance(node, NavigableString):
            if type(node) is not NavigableString:
                return ""
            # Source newlines are plain whitespace; only <br> breaks a line
            text = str(node).replace("\n", " ")
            if isinstance(node.previous_sibling, Tag) and node.previous_sibling.name == "br":
                text = text.lstrip()
            return escape_text(text)
        rule = self.inline_rules.get(node.name)
        if rule is not None:
            return rule(self, node)
        return self.inline(node)

    def inline_html(self, tag: Tag) -> str:
        """Inner HTML of *tag* with link nodes written back as ``[[label]]``."""
        clone = copy.copy(tag)
        for node in clone.find_all(WIKI_LINK_TAG):
            node.replace_with(NavigableString(self.links.to_markup(node)))
        return "".join(str(child) for child in clone.contents).replace("\n", " ").strip()

    def list_item(self, li: Tag, marker: str) -> str:
        children = [c for c in li.children if not _is_blank(c)]
        first = ""
        if children and isinstance(children[0], Tag) and children[0].name == "p":
            first = _escape_line_starts(self.inline(children.pop(0)).strip())
        elif children and not (isinstance(children[0], Tag) and children[0].name in BLOCK_TAGS):
            run = []
            while children and not (isinstance(children[0], Tag) and children[0].name in BLOCK_TAGS):
                run.append(children.pop(0))
            first = _escape_line_starts("".join(self.inline_node(n) for n in run).strip())

        text = f"{marker}{first}".rstrip() if not first else f"{marker}{first}"
        for child in children:
            body = self.block_text(child)
            if not body:
                continue
            separator = "\n" if isinstance(child, Tag) and child.name in ("ul", "ol") else "\n\n"
            text += separator + _indent(body)
        return text

    def block_text(self, node) -> str:
        if isinstance(node, Tag) and node.name in self.block_rules:
            return self.block_rules[node.name](self, node)
        if isinstance(node, Tag) and node.name in BLOCK_TAGS:
            return "\n\n".join(self.blocks(node))
        return _escape_line_starts(self.inline_node(node).strip())


# ---------------------------------------------------------------------------
# Block rules
# ---------------------------------------------------------------------------


def _paragraph(codec: MarkupCodec, tag: Tag) -> str:
    align = _alignment(tag)
    if align:
        inner = codec.inline_html(tag)
        return f'<p style="text-align: {align}">{inner}</p>' if inner else ""
    return _escape_line_starts(codec.inline(tag).strip())


def _heading(codec: MarkupCodec, tag: Tag) -> str:
    level = _HEADINGS[tag.name]
    align = _alignment(tag)
    if align:
        inner = codec.inline_html(tag)
        return f'<{tag.name} style="text-align: {align}">{inner}</{tag.name}>' if inner else ""
    text = _WHITESPACE_RE.sub(" ", codec.inline(tag)).strip()
    return f"{'#' * level} {text}" if text else ""


def _bullet_list(codec: MarkupCodec, tag: Tag) -> str:
    items = tag.find_all("li", recursive=False)
    if tag.get("data-type") == TASK_LIST:
        lines = []
        for li in items:
            checked = li.get("data-checked") == "true"
            lines.append(codec.list_item(li, "- [x] " if checked else "- [ ] "))
        return "\n".join(lines)

    lines = []
    for li in items:
        if li.get("data-type") == TASK_ITEM:
            checked = li.get("data-checked") == "true"
            lines.append(codec.list_item(li, "- [x] " if checked else "- [ ] "))
        else:
            lines.append(codec.list_item(li, "- "))
    return "\n".join(lines)


def _ordered_list(codec: MarkupCodec, tag: Tag) -> str:
    items = tag.find_all("li", recursive=False)
    return "\n".join(codec.list_item(li, f"{number}. ") for number, li in enumerate(items, 1))


def _blockquote(codec: MarkupCodec, tag: Tag) -> str:
    inner = "\n\n".join(codec.blocks(tag))
    if not inner:
        return ""
    return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))


def _code_block(codec: MarkupCodec, tag: Tag) -> str:
    code = tag.find("code")
    source = code if code is not None else tag
    text = source.get_text()
    if text.endswith("\n"):
        text = text[:-1]

    language = ""
    if code is not None:
        classes = code.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        for cls in classes:
            if cls.startswith("language-"):
                language = cls[len("language-"):]
                break

    fence = "```"
    while fence in text:
        fence += "`"
    return f"{fence}{language}\n{text}\n{fence}"


def _rule(codec: MarkupCodec, tag: Tag) -> str:
    return "---"


def _image(codec: MarkupCodec, tag: Tag) -> str:
    """Images stay inline tags so width and alignment survive storage."""
    attrs = [("src", tag.get("src") or ""), ("alt", tag.get("alt") or "")]
    if tag.get("title"):
        attrs.append(("title", tag["title"]))
    if tag.get("width"):
        attrs.append(("width", str(tag["width"])))
    if tag.get("data-alignment"):
        attrs.append(("data-alignment", tag["data-alignment"]))
    rendered = " ".join(f'{key}="{html.escape(value, quote=True)}"' for key, value in attrs)
    return f"<img {rendered}>"


_BLOCK_RULES: dict[str, BlockRule] = {
    "p": _paragraph,
    **{name: _heading for name in _HEADINGS},
    "ul": _bullet_list,
    "ol": _ordered_list,
    "blockquote": _blockquote,
    "pre": _code_block,
    "hr": _rule,
    "img": _image,
}


# ---------------------------------------------------------------------------
# Inline rules
# ---------------------------------------------------------------------------


def _strong(codec: MarkupCodec, tag: Tag) -> str:
    return _wrap_inline(codec.inline(tag), "**")


def _emphasis(codec: MarkupCodec, tag: Tag) -> str:
    return _wrap_inline(codec.inline(tag), "*")


def _inline_code(codec: MarkupCodec, tag: Tag) -> str:
    text = tag.get_text()
    if "`" in text:
        return f"`` {text} ``"
    return f"`{text}`"


def _anchor(codec: MarkupCodec, tag: Tag) -> str:
    href = tag.get("href") or ""
    text = codec.inline(tag)
    if not href:
        return text
    if any(ch in href for ch in " ()<>"):
        href = f"<{href}>"
    title = tag.get("title")
    if title:
        return f'[{text}]({href} "{title}")'
    return f"[{text}]({href})"


def _line_break(codec: MarkupCodec, tag: Tag) -> str:
    """A hard break, or a literal ``<br>`` where it would end a line with nothing after it."""
    following = tag.next_sibling
    while following is not None and _is_blank(following):
        following = following.next_sibling
    if following is None or (isinstance(following, Tag) and following.name == "br"):
        return "<br>"
    return "  \n"


def _passthrough_tag(codec: MarkupCodec, tag: Tag) -> str:
    """Formatting Markdown has no syntax for is kept as an inline HTML tag."""
    return f"<{tag.name}>{codec.inline(tag)}</{tag.name}>"


def _wiki_link(codec: MarkupCodec, tag: Tag) -> str:
    return codec.links.to_markup(tag)


_INLINE_RULES: dict[str, InlineRule] = {
    "strong": _strong,
    "b": _strong,
    "em": _emphasis,
    "i": _emphasis,
    "code": _inline_code,
    "a": _anchor,
    "br": _line_break,
    "u": _passthrough_tag,
    "s": _passthrough_tag,
    "del": _passthrough_tag,
    "strike": _passthrough_tag,
    "mark": _passthrough_tag,
    "sub": _passthrough_tag,
    "sup": _passthrough_tag,
    "img": _image,
    WIKI_LINK_TAG: _wiki_link,
}


# ---------------------------------------------------------------------------
# Structural comparison
# ---------------------------------------------------------------------------


def normalize_html(document: str) -> str:
    """Canonical form of editor HTML for structural comparison.

    Whitespace runs collapse to one space, whitespace between blocks and at
    block edges is dropped, empty paragraphs are removed and attributes are
    sorted by name.
    """
    soup = BeautifulSoup(document or "", "html.parser")

    for p in soup.find_all("p"):
        if not p.get_text().strip() and not p.find(["img", "br", WIKI_LINK_TAG]):
            p.decompose()

    for string in list(soup.find_all(string=True)):
        if _inside(string, {"pre"}):
            continue
        collapsed = _WHITESPACE_RE.sub(" ", str(string))
        parent = string.parent
        if parent is None or parent.name in (None, "[document]") or parent.name in _CONTAINER_TAGS or parent.name == "li":
            collapsed = collapsed.strip()
        else:
            if parent.name in BLOCK_TAGS:
                if string is parent.contents[0]:
                    collapsed = collapsed.lstrip()
                if string is parent.contents[-1]:
                    collapsed = collapsed.rstrip()
            if isinstance(string.previous_sibling, Tag) and string.previous_sibling.name == "br":
                collapsed = collapsed.lstrip()
            if isinstance(string.next_sibling, Tag) and string.next_sibling.name == "br":
                collapsed = collapsed.rstrip()
        if collapsed:
            string.replace_with(NavigableString(collapsed))
        else:
            string.extract()

    for tag in soup.find_all(True):
        tag.attrs = {key: (" ".join(v) if isinstance(v, list) else v) for key, v in sorted(tag.attrs.items())}

    return str(soup)


_DEFAULT_CODEC = MarkupCodec()


def markdown_to_html(md_content: str) -> str:
    """Convert stored Markdown to editor HTML with the default codec."""
    return _DEFAULT_CODEC.decode(md_content)


def html_to_markdown(html_content: str) -> str:
    """Convert editor HTML to stored Markdown with the default codec."""
    return _DEFAULT_CODEC.encode(html_content)
