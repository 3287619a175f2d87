"""Allow-list sanitizer for editor HTML.

Anything not explicitly allowed is removed silently: unknown tags are
unwrapped (their text survives), dangerous containers are dropped together
with their content, and attributes are kept only when both the name and the
value pass the per-tag rules below. Running the sanitizer on its own output
changes nothing.
"""

import re

from bs4 import BeautifulSoup, Tag
from bs4.element import CData, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction

ALLOWED_TAGS = frozenset({
    "a", "b", "blockquote", "br", "code", "del", "div", "em", "h1", "h2", "h3",
    "h4", "h5", "h6", "hr", "i", "img", "li", "mark", "ol", "p", "pre", "s",
    "span", "strike", "strong", "sub", "sup", "u", "ul", "wiki-link",
})

# Removed together with everything inside them
DROPPED_TAGS = frozenset({
    "applet", "base", "button", "embed", "form", "frame", "frameset", "head",
    "iframe", "input", "link", "math", "meta", "noscript", "object", "script",
    "select", "style", "svg", "template", "textarea", "title",
})

_ALIGNABLE = frozenset({"p", "h1", "h2", "h3", "h4", "h5", "h6"})

ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "title", "target", "rel"}),
    "img": frozenset({"src", "alt", "title", "width", "data-alignment"}),
    "ul": frozenset({"data-type"}),
    "li": frozenset({"data-type", "data-checked"}),
    "code": frozenset({"class"}),
    "wiki-link": frozenset({"data-target", "data-label", "data-target-name", "data-exists"}),
    **{tag: frozenset({"style"}) for tag in _ALIGNABLE},
}

SAFE_LINK_SCHEMES = frozenset({"http", "https", "mailto"})
SAFE_IMAGE_SCHEMES = frozenset({"http", "https"})

# Local asset-serving URLs produced by the image pipeline
DEFAULT_ASSET_PREFIXES = (
    "asset://localhost/",
    "http://asset.localhost/",
    "https://asset.localhost/",
)

_DATA_IMAGE_RE = re.compile(r"^data:image/(png|jpe?g|gif|webp|bmp);", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.\-]*):")
_URL_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")
_TEXT_ALIGN_RE = re.compile(r"text-align\s*:\s*(left|center|right|justify)\b", re.IGNORECASE)
_LANGUAGE_CLASS_RE = re.compile(r"^language-[\w+#.\-]+$")

_VALUE_RULES = {
    "data-type": {"taskList", "taskItem"},
    "data-checked": {"true", "false"},
    "data-alignment": {"left", "center", "right"},
    "data-exists": {"true", "false", "unknown"},
    "target": {"_blank", "_self"},
}


def _url_scheme(url: str) -> str | None:
    match = _SCHEME_RE.match(_URL_NOISE_RE.sub("", url).lower())
    return match.group(1) if match else None


class ContentSanitizer:
    """Strips everything outside the allow-lists from an HTML fragment.

    Args:
        asset_prefixes: URL prefixes of the local asset server; image sources
            starting with one of them are kept whatever their scheme.
    """

    def __init__(self, asset_prefixes: tuple[str, ...] = DEFAULT_ASSET_PREFIXES) -> None:
        self.asset_prefixes = tuple(p.lower() for p in asset_prefixes)

    def sanitize(self, html: str) -> str:
        """Return the sanitized form of *html*."""
        if not html or not html.strip():
            return ""
        soup = BeautifulSoup(html, "html.parser")
        self.sanitize_tree(soup)
        return str(soup)

    def sanitize_tree(self, node: Tag) -> None:
        """Sanitize a parsed tree in place."""
        for child in list(node.children):
            if isinstance(child, (Comment, Doctype, Declaration, ProcessingInstruction, CData)):
                child.extract()
                continue
            if isinstance(child, NavigableString):
                continue

            name = (child.name or "").lower()
            if name in DROPPED_TAGS:
                child.decompose()
                continue

            self.sanitize_tree(child)

            if name not in ALLOWED_TAGS:
                child.unwrap()
                continue

            self._filter_attributes(child)
            if name == "img" and not child.get("src"):
                child.decompose()

    def is_safe_url(self, url: str, *, image: bool = False) -> bool:
        """Check a link ``href`` (or an image ``src`` when *image* is set)."""
        compact = _URL_NOISE_RE.sub("", url)
        if not compact:
            return False
        lowered = compact.lower()
        if image:
            if lowered.startswith(self.asset_prefixes):
                return True
            if _DATA_IMAGE_RE.match(compact):
                return True
        scheme = _url_scheme(compact)
        if scheme is None:
            return True
        return scheme in (SAFE_IMAGE_SCHEMES if image else SAFE_LINK_SCHEMES)

    def _filter_attributes(self, tag: Tag) -> None:
        allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
        cleaned: dict[str, str] = {}

        for key, value in tag.attrs.items():
            key = key.lower()
            if key not in allowed or key.startswith("on"):
                continue
            if isinstance(value, list):
                value = " ".join(value)
            value = value.strip()

            if key in _VALUE_RULES:
                if value not in _VALUE_RULES[key]:
                    continue
            elif key == "href":
                if not self.is_safe_url(value):
                    continue
            elif key == "src":
                if not self.is_safe_url(value, image=True):
                    continue
            elif key == "width":
                if not value.isdigit():
                    continue
            elif key == "style":
                match = _TEXT_ALIGN_RE.search(value)
                if not match:
                    continue
                value = f"text-align: {match.group(1).lower()}"
            elif key == "class":
                languages = [c for c in value.split() if _LANGUAGE_CLASS_RE.match(c)]
                if not languages:
                    continue
                value = languages[0]

            cleaned[key] = value

        tag.attrs = cleaned


_DEFAULT = ContentSanitizer()


def sanitize(html: str) -> str:
    """Sanitize *html* with the default asset prefixes."""
    return _DEFAULT.sanitize(html)
