"""Content helpers shared by the save path and the command line."""

import re

from bs4 import BeautifulSoup

from .links import WIKI_LINK_TAG

# Elements that count as content even without any text
_CONTENT_ELEMENTS = ["img", "hr", WIKI_LINK_TAG]

_NBSP_RE = re.compile(r"&nbsp;|\u00a0", re.IGNORECASE)


def is_content_empty(html: str) -> bool:
    """Check whether editor HTML holds anything worth saving.

    Tags are stripped and non-breaking spaces count as whitespace, so
    ``<p>&nbsp;</p>`` is empty. Images and rules count as content.

    Args:
        html: Editor HTML (or any markup)

    Returns:
        True if nothing but whitespace and empty markup remains
    """
    if not html or not html.strip():
        return True

    soup = BeautifulSoup(html, "html.parser")
    if soup.find(_CONTENT_ELEMENTS):
        return False

    text = _NBSP_RE.sub(" ", soup.get_text())
    return not text.strip()


def html_to_plaintext(html: str) -> str:
    """Convert editor HTML to plain text.

    Args:
        html: HTML content

    Returns:
        Plain text with formatting stripped; blocks separated by newlines
        and task items prefixed with their checkbox marker.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(["script", "style"]):
        tag.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")

    for li in soup.find_all("li"):
        if li.get("data-type") == "taskItem":
            marker = "[x] " if li.get("data-checked") == "true" else "[ ] "
        else:
            marker = "- "
        li.insert(0, marker)
        if li.find(["p", "div"]) is None:
            li.append("\n")

    for block in soup.find_all(["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre"]):
        block.append("\n")

    text = _NBSP_RE.sub(" ", soup.get_text())

    # Clean up whitespace
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
