"""Checkable list items: checkbox marking, list normalization and task counting.

A bullet run such as::

    - [ ] buy milk
    - call mom
    - [x] pay rent

parses as a single list. Checkbox markers are found on the source lines by
:func:`mark_checkboxes` before Markdown runs, since escaped text such as
``- \\[ \\] literal`` reads the same as a marker once parsed.
:func:`normalize_task_lists` then splits the list into a task list and a
plain list, and :func:`shape_task_items` turns the marks into the editor's
task-item attributes.
"""

import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag

from .models import TaskStatus

_LOG = logging.getLogger(__name__)

# Private-use stand-ins for "[ ]", "[x]" and "[X]" on bullet lines
CHECKBOX_MARKS = {"\ue002": " ", "\ue003": "x", "\ue004": "X"}
_MARK_FOR = {state: mark for mark, state in CHECKBOX_MARKS.items()}

_SOURCE_CHECKBOX_RE = re.compile(r"^((?:[ \t]*>)*[ \t]*[-*+][ \t]+)\[([ xX])\](?=[ \t]|$)", re.MULTILINE)
_MARK_RE = re.compile("[" + "".join(CHECKBOX_MARKS) + "]")
CHECKBOX_RE = re.compile(r"^\s*([" + "".join(CHECKBOX_MARKS) + r"])(?:\s+|$)")

TASK_LIST = "taskList"
TASK_ITEM = "taskItem"


def mark_checkboxes(markup: str) -> str:
    """Replace the checkbox of every ``- [ ]`` / ``- [x]`` source line with a mark."""
    return _SOURCE_CHECKBOX_RE.sub(lambda m: m.group(1) + _MARK_FOR[m.group(2)], markup)


def unmark_checkboxes(root: Tag) -> None:
    """Write marks that did not become task items back as literal ``[ ]`` text."""
    for string in list(root.find_all(string=_MARK_RE)):
        restored = _MARK_RE.sub(lambda m: f"[{CHECKBOX_MARKS[m.group(0)]}]", str(string))
        string.replace_with(NavigableString(restored))


def _marker_string(li: Tag) -> NavigableString | None:
    """First meaningful text of a list item, if it sits on the item's own line."""
    for string in li.strings:
        if not string.strip():
            continue
        parent = string.parent
        if parent is li or (parent.name == "p" and parent.parent is li):
            return string
        return None
    return None


def _new_tag(node: Tag, name: str) -> Tag:
    top = node
    while top.parent is not None:
        top = top.parent
    if isinstance(top, BeautifulSoup):
        return top.new_tag(name)
    return BeautifulSoup("", "html.parser").new_tag(name)


def is_checkable(li: Tag) -> bool:
    """True for shaped task items and for items starting with a checkbox mark."""
    if li.get("data-type") == TASK_ITEM:
        return True
    marker = _marker_string(li)
    return marker is not None and CHECKBOX_RE.match(marker) is not None


def normalize_task_lists(root: Tag) -> None:
    """Split bullet lists that mix checkable and plain items.

    Each kind ends up in its own sibling list, items keep their relative
    order, and the lists appear in order of each kind's first item.
    """
    for ul in list(root.find_all("ul")):
        items = ul.find_all("li", recursive=False)
        kinds = [is_checkable(li) for li in items]
        if all(kinds) or not any(kinds):
            continue

        first_kind = kinds[0]
        split = _new_tag(root, "ul")
        for li, checkable in zip(items, kinds):
            if checkable != first_kind:
                split.append(li.extract())
        ul.insert_after(split)
        _LOG.debug("Split mixed list into %d + %d items", kinds.count(first_kind), len(split.find_all("li", recursive=False)))


def shape_task_items(root: Tag) -> None:
    """Turn fully checkable bullet lists into task lists.

    The checkbox marker is removed from the item text and recorded as
    ``data-checked``.
    """
    for ul in root.find_all("ul"):
        items = ul.find_all("li", recursive=False)
        if not items or not all(is_checkable(li) for li in items):
            continue

        ul["data-type"] = TASK_LIST
        for li in items:
            if li.get("data-type") == TASK_ITEM:
                continue
            marker = _marker_string(li)
            match = CHECKBOX_RE.match(marker)
            li["data-type"] = TASK_ITEM
            li["data-checked"] = "true" if CHECKBOX_MARKS[match.group(1)] in "xX" else "false"
            marker.replace_with(NavigableString(marker[match.end():]))


def index_tasks(html: str | Tag) -> TaskStatus:
    """Count task items and, among them, the checked ones."""
    if isinstance(html, Tag):
        root = html
    else:
        if not html:
            return TaskStatus()
        root = BeautifulSoup(html, "html.parser")

    items = root.find_all("li", attrs={"data-type": TASK_ITEM})
    completed = sum(1 for li in items if li.get("data-checked") == "true")
    return TaskStatus(total_tasks=len(items), completed_tasks=completed)


class TaskStatusCache:
    """Task counts keyed by daily-note date (``YYYY-MM-DD``).

    A missing entry means "no task data"; a note without tasks never stores
    a zero entry.
    """

    def __init__(self) -> None:
        self._by_date: dict[str, TaskStatus] = {}

    def __contains__(self, day: str) -> bool:
        return day in self._by_date

    def __len__(self) -> int:
        return len(self._by_date)

    def get(self, day: str) -> TaskStatus | None:
        return self._by_date.get(day)

    def set(self, day: str, status: TaskStatus) -> None:
        if status.total_tasks == 0:
            self._by_date.pop(day, None)
        else:
            self._by_date[day] = status

    def remove(self, day: str) -> None:
        self._by_date.pop(day, None)

    def has_incomplete_tasks(self, day: str) -> bool:
        status = self._by_date.get(day)
        return status is not None and status.has_incomplete

    def clear(self) -> None:
        self._by_date.clear()
