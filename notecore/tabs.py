"""Ordered set of open notes with pinning and a single active tab."""

import logging
from dataclasses import replace

from .models import Note

_LOG = logging.getLogger(__name__)

MAX_PINNED_TABS = 5


class TabError(Exception):
    """Base exception for tab operations."""
    pass


class PinLimitError(TabError):
    """Pinning would exceed the maximum number of pinned tabs."""
    pass


class TabNotFoundError(TabError):
    """No open tab has the requested id."""
    pass


class OpenTabSet:
    """Notes currently open as tabs.

    Pinned tabs always form a prefix of the sequence. Ids are unique and
    ``active_id`` is either None or the id of a member.
    """

    def __init__(self, max_pinned: int = MAX_PINNED_TABS) -> None:
        self.max_pinned = max_pinned
        self._tabs: list[Note] = []
        self.active_id: str | None = None

    def __len__(self) -> int:
        return len(self._tabs)

    def __iter__(self):
        return iter(list(self._tabs))

    def __contains__(self, note_id: str) -> bool:
        return self.index_of(note_id) is not None

    @property
    def ids(self) -> list[str]:
        return [note.id for note in self._tabs]

    @property
    def active(self) -> Note | None:
        if self.active_id is None:
            return None
        return self.get(self.active_id)

    @property
    def pinned_count(self) -> int:
        return sum(1 for note in self._tabs if note.is_pinned)

    def index_of(self, note_id: str) -> int | None:
        for index, note in enumerate(self._tabs):
            if note.id == note_id:
                return index
        return None

    def get(self, note_id: str) -> Note | None:
        index = self.index_of(note_id)
        return self._tabs[index] if index is not None else None

    def _require(self, note_id: str) -> int:
        index = self.index_of(note_id)
        if index is None:
            raise TabNotFoundError(f"No open tab for {note_id!r}")
        return index

    def open(self, note: Note, in_new_tab: bool = False) -> Note:
        """Open *note* and make it active.

        An already open id is refreshed in place. Otherwise the note is
        appended when *in_new_tab* is set or nothing is open, and replaces
        the active tab's note in all other cases. The pin flag belongs to
        the slot, not the incoming note.

        Returns:
            The note as stored in the tab set
        """
        index = self.index_of(note.id)
        if index is not None:
            stored = replace(note, is_pinned=self._tabs[index].is_pinned)
            self._tabs[index] = stored
        elif in_new_tab or not self._tabs or self.active_id is None:
            stored = replace(note, is_pinned=False)
            self._tabs.append(stored)
        else:
            active = self._require(self.active_id)
            stored = replace(note, is_pinned=self._tabs[active].is_pinned)
            self._tabs[active] = stored

        self.active_id = stored.id
        return stored

    def update(self, note: Note) -> Note:
        """Replace the stored copy of an open note, keeping its slot and pin flag."""
        index = self._require(note.id)
        stored = replace(note, is_pinned=self._tabs[index].is_pinned)
        self._tabs[index] = stored
        return stored

    def close(self, note_id: str) -> Note:
        """Remove a tab; closing the active tab activates its neighbour."""
        index = self._require(note_id)
        removed = self._tabs.pop(index)
        if self.active_id == note_id:
            if self._tabs:
                self.active_id = self._tabs[min(index, len(self._tabs) - 1)].id
            else:
                self.active_id = None
        return removed

    def activate(self, note_id: str) -> Note:
        index = self._require(note_id)
        self.active_id = note_id
        return self._tabs[index]

    def toggle_pin(self, note_id: str) -> bool:
        """Pin or unpin a tab. Returns the new pinned state.

        A newly pinned tab moves to the end of the pinned group; an
        unpinned one to the start of the unpinned group.

        Raises:
            PinLimitError: If the maximum number of tabs is already pinned
        """
        index = self._require(note_id)
        note = self._tabs[index]

        if not note.is_pinned and self.pinned_count >= self.max_pinned:
            raise PinLimitError(f"Maximum {self.max_pinned} pinned tabs allowed")

        self._tabs.pop(index)
        updated = replace(note, is_pinned=not note.is_pinned)
        # after the pop, pinned_count is the boundary for both directions
        self._tabs.insert(self.pinned_count, updated)
        _LOG.debug("%s tab %s", "Pinned" if updated.is_pinned else "Unpinned", note_id)
        return updated.is_pinned

    def move(self, from_index: int, to_index: int) -> bool:
        """Move a tab within its own group (pinned or unpinned).

        Returns False, changing nothing, when the move would cross the pin
        boundary.
        """
        if not (0 <= from_index < len(self._tabs) and 0 <= to_index < len(self._tabs)):
            raise IndexError("tab index out of range")
        if self._tabs[from_index].is_pinned != self._tabs[to_index].is_pinned:
            return False
        note = self._tabs.pop(from_index)
        self._tabs.insert(to_index, note)
        return True
