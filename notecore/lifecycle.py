"""Open notes, navigation and the flush-before-switch rule.

Every operation that moves the user away from the active note first awaits
a flush of that note. If the flush fails the operation is aborted and the
tab state is left as it was. Results of bridge reads are applied only if no
other navigation started while the read was pending.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import replace
from datetime import date

from .autolock import AutoLockMonitor
from .autosave import AutoSaveScheduler, SaveOutcome
from .bridge import BridgeError, CommandBridge
from .clock import Scheduler
from .config import Settings
from .converters import MarkupCodec
from .links import LinkResolver
from .models import (
    Note,
    NoteFile,
    NoteListing,
    daily_filename,
    note_from_file,
    week_id,
    weekly_filename,
    WEEKLY_DIR,
)
from .sanitizer import ContentSanitizer
from .tabs import OpenTabSet, TabNotFoundError
from .tasks import TaskStatusCache

_LOG = logging.getLogger(__name__)

MAX_NOTE_TITLE_LENGTH = 100

# Letters, numbers, spaces and hyphens only
_VALID_TITLE_RE = re.compile(r"^[a-zA-Z0-9\s-]+$")


class InvalidNoteTitleError(ValueError):
    """A title that cannot be turned into a standalone note filename."""
    pass


def validate_note_title(title: str) -> str:
    """Return the trimmed title, or raise :class:`InvalidNoteTitleError`."""
    trimmed = title.strip()
    if not trimmed:
        raise InvalidNoteTitleError("Note title cannot be empty")
    if len(trimmed) > MAX_NOTE_TITLE_LENGTH:
        raise InvalidNoteTitleError(f"Title must be {MAX_NOTE_TITLE_LENGTH} characters or less")
    if ".." in trimmed:
        raise InvalidNoteTitleError('Title cannot contain ".."')
    if not _VALID_TITLE_RE.match(trimmed):
        raise InvalidNoteTitleError("Title can only contain letters, numbers, spaces, and hyphens")
    return trimmed


def _flags(file: NoteFile | Note) -> dict[str, bool]:
    return {"is_daily": file.is_daily, "is_weekly": file.is_weekly}


class NoteLifecycleController:
    """Owns the open tabs, the listing cache and both timers.

    Args:
        bridge: Command bridge for all file and encryption operations
        settings: Runtime settings; defaults apply when omitted
        codec: Markup converter; built from *settings* when omitted
        scheduler: Timer source shared by auto-save and auto-lock
        on_error: Called with ``(error, note)`` when a background save fails
    """

    def __init__(
        self,
        bridge: CommandBridge,
        settings: Settings | None = None,
        *,
        codec: MarkupCodec | None = None,
        scheduler: Scheduler | None = None,
        on_error: Callable[[BridgeError, Note], None] | None = None,
    ) -> None:
        self.bridge = bridge
        self.settings = settings or Settings()
        self.codec = codec or MarkupCodec(
            ContentSanitizer(self.settings.asset_url_prefixes),
            LinkResolver(self.settings.preserve_link_aliases),
        )
        self.on_error = on_error

        self.listing = NoteListing()
        self.task_status = TaskStatusCache()
        self.tabs = OpenTabSet(self.settings.max_pinned_tabs)
        self.autosave = AutoSaveScheduler(
            bridge,
            self.listing,
            self.task_status,
            codec=self.codec,
            scheduler=scheduler,
            delay_ms=self.settings.auto_save_delay_ms,
            on_error=self._report_error,
        )
        self.autolock = AutoLockMonitor(
            self.settings.auto_lock_timeout_minutes,
            self.relock,
            scheduler=self.autosave.scheduler,
            events=self.settings.activity_events,
        )
        self._generation = 0

    @property
    def current_note(self) -> Note | None:
        return self.tabs.active

    @property
    def active_id(self) -> str | None:
        return self.tabs.active_id

    def _report_error(self, error: BridgeError, note: Note) -> None:
        if self.on_error is not None:
            self.on_error(error, note)

    # -- navigation helpers ------------------------------------------------

    async def flush_current_note(self) -> SaveOutcome:
        """Save or delete the active note now. Bridge errors propagate."""
        note = self.tabs.active
        if note is None:
            return SaveOutcome.SKIPPED
        return await self.autosave.flush(note)

    async def _leave(self) -> tuple[Note | None, SaveOutcome]:
        left = self.tabs.active
        outcome = await self.flush_current_note()
        # Edits that arrived while the write was in flight
        while left is not None and self.tabs.active_id == left.id and self.autosave.is_dirty(self.tabs.active):
            outcome = await self.flush_current_note()
        return left, outcome

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _settle(self, left: Note | None, outcome: SaveOutcome) -> None:
        """Finish a navigation: drop emptied periodic tabs, retrack the active note."""
        if (
            left is not None
            and outcome is SaveOutcome.DELETED
            and left.is_periodic
            and left.id != self.tabs.active_id
            and left.id in self.tabs
        ):
            self.tabs.close(left.id)
            _LOG.debug("Closed tab of deleted empty note %s", left.id)

        self.autosave.reset()
        self.autosave.note_changed(self.tabs.active)

    async def _read_and_open(
        self,
        file: NoteFile,
        generation: int,
        in_new_tab: bool,
        left: Note | None,
        outcome: SaveOutcome,
    ) -> Note | None:
        raw = await self.bridge.read_note(file.name, **_flags(file))
        if not self._is_current(generation):
            _LOG.debug("Discarding stale read of %s", file.path)
            return None

        note = note_from_file(file, self.codec.decode(raw))
        stored = self.tabs.open(note, in_new_tab)
        self._settle(left, outcome)
        return stored

    def _open_virtual(self, file: NoteFile, in_new_tab: bool, left: Note | None, outcome: SaveOutcome) -> Note:
        stored = self.tabs.open(note_from_file(file, ""), in_new_tab)
        self._settle(left, outcome)
        return stored

    # -- tabs --------------------------------------------------------------

    async def open_tab(self, note: Note, in_new_tab: bool = False) -> Note:
        """Open an already materialized note (see :meth:`OpenTabSet.open`)."""
        left, outcome = await self._leave()
        self._begin()
        stored = self.tabs.open(note, in_new_tab)
        self._settle(left, outcome)
        return stored

    async def close_tab(self, note_id: str) -> Note:
        """Close a tab, flushing it first when it is the active one."""
        if note_id not in self.tabs:
            raise TabNotFoundError(f"No open tab for {note_id!r}")

        if note_id == self.tabs.active_id:
            await self.flush_current_note()
            self._begin()

        removed = self.tabs.close(note_id)
        self._settle(None, SaveOutcome.SKIPPED)
        return removed

    async def switch_tab(self, note_id: str) -> Note:
        if note_id not in self.tabs:
            raise TabNotFoundError(f"No open tab for {note_id!r}")
        if note_id == self.tabs.active_id:
            return self.tabs.active

        left, outcome = await self._leave()
        self._begin()
        note = self.tabs.activate(note_id)
        self._settle(left, outcome)
        return note

    def pin_tab(self, note_id: str) -> bool:
        """Toggle the pin of a tab. Raises :class:`PinLimitError` at the limit."""
        return self.tabs.toggle_pin(note_id)

    def reorder_tabs(self, from_index: int, to_index: int) -> bool:
        return self.tabs.move(from_index, to_index)

    # -- loading -----------------------------------------------------------

    async def refresh(self) -> list[NoteFile]:
        """Reload the listing cache from the bridge."""
        records = await self.bridge.list_notes()
        self.listing.replace([NoteFile.from_dict(record) for record in records])
        _LOG.debug("Listing refreshed: %d notes", len(self.listing))
        return self.listing.files

    async def load_note(self, file: NoteFile, in_new_tab: bool = False) -> Note | None:
        """Read a listed note and open it.

        Returns None when another navigation started while the read was
        pending; the read result is then discarded.
        """
        left, outcome = await self._leave()
        generation = self._begin()
        return await self._read_and_open(file, generation, in_new_tab, left, outcome)

    async def load_daily_note(self, day: date, in_new_tab: bool = False) -> Note | None:
        day_str = day.isoformat()
        filename = daily_filename(day)
        file = self.listing.find_daily(day_str) or NoteFile(
            name=filename, path=filename, is_daily=True, date=day_str
        )
        return await self._load_periodic(file, self.settings.default_daily_template, in_new_tab)

    async def load_weekly_note(self, day: date, in_new_tab: bool = False) -> Note | None:
        week = week_id(day)
        filename = weekly_filename(day)
        file = self.listing.find_weekly(week) or NoteFile(
            name=filename, path=f"{WEEKLY_DIR}/{filename}", is_weekly=True, week=week
        )
        return await self._load_periodic(file, self.settings.default_weekly_template, in_new_tab)

    async def _load_periodic(self, file: NoteFile, template_id: str | None, in_new_tab: bool) -> Note | None:
        left, outcome = await self._leave()
        generation = self._begin()

        if self.listing.find_path(file.path) is not None:
            return await self._read_and_open(file, generation, in_new_tab, left, outcome)

        if template_id:
            try:
                await self.bridge.create_note_from_template(file.name, template_id, **_flags(file))
            except BridgeError as e:
                _LOG.warning("Creating %s from template %s failed: %s", file.name, template_id, e)
            else:
                self.listing.add(file)
                return await self._read_and_open(file, generation, in_new_tab, left, outcome)

        if not self._is_current(generation):
            return None
        return self._open_virtual(file, in_new_tab, left, outcome)

    async def create_note(self, title: str, in_new_tab: bool = False) -> Note:
        """Create an empty standalone note and open it."""
        title = validate_note_title(title)
        note = Note(id=f"{title}.md", title=title)
        if self.listing.find_for(note) is not None:
            raise InvalidNoteTitleError(f'A note named "{title}" already exists')

        left, outcome = await self._leave()
        self._begin()
        await self.bridge.write_note(note.filename, "")
        self.listing.add(NoteFile.for_note(note))
        stored = self.tabs.open(note, in_new_tab)
        self._settle(left, outcome)
        _LOG.info("Created note %s", note.filename)
        return stored

    async def delete_current_note(self) -> Note | None:
        """Delete the active note's file and close its tab without saving."""
        note = self.tabs.active
        if note is None:
            return None

        await self.bridge.delete_note(note.filename, **_flags(note))
        self._begin()
        self.autosave.reset()
        self.listing.remove_for(note)
        if note.is_daily and note.date:
            self.task_status.remove(note.date)
        if self.autolock.is_granted(note.id):
            self.autolock.revoke(note.id)
        self.tabs.close(note.id)
        self._settle(None, SaveOutcome.SKIPPED)
        _LOG.info("Deleted note %s", note.filename)
        return note

    # -- editing -----------------------------------------------------------

    def update_content(self, note_id: str, html: str) -> bool:
        """Apply an editor change. Changes for a note that is no longer active are ignored."""
        active = self.tabs.active
        if active is None or active.id != note_id:
            _LOG.debug("Ignoring stale update for %s", note_id)
            return False
        if html == active.content:
            return True
        updated = self.tabs.update(active.with_content(html))
        self.autosave.note_changed(updated)
        return True

    # -- encryption --------------------------------------------------------

    async def lock_note(self, file: NoteFile, password: str) -> None:
        """Encrypt a note's file. An open tab for it is flushed, then closed."""
        open_note = self.tabs.get(file.path)
        if open_note is not None and open_note.id == self.tabs.active_id:
            await self.flush_current_note()

        await self.bridge.lock_note(file.name, password, **_flags(file))
        self.listing.mark_locked(file.path, True)
        self.relock([file.path])

    async def unlock_note(self, file: NoteFile, password: str, in_new_tab: bool = False) -> Note | None:
        """Open a locked note's decrypted content under a temporary grant.

        Raises:
            WrongPasswordError: If the password does not match
        """
        left, outcome = await self._leave()
        generation = self._begin()

        content = await self.bridge.unlock_note(file.name, password, **_flags(file))
        if not self._is_current(generation):
            _LOG.debug("Discarding stale unlock of %s", file.path)
            return None

        note = replace(note_from_file(file, self.codec.decode(content)), is_locked=True)
        stored = self.tabs.open(note, in_new_tab)
        self.autolock.grant(stored.id)
        self._settle(left, outcome)
        return stored

    async def permanently_unlock_note(self, file: NoteFile, password: str) -> None:
        """Remove encryption from a note's file for good."""
        await self.bridge.permanently_unlock_note(file.name, password, **_flags(file))
        self.listing.mark_locked(file.path, False)
        if self.autolock.is_granted(file.path):
            self.autolock.revoke(file.path)

        open_note = self.tabs.get(file.path)
        if open_note is not None and open_note.is_locked:
            self.tabs.update(replace(open_note, is_locked=False))
            if open_note.id == self.tabs.active_id:
                self._settle(None, SaveOutcome.SKIPPED)

    def relock(self, note_ids: list[str]) -> None:
        """Revoke grants and close the tabs of *note_ids* without saving."""
        closed_active = False
        for note_id in note_ids:
            if self.autolock.is_granted(note_id):
                self.autolock.revoke(note_id)
            if note_id in self.tabs:
                if note_id == self.tabs.active_id:
                    closed_active = True
                self.tabs.close(note_id)

        if closed_active:
            self._begin()
            self._settle(None, SaveOutcome.SKIPPED)
        _LOG.info("Re-locked %d notes", len(note_ids))

    def close(self) -> None:
        """Stop both timers."""
        self.autosave.cancel()
        self.autolock.close()
