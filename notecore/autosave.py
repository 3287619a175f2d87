"""Debounced persistence of the active note."""

import asyncio
import enum
import logging
from collections.abc import Callable

from .bridge import BridgeError, CommandBridge
from .clock import LoopScheduler, Scheduler, TimerHandle
from .convert import is_content_empty
from .converters import MarkupCodec
from .models import Note, NoteFile, NoteListing
from .tasks import TaskStatusCache, index_tasks

_LOG = logging.getLogger(__name__)

DEFAULT_AUTO_SAVE_DELAY_MS = 500
MIN_AUTO_SAVE_DELAY_MS = 100
MAX_AUTO_SAVE_DELAY_MS = 2000


class SaveOutcome(enum.Enum):
    WRITTEN = "written"
    DELETED = "deleted"
    SKIPPED = "skipped"
    LOCKED = "locked"


class AutoSaveScheduler:
    """Saves the active note a short while after its content stops changing.

    The scheduler remembers the content last saved (the snapshot) for one
    note at a time. Feeding it a different note resets the snapshot and
    drops any pending save; the controller flushes the old note first.

    Args:
        bridge: Command bridge used for writes and deletes
        listing: Listing cache, updated when files appear or disappear
        task_status: Per-date task counts, updated for daily notes
        codec: Converter used to encode editor HTML for storage
        scheduler: Timer source
        delay_ms: Debounce delay in milliseconds
        on_error: Called with ``(error, note)`` when a timed save fails
    """

    def __init__(
        self,
        bridge: CommandBridge,
        listing: NoteListing,
        task_status: TaskStatusCache,
        *,
        codec: MarkupCodec | None = None,
        scheduler: Scheduler | None = None,
        delay_ms: int = DEFAULT_AUTO_SAVE_DELAY_MS,
        on_error: Callable[[BridgeError, Note], None] | None = None,
    ) -> None:
        self.bridge = bridge
        self.listing = listing
        self.task_status = task_status
        self.codec = codec or MarkupCodec()
        self.scheduler = scheduler or LoopScheduler()
        self.delay_ms = delay_ms
        self.on_error = on_error

        self._note: Note | None = None
        self._snapshot = ""
        self._timer: TimerHandle | None = None
        # One persist at a time, shared by timed saves and flushes
        self._saving = asyncio.Lock()

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @delay_ms.setter
    def delay_ms(self, value: int) -> None:
        if not MIN_AUTO_SAVE_DELAY_MS <= value <= MAX_AUTO_SAVE_DELAY_MS:
            raise ValueError(
                f"auto-save delay must be between {MIN_AUTO_SAVE_DELAY_MS} and {MAX_AUTO_SAVE_DELAY_MS} ms"
            )
        self._delay_ms = value

    @property
    def note_id(self) -> str | None:
        return self._note.id if self._note else None

    @property
    def snapshot(self) -> str:
        return self._snapshot

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def is_dirty(self, note: Note | None = None) -> bool:
        note = note or self._note
        if note is None:
            return False
        if self._note is None or note.id != self._note.id:
            return True
        return self.pending or note.content != self._snapshot

    def note_changed(self, note: Note | None) -> None:
        """Report the current state of the active note."""
        if note is None:
            self.reset()
            return

        if self._note is None or note.id != self._note.id:
            self.cancel()
            self._note = note
            self._snapshot = note.content
            return

        self._note = note
        if note.content == self._snapshot:
            return

        self.cancel()
        self._timer = self.scheduler.call_later(self.delay_ms / 1000, self._fire)

    def cancel(self) -> None:
        """Drop the pending save, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def reset(self) -> None:
        """Forget the tracked note without saving it."""
        self.cancel()
        self._note = None
        self._snapshot = ""

    async def _fire(self) -> None:
        self._timer = None
        async with self._saving:
            note = self._note
            # A flush may have saved this content while the timer waited
            if note is None or note.content == self._snapshot:
                return

            content = note.content
            try:
                await self.persist(note)
            except BridgeError as e:
                _LOG.error("Auto-save of %s failed: %s", note.filename, e)
                if self.on_error is not None:
                    self.on_error(e, note)
                return

            if self._note is not None and self._note.id == note.id:
                self._snapshot = content

    async def flush(self, note: Note | None = None) -> SaveOutcome:
        """Save *note* (default: the tracked note) now, if it has unsaved changes.

        Waits for a timed save already in flight. The pending timer is
        cancelled only once the save has succeeded and no newer content
        arrived meanwhile; bridge errors propagate to the caller.
        """
        async with self._saving:
            note = note or self._note
            if note is None or not self.is_dirty(note):
                return SaveOutcome.SKIPPED

            content = note.content
            outcome = await self.persist(note)

            if self._note is not None and self._note.id == note.id:
                if self._note.content == content:
                    self.cancel()
                self._snapshot = content
            return outcome

    async def persist(self, note: Note) -> SaveOutcome:
        """Write or delete the backing file of *note* according to its content.

        Periodic notes whose content is empty are deleted (when listed);
        everything else is encoded and written. Notes opened through an
        unlock grant are never written in plain text and give
        ``SaveOutcome.LOCKED``.
        """
        if note.is_locked:
            _LOG.warning("Edits to %s were not saved: opened through an unlock grant", note.filename)
            return SaveOutcome.LOCKED

        filename = note.filename
        flags = {"is_daily": note.is_daily, "is_weekly": note.is_weekly}
        listed = self.listing.find_for(note)

        if note.is_periodic and is_content_empty(note.content):
            outcome = SaveOutcome.SKIPPED
            if listed is not None:
                await self.bridge.delete_note(filename, **flags)
                self.listing.remove_for(note)
                _LOG.info("Deleted empty %s note %s", note.kind.value, filename)
                outcome = SaveOutcome.DELETED
            if note.is_daily and note.date:
                self.task_status.remove(note.date)
            return outcome

        markup = self.codec.encode(note.content)
        await self.bridge.write_note(filename, markup, **flags)
        _LOG.debug("Saved %s (%d chars)", filename, len(markup))

        if listed is None:
            self.listing.add(NoteFile.for_note(note))
        if note.is_daily and note.date:
            self.task_status.set(note.date, index_tasks(note.content))
        return SaveOutcome.WRITTEN
