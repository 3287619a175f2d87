"""Data models for notes, listing records and derived task data."""

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum

DAILY_FILENAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.md$")
WEEKLY_FILENAME_RE = re.compile(r"^(\d{4}-W\d{2})\.md$")

NOTE_EXTENSION = ".md"
WEEKLY_DIR = "weekly"


class NoteKind(Enum):
    """Where a note comes from and how its filename is derived."""

    STANDALONE = "standalone"
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass
class Note:
    """A note materialized in memory.

    ``content`` is the editor's serialized HTML, never the stored Markdown.
    """

    id: str
    title: str
    content: str = ""
    kind: NoteKind = NoteKind.STANDALONE
    date: str | None = None
    week: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    is_pinned: bool = False
    is_locked: bool = False

    @property
    def is_daily(self) -> bool:
        return self.kind is NoteKind.DAILY

    @property
    def is_weekly(self) -> bool:
        return self.kind is NoteKind.WEEKLY

    @property
    def is_periodic(self) -> bool:
        return self.kind is not NoteKind.STANDALONE

    @property
    def filename(self) -> str:
        """Authoritative filename, re-derived from the note kind."""
        if self.is_daily and self.date:
            return f"{self.date}{NOTE_EXTENSION}"
        if self.is_weekly and self.week:
            return f"{self.week}{NOTE_EXTENSION}"
        return f"{self.title}{NOTE_EXTENSION}"

    def with_content(self, content: str) -> "Note":
        """Return a copy carrying new content and a fresh ``updated_at``."""
        return replace(self, content=content, updated_at=datetime.now())


@dataclass(frozen=True)
class NoteFile:
    """A directory-listing record as returned by ``list_notes``."""

    name: str
    path: str
    is_daily: bool = False
    is_weekly: bool = False
    date: str | None = None
    week: str | None = None
    is_locked: bool = False
    folder_path: str | None = None

    @property
    def kind(self) -> NoteKind:
        if self.is_daily:
            return NoteKind.DAILY
        if self.is_weekly:
            return NoteKind.WEEKLY
        return NoteKind.STANDALONE

    @classmethod
    def from_dict(cls, data: dict) -> "NoteFile":
        """Build a record from a bridge listing entry (camelCase or snake_case keys)."""

        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            name=data["name"],
            path=data.get("path") or data["name"],
            is_daily=bool(pick("is_daily", "isDaily", False)),
            is_weekly=bool(pick("is_weekly", "isWeekly", False)),
            date=data.get("date"),
            week=data.get("week"),
            is_locked=bool(pick("is_locked", "isLocked", False)),
            folder_path=pick("folder_path", "folderPath"),
        )

    @classmethod
    def for_note(cls, note: Note) -> "NoteFile":
        """Listing entry for a note that has just been written for the first time."""
        name = note.filename
        path = f"{WEEKLY_DIR}/{name}" if note.is_weekly else name
        return cls(
            name=name,
            path=path,
            is_daily=note.is_daily,
            is_weekly=note.is_weekly,
            date=note.date,
            week=note.week,
        )


@dataclass(frozen=True)
class TaskStatus:
    """Checkable-item counts for one note. Derived, never edited by hand."""

    total_tasks: int = 0
    completed_tasks: int = 0

    @property
    def has_incomplete(self) -> bool:
        return self.total_tasks > self.completed_tasks


@dataclass(frozen=True)
class WikiLink:
    """A ``[[display|target]]`` reference found while converting a note."""

    display_text: str
    target_name: str
    target: str


class NoteListing:
    """In-memory copy of the ``list_notes`` result.

    Individual records are never mutated; entries are added, removed or the
    whole listing is replaced on refresh.
    """

    def __init__(self, files: list[NoteFile] | None = None) -> None:
        self._files: list[NoteFile] = list(files or [])

    def __iter__(self):
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    @property
    def files(self) -> list[NoteFile]:
        return list(self._files)

    def replace(self, files: list[NoteFile]) -> None:
        self._files = list(files)

    def find_daily(self, day: str) -> NoteFile | None:
        return next((f for f in self._files if f.is_daily and f.date == day), None)

    def find_weekly(self, week: str) -> NoteFile | None:
        return next((f for f in self._files if f.is_weekly and f.week == week), None)

    def find_path(self, path: str) -> NoteFile | None:
        return next((f for f in self._files if f.path == path), None)

    def find_for(self, note: Note) -> NoteFile | None:
        if note.is_daily:
            return self.find_daily(note.date or "")
        if note.is_weekly:
            return self.find_weekly(note.week or "")
        return self.find_path(note.id) or next(
            (f for f in self._files if f.kind is NoteKind.STANDALONE and f.name == note.filename),
            None,
        )

    def add(self, file: NoteFile) -> None:
        if not any(f.path == file.path for f in self._files):
            self._files.append(file)

    def remove_for(self, note: Note) -> None:
        match = self.find_for(note)
        if match is not None:
            self._files = [f for f in self._files if f is not match]

    def mark_locked(self, path: str, locked: bool) -> None:
        self._files = [replace(f, is_locked=locked) if f.path == path else f for f in self._files]


def daily_filename(day: date) -> str:
    """Filename for a daily note: ``YYYY-MM-DD.md``."""
    return f"{day.isoformat()}{NOTE_EXTENSION}"


def week_id(day: date) -> str:
    """ISO week identifier, e.g. ``2025-W01``."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def weekly_filename(day: date) -> str:
    """Filename for the weekly note containing *day*: ``YYYY-Www.md``."""
    return f"{week_id(day)}{NOTE_EXTENSION}"


def daily_title(day: date) -> str:
    """Readable title for a daily note, e.g. ``January 5, 2025``."""
    return f"{day:%B} {day.day}, {day.year}"


def weekly_title(week: str) -> str:
    year, _, number = week.partition("-W")
    return f"Week {int(number)}, {year}"


def parse_daily_filename(filename: str) -> date | None:
    """Return the date encoded in a daily filename, or None if it isn't one."""
    match = DAILY_FILENAME_RE.match(filename)
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return None


def title_from_filename(filename: str) -> str:
    return filename[: -len(NOTE_EXTENSION)] if filename.endswith(NOTE_EXTENSION) else filename


def note_from_file(file: NoteFile, content: str) -> Note:
    """Materialize a listing record into a :class:`Note` with the given HTML content."""
    if file.is_daily and file.date:
        title = daily_title(date.fromisoformat(file.date))
    elif file.is_weekly and file.week:
        title = weekly_title(file.week)
    else:
        title = title_from_filename(file.name)

    return Note(
        id=file.path,
        title=title,
        content=content,
        kind=file.kind,
        date=file.date,
        week=file.week,
    )
