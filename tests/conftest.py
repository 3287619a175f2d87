"""Shared fakes: an in-memory command bridge and a manually advanced clock."""

import inspect

import pytest

from notecore.bridge import BridgeIOError, WrongPasswordError


class ManualTimer:
    def __init__(self, when: float, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose time only moves when a test advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move time forward, running (and awaiting) every timer that comes due."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            result = timer.callback()
            if inspect.isawaitable(result):
                await result
        self.now = target


def _subdir(is_daily: bool, is_weekly: bool) -> str:
    if is_daily:
        return "daily"
    if is_weekly:
        return "weekly"
    return ""


class FakeBridge:
    """In-memory :class:`CommandBridge`.

    Files are keyed by ``(subdir, filename)``. ``fail`` maps an operation
    name to an exception raised on the next calls of that operation.
    """

    def __init__(self) -> None:
        self.files: dict[tuple[str, str], str] = {}
        self.locked: dict[tuple[str, str], str] = {}
        self.templates: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}

    def _check(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail:
            raise self.fail[operation]

    def add(self, filename: str, content: str, *, is_daily: bool = False, is_weekly: bool = False) -> None:
        self.files[(_subdir(is_daily, is_weekly), filename)] = content

    def get(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> str | None:
        return self.files.get((_subdir(is_daily, is_weekly), filename))

    def calls_named(self, operation: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == operation]

    async def list_notes(self) -> list[dict]:
        self._check("list_notes")
        records = []
        for (subdir, name), _ in sorted(self.files.items()):
            record = {"name": name, "path": name, "isLocked": (subdir, name) in self.locked}
            if subdir == "daily":
                record.update(isDaily=True, date=name[:-3])
            elif subdir == "weekly":
                record.update(isWeekly=True, week=name[:-3], path=f"weekly/{name}")
            records.append(record)
        return records

    async def list_folders(self) -> list[dict]:
        self._check("list_folders")
        return []

    async def list_trash(self) -> list[dict]:
        self._check("list_trash")
        return []

    async def read_note(self, filename, *, is_daily=False, is_weekly=False):
        self._check("read_note", filename)
        key = (_subdir(is_daily, is_weekly), filename)
        if key not in self.files:
            raise BridgeIOError(f"Note not found: {filename}")
        return self.files[key]

    async def write_note(self, filename, content, *, is_daily=False, is_weekly=False):
        self._check("write_note", filename, content)
        self.files[(_subdir(is_daily, is_weekly), filename)] = content

    async def delete_note(self, filename, *, is_daily=False, is_weekly=False):
        self._check("delete_note", filename)
        key = (_subdir(is_daily, is_weekly), filename)
        if key not in self.files:
            raise BridgeIOError(f"Note not found: {filename}")
        del self.files[key]

    async def create_note_from_template(self, filename, template_id, *, is_daily=False, is_weekly=False):
        self._check("create_note_from_template", filename, template_id)
        if template_id not in self.templates:
            raise BridgeIOError("Template not found")
        self.files[(_subdir(is_daily, is_weekly), filename)] = self.templates[template_id]

    async def lock_note(self, filename, password, *, is_daily=False, is_weekly=False):
        self._check("lock_note", filename)
        self.locked[(_subdir(is_daily, is_weekly), filename)] = password

    async def unlock_note(self, filename, password, *, is_daily=False, is_weekly=False):
        self._check("unlock_note", filename)
        key = (_subdir(is_daily, is_weekly), filename)
        if self.locked.get(key) != password:
            raise WrongPasswordError("Wrong password")
        return self.files[key]

    async def permanently_unlock_note(self, filename, password, *, is_daily=False, is_weekly=False):
        self._check("permanently_unlock_note", filename)
        key = (_subdir(is_daily, is_weekly), filename)
        if self.locked.get(key) != password:
            raise WrongPasswordError("Wrong password")
        del self.locked[key]

    async def is_note_locked(self, filename, *, is_daily=False, is_weekly=False):
        self._check("is_note_locked", filename)
        return (_subdir(is_daily, is_weekly), filename) in self.locked


@pytest.fixture()
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture()
def clock() -> ManualScheduler:
    return ManualScheduler()
