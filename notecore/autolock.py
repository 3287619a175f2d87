"""Idle timer that revokes temporary decryption grants."""

import logging
from collections.abc import Callable, Iterable

from .clock import LoopScheduler, Scheduler, TimerHandle

_LOG = logging.getLogger(__name__)

DEFAULT_ACTIVITY_EVENTS = ("mousedown", "mousemove", "keydown", "scroll", "touchstart", "click")


class AutoLockMonitor:
    """Re-locks unlocked notes after a period without user activity.

    A timer is armed only while the timeout is non-zero and at least one
    grant exists. Activity, a timeout change or a grant change re-arms it.
    On expiry every grant is revoked and *on_expire* receives the revoked
    note ids.

    Args:
        timeout_minutes: Idle time before re-locking; 0 disables the monitor
        on_expire: Called with the revoked ids
        scheduler: Timer source
        events: Activity event names that count as user activity
    """

    def __init__(
        self,
        timeout_minutes: float = 0,
        on_expire: Callable[[list[str]], None] | None = None,
        *,
        scheduler: Scheduler | None = None,
        events: Iterable[str] = DEFAULT_ACTIVITY_EVENTS,
    ) -> None:
        if timeout_minutes < 0:
            raise ValueError("auto-lock timeout must not be negative")
        self.timeout_minutes = timeout_minutes
        self.on_expire = on_expire
        self.scheduler = scheduler or LoopScheduler()
        self.events = frozenset(events)

        self._grants: set[str] = set()
        self._timer: TimerHandle | None = None
        self._last_activity: float | None = None
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self.timeout_minutes > 0 and not self._closed

    @property
    def armed(self) -> bool:
        return self._timer is not None

    @property
    def grants(self) -> frozenset[str]:
        return frozenset(self._grants)

    def is_granted(self, note_id: str) -> bool:
        return note_id in self._grants

    def record_activity(self, event: str = "keydown") -> bool:
        """Register a user-activity event. Returns True if it was tracked."""
        if not self.enabled or event not in self.events:
            return False
        self._rearm()
        return True

    def grant(self, note_id: str) -> None:
        self._grants.add(note_id)
        self._rearm()

    def revoke(self, note_id: str) -> None:
        self._grants.discard(note_id)
        self._rearm()

    def set_timeout(self, minutes: float) -> None:
        if minutes < 0:
            raise ValueError("auto-lock timeout must not be negative")
        self.timeout_minutes = minutes
        self._rearm()

    def time_remaining(self) -> float | None:
        """Seconds until expiry, or None when no timer is armed."""
        if self._timer is None or self._last_activity is None:
            return None
        elapsed = self.scheduler.time() - self._last_activity
        return max(0.0, self.timeout_minutes * 60 - elapsed)

    def close(self) -> None:
        """Tear down the timer; no further tracking happens."""
        self._cancel()
        self._closed = True

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _rearm(self) -> None:
        self._cancel()
        if not self.enabled or not self._grants:
            return
        self._last_activity = self.scheduler.time()
        self._timer = self.scheduler.call_later(self.timeout_minutes * 60, self._expire)

    def _expire(self) -> None:
        self._timer = None
        revoked = sorted(self._grants)
        self._grants.clear()
        _LOG.info("Locked %d notes after %s minutes of inactivity", len(revoked), self.timeout_minutes)
        if self.on_expire is not None and revoked:
            self.on_expire(revoked)
