"""Tests for notecore.autolock."""

import asyncio

import pytest

from notecore.autolock import AutoLockMonitor

MINUTE = 60


@pytest.fixture()
def expired() -> list:
    return []


@pytest.fixture()
def monitor(clock, expired) -> AutoLockMonitor:
    return AutoLockMonitor(15, expired.append, scheduler=clock)


class TestExpiry:
    def test_idle_timeout_revokes_grants(self, monitor, clock, expired):
        monitor.grant("b.md")
        monitor.grant("a.md")
        asyncio.run(clock.advance(15 * MINUTE))
        assert expired == [["a.md", "b.md"]]
        assert monitor.grants == frozenset()
        assert not monitor.armed

    def test_no_expiry_before_timeout(self, monitor, clock, expired):
        monitor.grant("a.md")
        asyncio.run(clock.advance(15 * MINUTE - 1))
        assert expired == []
        assert monitor.is_granted("a.md")

    def test_without_grants_nothing_is_armed(self, monitor, clock):
        assert not monitor.armed
        assert monitor.record_activity("keydown")
        assert clock.pending == []

    def test_revoking_last_grant_disarms(self, monitor, clock):
        monitor.grant("a.md")
        monitor.revoke("a.md")
        assert not monitor.armed
        assert clock.pending == []


class TestActivity:
    def test_activity_restarts_countdown(self, monitor, clock, expired):
        monitor.grant("a.md")
        asyncio.run(clock.advance(14 * MINUTE))
        assert monitor.record_activity("mousemove")
        asyncio.run(clock.advance(14 * MINUTE))
        assert expired == []
        asyncio.run(clock.advance(1 * MINUTE))
        assert expired == [["a.md"]]

    def test_untracked_event_ignored(self, monitor, clock, expired):
        monitor.grant("a.md")
        asyncio.run(clock.advance(10 * MINUTE))
        assert not monitor.record_activity("wheel")
        asyncio.run(clock.advance(5 * MINUTE))
        assert expired == [["a.md"]]

    def test_custom_event_set(self, clock):
        monitor = AutoLockMonitor(1, scheduler=clock, events=["focus"])
        monitor.grant("a.md")
        assert monitor.record_activity("focus")
        assert not monitor.record_activity("keydown")

    def test_time_remaining(self, monitor, clock):
        assert monitor.time_remaining() is None
        monitor.grant("a.md")
        asyncio.run(clock.advance(5 * MINUTE))
        assert monitor.time_remaining() == 10 * MINUTE


class TestSettings:
    def test_zero_timeout_disables(self, clock, expired):
        monitor = AutoLockMonitor(0, expired.append, scheduler=clock)
        monitor.grant("a.md")
        assert not monitor.enabled
        assert not monitor.armed
        assert not monitor.record_activity("keydown")
        asyncio.run(clock.advance(24 * 60 * MINUTE))
        assert expired == []

    def test_set_timeout_rearms(self, monitor, clock, expired):
        monitor.grant("a.md")
        asyncio.run(clock.advance(3 * MINUTE))
        monitor.set_timeout(5)
        assert monitor.time_remaining() == 5 * MINUTE
        asyncio.run(clock.advance(5 * MINUTE))
        assert expired == [["a.md"]]

    def test_set_timeout_zero_disarms(self, monitor, clock):
        monitor.grant("a.md")
        monitor.set_timeout(0)
        assert not monitor.armed
        assert clock.pending == []

    def test_negative_timeout_rejected(self, monitor, clock):
        with pytest.raises(ValueError):
            AutoLockMonitor(-1, scheduler=clock)
        with pytest.raises(ValueError):
            monitor.set_timeout(-5)

    def test_close_tears_down(self, monitor, clock, expired):
        monitor.grant("a.md")
        monitor.close()
        assert not monitor.armed
        assert not monitor.record_activity("keydown")
        asyncio.run(clock.advance(30 * MINUTE))
        assert expired == []
