"""
Tests for the backup timers.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from contact_vault.daemon.scheduler import (
    BackupAction,
    BackupScheduler,
    SchedulerState,
    TimerSpec,
    decide_cleanup,
    decide_full,
    decide_rapid,
    default_timers,
)
from contact_vault.storage import BackendWriteError

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def make_state(dirty):
    return SchedulerState(dirty=dirty, revision=3, last_modified=NOW, now=NOW)


@pytest.fixture
def mock_writer(contact_store):
    writer = MagicMock()
    writer.store = contact_store
    writer.rapid_backup = AsyncMock()
    writer.full_backup = AsyncMock()
    writer.cleanup = AsyncMock()
    return writer


class TestDecideFunctions:
    """Tests for the pure timer decisions."""

    def test_rapid_only_when_dirty(self):
        """Test that the rapid timer only fires for a dirty store."""
        assert decide_rapid(make_state(dirty=True)) is BackupAction.RAPID
        assert decide_rapid(make_state(dirty=False)) is None

    def test_full_and_cleanup_always_run(self):
        """Test that the full and cleanup timers always fire."""
        assert decide_full(make_state(dirty=False)) is BackupAction.FULL
        assert decide_cleanup(make_state(dirty=False)) is BackupAction.CLEANUP

    def test_default_timers(self):
        """Test the default timer names and intervals."""
        timers = default_timers(1, 2, 3)
        assert [(t.name, t.interval) for t in timers] == [
            ("rapid", 1),
            ("full", 2),
            ("cleanup", 3),
        ]


class TestTick:
    """Tests for evaluating a single timer."""

    @pytest.mark.asyncio
    async def test_clean_store_skips_rapid(self, mock_writer):
        """Test that a tick on a clean store does nothing."""
        scheduler = BackupScheduler(mock_writer)
        spec = TimerSpec("rapid", 30, decide_rapid)

        assert await scheduler.tick(spec) is None
        mock_writer.rapid_backup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dirty_store_runs_rapid(self, mock_writer, contact_store):
        """Test that a tick on a dirty store runs a rapid backup."""
        contact_store.add({"name": "Ada"})
        scheduler = BackupScheduler(mock_writer)

        assert await scheduler.tick(TimerSpec("rapid", 30, decide_rapid)) is BackupAction.RAPID
        mock_writer.rapid_backup.assert_awaited_once()
        assert scheduler.stats.runs == {"rapid": 1}

    @pytest.mark.asyncio
    async def test_cleanup_uses_retention(self, mock_writer):
        """Test that cleanup runs with the configured retention."""
        scheduler = BackupScheduler(mock_writer, retention=timedelta(days=3))
        await scheduler.run_action(BackupAction.CLEANUP)
        mock_writer.cleanup.assert_awaited_once_with(timedelta(days=3))

    @pytest.mark.asyncio
    async def test_failure_recorded_in_stats(self, mock_writer):
        """Test that a failed action is counted and the error kept."""
        mock_writer.full_backup.side_effect = BackendWriteError("disk full")
        scheduler = BackupScheduler(mock_writer)

        assert await scheduler.run_action(BackupAction.FULL) is False
        assert scheduler.stats.errors == {"full": 1}
        assert scheduler.stats.last_error == "full: disk full"


class TestLifecycle:
    """Tests for starting and stopping the timers."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, mock_writer):
        """Test that start launches the timers and stop cancels them."""
        timers = [TimerSpec("full", 0.01, decide_full)]
        scheduler = BackupScheduler(mock_writer, timers=timers)

        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.running
        assert mock_writer.full_backup.await_count >= 1
        assert scheduler.stats.started_at is not None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task_per_timer(self, mock_writer):
        """Test that a second start does not duplicate timers."""
        scheduler = BackupScheduler(mock_writer, timers=[TimerSpec("full", 60, decide_full)])
        scheduler.start()
        first = dict(scheduler._tasks)
        scheduler.start()
        assert scheduler._tasks == first
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_write(self, mock_writer):
        """Test that stop waits for a write already in progress."""
        started = asyncio.Event()
        finished = []

        async def slow_backup():
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)

        mock_writer.full_backup.side_effect = slow_backup
        scheduler = BackupScheduler(mock_writer, timers=[TimerSpec("full", 0.001, decide_full)])

        scheduler.start()
        await started.wait()
        assert scheduler.in_flight == 1
        await scheduler.stop()

        assert finished == [True]
        assert scheduler.in_flight == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, mock_writer):
        """Test that stop before start is a no-op."""
        scheduler = BackupScheduler(mock_writer)
        await scheduler.stop()
        assert not scheduler.running
