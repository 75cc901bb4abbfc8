"""Tests for the status file watcher."""

import asyncio
import shutil
from unittest.mock import patch

import pytest

from agent_monitor.models import SessionState
from agent_monitor.status_file import StatusReading, StatusSignalFile
from agent_monitor.status_watcher import StatusFileWatcher


async def wait_for(predicate, timeout: float = 5.0) -> bool:
    """Poll until predicate() is true or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.05)
    return predicate()


@pytest.fixture
def status_file(tmp_path):
    status_file = StatusSignalFile(tmp_path / "status" / "task.status")
    status_file.create()
    return status_file


class TestStatusFileWatcherBasics:
    """Test watcher lifecycle without file events."""

    def test_initial_state(self, status_file):
        watcher = StatusFileWatcher(status_file, lambda reading: None)
        assert watcher.is_watching is False
        assert watcher.attach_count == 0

    @pytest.mark.asyncio
    async def test_start_and_stop(self, status_file):
        watcher = StatusFileWatcher(status_file, lambda reading: None)

        await watcher.start()
        assert watcher.is_watching is True

        await watcher.stop()
        assert watcher.is_watching is False

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self, status_file):
        watcher = StatusFileWatcher(status_file, lambda reading: None)

        await watcher.start()
        task = watcher._task
        await watcher.start()

        assert watcher._task is task
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, status_file):
        watcher = StatusFileWatcher(status_file, lambda reading: None)
        await watcher.stop()
        assert watcher.is_watching is False


class TestStatusFileWatcherEvents:
    """Test readings published for real file changes."""

    @pytest.mark.asyncio
    async def test_publishes_external_write(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            status_file.path.write_text("running\n")
            assert await wait_for(
                lambda: any(r.state == SessionState.RUNNING for r in readings)
            )
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_padded_mixed_case_token_published_as_waiting(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            status_file.path.write_text(" Waiting\n")
            assert await wait_for(
                lambda: bool(readings) and readings[-1].state == SessionState.WAITING
            )
            assert readings[-1].mtime is not None
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_publishes_in_write_order(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            status_file.path.write_text("running")
            assert await wait_for(lambda: bool(readings))
            status_file.path.write_text("completion")
            assert await wait_for(
                lambda: readings[-1].state == SessionState.COMPLETED
            )
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_ignores_sibling_files(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            (status_file.path.parent / "other.status").write_text("running")
            await asyncio.sleep(0.5)
            assert readings == []
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_deleted_file_publishes_idle(self, status_file):
        status_file.path.write_text("running")
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            status_file.remove()
            assert await wait_for(
                lambda: any(r == StatusReading(SessionState.IDLE, None) for r in readings)
            )
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_no_events_after_stop(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await watcher.stop()

        status_file.path.write_text("running")
        await asyncio.sleep(0.5)

        assert readings == []


class TestStatusFileWatcherRecovery:
    """Test reattaching after the watch degrades."""

    @pytest.mark.asyncio
    async def test_reattaches_after_directory_removed(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append, retry_seconds=0.2)
        await watcher.start()
        await asyncio.sleep(0.3)

        try:
            shutil.rmtree(status_file.path.parent)
            assert await wait_for(lambda: watcher.attach_count >= 2)
            assert await wait_for(lambda: status_file.path.parent.is_dir())

            await asyncio.sleep(0.3)
            status_file.path.write_text("waiting")
            assert await wait_for(
                lambda: any(r.state == SessionState.WAITING for r in readings)
            )
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_reattaches_after_watch_error(self, status_file):
        watcher = StatusFileWatcher(status_file, lambda reading: None, retry_seconds=0.05)
        calls = 0

        async def failing_watch():
            nonlocal calls
            calls += 1
            raise OSError("watch limit reached")

        with patch.object(watcher, "_watch_once", side_effect=failing_watch):
            await watcher.start()
            assert await wait_for(lambda: calls >= 3, timeout=2.0)
            await watcher.stop()

        assert watcher.attach_count >= 3

    @pytest.mark.asyncio
    async def test_unreadable_file_publishes_nothing(self, status_file):
        readings: list[StatusReading] = []
        watcher = StatusFileWatcher(status_file, readings.append)

        with patch.object(status_file, "read", return_value=None):
            await watcher._on_file_change()

        assert readings == []
