"""Tests for the session state machine."""

import logging
from unittest.mock import AsyncMock, Mock

import pytest

from agent_monitor.exceptions import error_stats
from agent_monitor.idle_detector import IdleTimeoutDetector
from agent_monitor.models import SessionState
from agent_monitor.state_machine import SessionStateMachine
from agent_monitor.status_file import StatusReading


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def callback():
    return Mock()


@pytest.fixture
def machine(callback, clock):
    return SessionStateMachine(
        callback, AsyncMock(return_value="snippet"), clock=clock
    )


class TestTransitions:
    """Test state transitions and notification."""

    def test_initial_state(self, machine):
        assert machine.state == SessionState.IDLE
        assert machine.last_running_at is None
        assert machine.latest_snippet == ""
        assert machine.transition_count == 0

    @pytest.mark.asyncio
    async def test_transition_notifies(self, machine, callback):
        changed = await machine.transition(SessionState.RUNNING)

        assert changed is True
        assert machine.state == SessionState.RUNNING
        callback.assert_called_once_with(SessionState.RUNNING, "")

    @pytest.mark.asyncio
    async def test_duplicate_state_suppressed(self, machine, callback):
        await machine.transition(SessionState.RUNNING)
        changed = await machine.transition(SessionState.RUNNING)

        assert changed is False
        assert callback.call_count == 1
        assert machine.transition_count == 1

    @pytest.mark.asyncio
    async def test_idle_to_idle_is_silent(self, machine, callback):
        assert await machine.transition(SessionState.IDLE) is False
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_callback_per_distinct_transition(self, machine, callback):
        sequence = [
            SessionState.RUNNING,
            SessionState.RUNNING,
            SessionState.WAITING,
            SessionState.WAITING,
            SessionState.RUNNING,
            SessionState.COMPLETED,
            SessionState.COMPLETED,
            SessionState.IDLE,
        ]
        for state in sequence:
            await machine.transition(state)

        notified = [call.args[0] for call in callback.call_args_list]
        assert notified == [
            SessionState.RUNNING,
            SessionState.WAITING,
            SessionState.RUNNING,
            SessionState.COMPLETED,
            SessionState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_any_state_reachable_from_any_state(self, machine, callback):
        states = list(SessionState)
        for old in states:
            for new in states:
                if old == new:
                    continue
                machine.state = old
                assert await machine.transition(new) is True

    @pytest.mark.asyncio
    async def test_running_records_signal_time(self, machine, clock):
        clock.now = 123.0
        await machine.transition(SessionState.RUNNING)
        assert machine.last_running_at == 123.0

    @pytest.mark.asyncio
    async def test_explicit_now_overrides_clock(self, machine):
        await machine.transition(SessionState.RUNNING, now=7.5)
        assert machine.last_running_at == 7.5


class TestSnippetCapture:
    """Test latest-response capture on WAITING and COMPLETED."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [SessionState.WAITING, SessionState.COMPLETED])
    async def test_snippet_captured_before_callback(self, state):
        provider = AsyncMock(return_value="Do you want to proceed?")
        seen = []
        machine = SessionStateMachine(
            lambda s, snippet: seen.append((s, snippet, machine.latest_snippet)),
            provider,
        )

        await machine.transition(state)

        provider.assert_awaited_once()
        assert seen == [(state, "Do you want to proceed?", "Do you want to proceed?")]

    @pytest.mark.asyncio
    async def test_snippet_not_captured_for_running_or_idle(self):
        provider = AsyncMock(return_value="x")
        machine = SessionStateMachine(None, provider)

        await machine.transition(SessionState.RUNNING)
        await machine.transition(SessionState.IDLE)

        provider.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snippet_carried_over(self, callback):
        machine = SessionStateMachine(callback, AsyncMock(return_value="Done."))

        await machine.transition(SessionState.COMPLETED)
        await machine.transition(SessionState.IDLE)

        callback.assert_called_with(SessionState.IDLE, "Done.")
        assert machine.latest_snippet == "Done."

    @pytest.mark.asyncio
    async def test_provider_failure_yields_empty_snippet(self, callback):
        error_stats.reset()
        machine = SessionStateMachine(
            callback, AsyncMock(side_effect=RuntimeError("buffer gone"))
        )

        assert await machine.transition(SessionState.WAITING) is True

        callback.assert_called_once_with(SessionState.WAITING, "")
        assert error_stats.by_type.get("RuntimeError") == 1

    @pytest.mark.asyncio
    async def test_no_provider(self, callback):
        machine = SessionStateMachine(callback)
        await machine.transition(SessionState.COMPLETED)
        callback.assert_called_once_with(SessionState.COMPLETED, "")


class TestCallbackErrors:
    """Test callback failure isolation."""

    @pytest.mark.asyncio
    async def test_callback_exception_does_not_propagate(self):
        error_stats.reset()
        machine = SessionStateMachine(Mock(side_effect=ValueError("boom")))

        assert await machine.transition(SessionState.RUNNING) is True

        assert machine.state == SessionState.RUNNING
        assert error_stats.by_type.get("ValueError") == 1

    @pytest.mark.asyncio
    async def test_callback_exception_logged_with_traceback(self, caplog):
        machine = SessionStateMachine(Mock(side_effect=ValueError("boom")))

        with caplog.at_level(logging.ERROR, logger="agent_monitor.state_machine"):
            await machine.transition(SessionState.WAITING)

        record = caplog.records[-1]
        assert record.getMessage() == "Error in state change callback: boom"
        assert record.exc_info is not None

    @pytest.mark.asyncio
    async def test_no_callback(self):
        machine = SessionStateMachine()
        assert await machine.transition(SessionState.RUNNING) is True


class TestObserve:
    """Test applying status-file readings."""

    @pytest.mark.asyncio
    async def test_running_reading_with_new_mtime_refreshes_signal(self, machine):
        await machine.observe(StatusReading(SessionState.RUNNING, 1), now=10.0)
        await machine.observe(StatusReading(SessionState.RUNNING, 2), now=12.0)

        assert machine.last_running_at == 12.0

    @pytest.mark.asyncio
    async def test_rereading_unchanged_file_does_not_refresh(self, machine):
        await machine.observe(StatusReading(SessionState.RUNNING, 1), now=10.0)
        await machine.observe(StatusReading(SessionState.RUNNING, 1), now=14.0)

        assert machine.last_running_at == 10.0

    @pytest.mark.asyncio
    async def test_noted_mtime_is_not_a_signal(self, machine, callback):
        await machine.transition(SessionState.RUNNING, now=10.0)
        machine.note_mtime(5)

        await machine.observe(StatusReading(SessionState.RUNNING, 5), now=14.0)

        assert machine.last_running_at == 10.0
        assert callback.call_count == 1

    @pytest.mark.asyncio
    async def test_observe_applies_state(self, machine, callback):
        changed = await machine.observe(StatusReading(SessionState.WAITING, 3))

        assert changed is True
        callback.assert_called_once_with(SessionState.WAITING, "snippet")

    @pytest.mark.asyncio
    async def test_missing_file_reads_as_idle(self, machine):
        await machine.observe(StatusReading(SessionState.RUNNING, 1))
        await machine.observe(StatusReading(SessionState.IDLE, None))

        assert machine.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_older_reading_after_newer_is_dropped(self, machine, callback):
        await machine.observe(StatusReading(SessionState.WAITING, 200), now=10.0)

        changed = await machine.observe(StatusReading(SessionState.RUNNING, 100), now=11.0)
        await machine.observe(StatusReading(SessionState.WAITING, 200), now=12.0)

        assert changed is False
        assert machine.state == SessionState.WAITING
        assert machine.last_running_at is None
        assert [c.args[0] for c in callback.call_args_list] == [SessionState.WAITING]

    @pytest.mark.asyncio
    async def test_reading_older_than_own_write_is_dropped(self, machine, callback):
        machine.note_mtime(50)

        await machine.observe(StatusReading(SessionState.RUNNING, 40))

        assert machine.state == SessionState.IDLE
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_reading_after_deletion_is_dropped(self, machine):
        await machine.observe(StatusReading(SessionState.COMPLETED, 200))
        await machine.observe(StatusReading(SessionState.IDLE, None))

        await machine.observe(StatusReading(SessionState.RUNNING, 150))

        assert machine.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_missing_file_always_applies(self, machine):
        await machine.observe(StatusReading(SessionState.WAITING, 200))
        changed = await machine.observe(StatusReading(SessionState.IDLE, None))

        assert changed is True
        assert machine.state == SessionState.IDLE


class TestIdleTimeout:
    """Test timeout-driven IDLE transitions."""

    @pytest.mark.asyncio
    async def test_quiet_running_session_goes_idle(self, machine, callback):
        detector = IdleTimeoutDetector(timeout_seconds=5.0)
        await machine.observe(StatusReading(SessionState.RUNNING, 1), now=100.0)

        # Ticks re-read the unchanged file
        for now in (101.0, 102.0, 103.0, 104.0, 105.0):
            await machine.observe(StatusReading(SessionState.RUNNING, 1), now=now)
            assert await machine.check_idle_timeout(detector, now=now) is False

        assert await machine.check_idle_timeout(detector, now=105.001) is True
        assert machine.state == SessionState.IDLE
        assert [c.args[0] for c in callback.call_args_list] == [
            SessionState.RUNNING,
            SessionState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_fresh_signal_postpones_timeout(self, machine):
        detector = IdleTimeoutDetector(timeout_seconds=5.0)
        await machine.observe(StatusReading(SessionState.RUNNING, 1), now=100.0)
        await machine.observe(StatusReading(SessionState.RUNNING, 2), now=104.0)

        assert await machine.check_idle_timeout(detector, now=106.0) is False
        assert await machine.check_idle_timeout(detector, now=109.5) is True

    @pytest.mark.asyncio
    async def test_timeout_uses_clock_by_default(self, machine, clock):
        detector = IdleTimeoutDetector(timeout_seconds=5.0)
        await machine.transition(SessionState.RUNNING)

        clock.now += 5.5
        assert await machine.check_idle_timeout(detector) is True

    @pytest.mark.asyncio
    async def test_waiting_never_times_out(self, machine):
        detector = IdleTimeoutDetector(timeout_seconds=5.0)
        await machine.transition(SessionState.RUNNING, now=100.0)
        await machine.transition(SessionState.WAITING, now=101.0)

        assert await machine.check_idle_timeout(detector, now=1000.0) is False
        assert machine.state == SessionState.WAITING
