"""Idle-timeout detection for sessions stuck in RUNNING.

The tool's hooks only fire around tool use. While the model is thinking or
streaming prose it writes nothing, so a session would otherwise stay RUNNING
forever. The detector ticks periodically; each tick re-reads the status file
and forces IDLE once no fresh running signal has been seen for the timeout.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from .models import SessionState

DEFAULT_IDLE_TIMEOUT_SECONDS = 5.0
DEFAULT_TICK_INTERVAL_SECONDS = 1.0


class IdleTimeoutDetector:
    """Decides when a RUNNING session has gone quiet."""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
    ) -> None:
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must be non-negative")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds

    def is_timed_out(
        self,
        state: SessionState,
        last_running_at: float | None,
        now: float,
    ) -> bool:
        """Check whether the session should be forced back to IDLE.

        Args:
            state: The session's current state.
            last_running_at: Monotonic time of the last running signal.
            now: Current monotonic time.

        Returns:
            True only for a RUNNING session whose last running signal is
            strictly older than the timeout.
        """
        if state != SessionState.RUNNING or last_running_at is None:
            return False
        return now - last_running_at > self.timeout_seconds

    async def ticks(self) -> AsyncIterator[int]:
        """Yield a tick counter once per interval, forever.

        The consumer stops iteration by cancelling its task.
        """
        count = 0
        while True:
            await asyncio.sleep(self.interval_seconds)
            count += 1
            yield count
