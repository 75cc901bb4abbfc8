"""Session lifecycle state machine.

Owns the current state of one session and fires a single callback per
distinct transition. Every state is reachable from every other; the state is
a point-in-time classification, not a workflow.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from .exceptions import record_error
from .idle_detector import IdleTimeoutDetector
from .logging_config import log_exception
from .models import SessionState
from .status_file import StatusReading

logger = logging.getLogger(__name__)

StateChangedCallback = Callable[[SessionState, str], None]
SnippetProvider = Callable[[], Awaitable[str]]


class SessionStateMachine:
    """Applies status observations and timeouts to a session's state.

    Not safe for concurrent use: the owning session serializes all calls.
    """

    def __init__(
        self,
        on_state_changed: StateChangedCallback | None = None,
        snippet_provider: SnippetProvider | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        initial_state: SessionState = SessionState.IDLE,
    ) -> None:
        """Initialize the state machine.

        Args:
            on_state_changed: Called with (new_state, snippet) once per
                transition. The snippet is freshly computed for WAITING and
                COMPLETED and carried over otherwise.
            snippet_provider: Computes the latest-response snippet on entry
                to WAITING or COMPLETED.
            clock: Monotonic time source.
            initial_state: State before any observation.
        """
        self.on_state_changed = on_state_changed
        self.snippet_provider = snippet_provider
        self.clock = clock

        self.state = initial_state
        self.last_running_at: float | None = None
        self.latest_snippet = ""
        self.transition_count = 0
        self._last_mtime: int | None = None
        self._newest_mtime: int | None = None

    def mark_running_signal(self, now: float | None = None) -> None:
        """Record a fresh running signal."""
        self.last_running_at = self.clock() if now is None else now

    def note_mtime(self, mtime: int | None) -> None:
        """Remember a file modification time as already seen.

        Used after our own writes so they do not count as running signals.
        """
        self._last_mtime = mtime
        self._remember_newest(mtime)

    def _remember_newest(self, mtime: int | None) -> None:
        if mtime is not None and (self._newest_mtime is None or mtime > self._newest_mtime):
            self._newest_mtime = mtime

    async def observe(self, reading: StatusReading, *, now: float | None = None) -> bool:
        """Apply a status-file reading.

        A RUNNING reading counts as a fresh running signal only if the file
        was modified since the previous reading; re-reading an unchanged file
        must not keep a quiet session alive. A reading older than the last one
        seen was taken before a newer write and is dropped.

        Returns:
            True if the state changed.
        """
        if (
            reading.mtime is not None
            and self._newest_mtime is not None
            and reading.mtime < self._newest_mtime
        ):
            logger.debug("Dropping stale reading %s", reading)
            return False

        fresh = reading.mtime != self._last_mtime
        self._last_mtime = reading.mtime
        self._remember_newest(reading.mtime)

        if reading.state == SessionState.RUNNING and fresh:
            self.mark_running_signal(now)

        return await self.transition(reading.state, now=now)

    async def transition(self, new_state: SessionState, *, now: float | None = None) -> bool:
        """Move to ``new_state`` and notify.

        Identical consecutive states are suppressed.

        Returns:
            True if the state changed and the callback was invoked.
        """
        if new_state == self.state:
            return False

        old_state = self.state
        self.state = new_state

        if new_state == SessionState.RUNNING:
            self.mark_running_signal(now)

        if new_state.needs_snippet:
            self.latest_snippet = await self._capture_snippet()

        self.transition_count += 1
        logger.debug("State %s -> %s", old_state.value, new_state.value)

        if self.on_state_changed:
            try:
                self.on_state_changed(new_state, self.latest_snippet)
            except Exception as e:
                log_exception(logger, e, "Error in state change callback")
                record_error(e)

        return True

    async def check_idle_timeout(
        self,
        detector: IdleTimeoutDetector,
        *,
        now: float | None = None,
    ) -> bool:
        """Force IDLE if the session has been RUNNING without signals too long.

        Returns:
            True if the timeout fired.
        """
        if now is None:
            now = self.clock()
        if not detector.is_timed_out(self.state, self.last_running_at, now):
            return False

        logger.debug(
            "No running signal for %.1fs, forcing idle",
            now - (self.last_running_at or now),
        )
        return await self.transition(SessionState.IDLE, now=now)

    async def _capture_snippet(self) -> str:
        if self.snippet_provider is None:
            return ""
        try:
            return await self.snippet_provider()
        except Exception as e:
            logger.warning("Failed to capture latest response: %s", e)
            record_error(e)
            return ""
