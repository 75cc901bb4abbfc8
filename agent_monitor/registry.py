"""Task-to-session registry.

Handles session lifecycle for callers: at most one live session per task,
lazily created on first request and torn down explicitly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from .models import LaunchSettings, MonitorSettings, SessionParams
from .ports import TerminalBuffer
from .session import AgentSession, ToolLaunchedCallback
from .state_machine import StateChangedCallback

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps task identifiers to their single active session.

    The registry is an explicitly owned store: create one at process start,
    pass it to whatever manages session lifecycles, and call
    terminate_all() on shutdown.
    """

    def __init__(
        self,
        *,
        monitor: MonitorSettings | None = None,
        launch: LaunchSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            monitor: Settings applied to every session created here.
            launch: Launch settings applied to every session created here.
            clock: Monotonic time source handed to sessions.
        """
        self.monitor = monitor or MonitorSettings()
        self.launch = launch or LaunchSettings()
        self.clock = clock
        self._sessions: dict[str, AgentSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def task_ids(self) -> list[str]:
        """IDs of tasks with a live session."""
        return list(self._sessions)

    def get(self, task_id: str) -> AgentSession | None:
        """Get the session for a task, if one exists."""
        return self._sessions.get(task_id)

    async def get_or_create(
        self,
        task_id: str,
        params: SessionParams,
        terminal: TerminalBuffer,
        *,
        on_state_changed: StateChangedCallback | None = None,
        on_tool_launched_once: ToolLaunchedCallback | None = None,
    ) -> AgentSession:
        """Return the task's session, creating and starting it if needed.

        When a session already exists, the other arguments are ignored.

        Args:
            task_id: The owning task.
            params: Parameters for a newly created session.
            terminal: Terminal for a newly created session.
            on_state_changed: Transition callback for a new session.
            on_tool_launched_once: First-launch callback for a new session.

        Returns:
            The live session for ``task_id``.

        Raises:
            ValueError: If ``task_id`` cannot name a status file.
        """
        async with self._lock:
            existing = self._sessions.get(task_id)
            if existing is not None:
                return existing

            session = AgentSession(
                task_id,
                params,
                terminal,
                monitor=self.monitor,
                launch=self.launch,
                on_state_changed=on_state_changed,
                on_tool_launched_once=on_tool_launched_once,
                clock=self.clock,
            )
            await session.start()
            self._sessions[task_id] = session
            logger.debug("Registered session for task %s", task_id)
            return session

    async def terminate(self, task_id: str) -> None:
        """Stop and remove the task's session. No-op if there is none."""
        async with self._lock:
            session = self._sessions.pop(task_id, None)
            if session is None:
                return
            await session.terminate()
            logger.debug("Removed session for task %s", task_id)

    async def terminate_all(self) -> None:
        """Terminate every session, e.g. at process shutdown."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            for session in sessions:
                await session.terminate()
        if sessions:
            logger.info("Terminated %d sessions", len(sessions))

    def latest_response(self, task_id: str) -> str:
        """Latest response snippet for a task, or an empty string."""
        session = self._sessions.get(task_id)
        return session.latest_response if session else ""
