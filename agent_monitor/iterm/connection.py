"""iTerm2 connection management.

This module provides connection lifecycle management for iTerm2's Python API
and resolves session ids into terminal adapters.
"""

from __future__ import annotations

import logging

import iterm2

from agent_monitor.exceptions import (
    TerminalConnectionError,
    TerminalNotConnectedError,
    TerminalSessionNotFoundError,
)
from agent_monitor.iterm.terminal import ItermTerminal

logger = logging.getLogger(__name__)


class ItermController:
    """Manages the iTerm2 connection."""

    def __init__(self) -> None:
        self.connection: iterm2.Connection | None = None
        self.app: iterm2.App | None = None
        self._connected: bool = False

    async def connect(self) -> bool:
        """Establish connection to iTerm2.

        Returns:
            True if connection established successfully.

        Raises:
            TerminalConnectionError: If connection fails.
        """
        try:
            self.connection = await iterm2.Connection.async_create()
            self.app = await iterm2.async_get_app(self.connection)
            self._connected = True
            logger.info("Connected to iTerm2")
            return True
        except ConnectionRefusedError as e:
            self._connected = False
            raise TerminalConnectionError(
                "Connection refused. Is iTerm2 running with Python API enabled?",
                cause=e,
            ) from e
        except Exception as e:
            self._connected = False
            raise TerminalConnectionError(
                f"Failed to connect to iTerm2: {e}", cause=e
            ) from e

    async def disconnect(self) -> None:
        """Cleanly disconnect from iTerm2."""
        if self.connection:
            # Connection auto-closes when garbage collected
            self.connection = None
            self.app = None
            self._connected = False
            logger.info("Disconnected from iTerm2")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to iTerm2."""
        return self._connected and self.connection is not None

    def require_connection(self, operation: str = "unknown") -> None:
        """Raise if not connected.

        Raises:
            TerminalNotConnectedError: If not connected to iTerm2.
        """
        if not self.is_connected:
            raise TerminalNotConnectedError(operation)

    def get_terminal(self, session_id: str, scrollback_lines: int = 100) -> ItermTerminal:
        """Wrap an iTerm2 session as a terminal buffer.

        Args:
            session_id: iTerm2 session id (e.g. from $ITERM_SESSION_ID).
            scrollback_lines: How many trailing lines read_buffer() returns.

        Raises:
            TerminalNotConnectedError: If not connected.
            TerminalSessionNotFoundError: If the session does not exist.
        """
        self.require_connection("get_terminal")
        assert self.app is not None

        # $ITERM_SESSION_ID has the form "w0t0p0:<uuid>"
        session_id = session_id.split(":", 1)[-1]
        session = self.app.get_session_by_id(session_id)
        if session is None:
            raise TerminalSessionNotFoundError(session_id)
        return ItermTerminal(session, scrollback_lines=scrollback_lines)
