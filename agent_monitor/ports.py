"""Terminal collaborator abstraction.

The monitor never renders or owns a terminal. It needs exactly two things
from whatever emulator hosts the shell: a way to read the scrollback and a
way to type into it. Adapters (the iterm/ package, the mock in testing/)
implement this protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TerminalBuffer(Protocol):
    """Read/write access to a terminal session."""

    async def read_buffer(self) -> str | bytes:
        """Return the current scrollback, oldest line first.

        Raw escape sequences may be present; callers clean them.
        """
        ...

    async def send_text(self, text: str) -> None:
        """Inject text into the terminal's input as if typed."""
        ...
