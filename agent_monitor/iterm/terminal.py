"""iTerm2 adapter implementing the TerminalBuffer protocol."""

from __future__ import annotations

import iterm2


class ItermTerminal:
    """Reads scrollback from and types into one iTerm2 session."""

    def __init__(self, session: iterm2.Session, scrollback_lines: int = 100) -> None:
        self._session = session
        self.scrollback_lines = scrollback_lines

    @property
    def session_id(self) -> str:
        return self._session.session_id

    async def read_buffer(self) -> str:
        """Return the last ``scrollback_lines`` lines of the session.

        Soft-wrapped lines are rejoined so each logical line is one line of
        the result.
        """
        info = await self._session.async_get_line_info()
        available = info.scrollback_buffer_height + info.mutable_area_height
        count = min(self.scrollback_lines, available)
        if count <= 0:
            return ""

        first_line = info.overflow + available - count
        contents = await self._session.async_get_contents(first_line, count)

        parts: list[str] = []
        for line in contents:
            parts.append(line.string)
            if line.hard_eol:
                parts.append("\n")
        return "".join(parts)

    async def send_text(self, text: str) -> None:
        await self._session.async_send_text(text)
