"""iTerm2 integration package.

Adapts iTerm2 sessions to the TerminalBuffer protocol so an AI tool running
in an existing iTerm2 tab can be monitored.
"""

from agent_monitor.iterm.connection import ItermController
from agent_monitor.iterm.terminal import ItermTerminal

__all__ = ["ItermController", "ItermTerminal"]
