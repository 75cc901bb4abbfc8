"""Testing utilities for Agent Monitor.

This package provides a mock terminal for testing sessions without a
terminal emulator.
"""

from agent_monitor.testing.mock_terminal import MockTerminal

__all__ = ["MockTerminal"]
