"""Agent Monitor.

Tracks the lifecycle of AI coding assistants running inside terminal
sessions. Tool hooks write a one-word status file; the monitor watches it,
falls back to an idle timeout when the tool goes quiet, and extracts the
latest response from the terminal scrollback when input is needed or a turn
completes.

Public API Usage:
    from agent_monitor import SessionRegistry, SessionParams

    async def main(terminal):
        registry = SessionRegistry()
        session = await registry.get_or_create(
            "task-1",
            SessionParams(working_directory="/src/proj", initial_prompt="Fix the tests"),
            terminal,
            on_state_changed=lambda state, snippet: print(state, snippet),
        )
        ...
        await registry.terminate_all()
"""

__version__ = "0.1.0"

# =============================================================================
# Sessions
# =============================================================================

from agent_monitor.registry import SessionRegistry
from agent_monitor.session import AgentSession, escape_double_quoted
from agent_monitor.state_machine import SessionStateMachine

# =============================================================================
# Core Data Models
# =============================================================================

from agent_monitor.models import (
    AppConfig,
    AppSettings,
    LaunchSettings,
    MonitorSettings,
    SessionParams,
    SessionState,
)

# =============================================================================
# Detection Building Blocks
# =============================================================================

from agent_monitor.idle_detector import IdleTimeoutDetector
from agent_monitor.ports import TerminalBuffer
from agent_monitor.response_extractor import ResponseExtractor
from agent_monitor.status_file import StatusReading, StatusSignalFile, decode_status
from agent_monitor.status_watcher import StatusFileWatcher

# =============================================================================
# Configuration and Hooks
# =============================================================================

from agent_monitor.config import (
    load_global_config,
    load_merged_config,
    load_project_config,
    save_global_config,
    save_project_config,
)
from agent_monitor.hooks import install_hooks, uninstall_hooks

# =============================================================================
# Exceptions
# =============================================================================

from agent_monitor.exceptions import (
    AgentMonitorError,
    ConfigError,
    HooksInstallError,
    TerminalError,
)

__all__ = [
    "__version__",
    # Sessions
    "AgentSession",
    "SessionRegistry",
    "SessionStateMachine",
    "escape_double_quoted",
    # Models
    "AppConfig",
    "AppSettings",
    "LaunchSettings",
    "MonitorSettings",
    "SessionParams",
    "SessionState",
    # Detection
    "IdleTimeoutDetector",
    "ResponseExtractor",
    "StatusFileWatcher",
    "StatusReading",
    "StatusSignalFile",
    "TerminalBuffer",
    "decode_status",
    # Configuration and hooks
    "install_hooks",
    "uninstall_hooks",
    "load_global_config",
    "load_merged_config",
    "load_project_config",
    "save_global_config",
    "save_project_config",
    # Exceptions
    "AgentMonitorError",
    "ConfigError",
    "HooksInstallError",
    "TerminalError",
]
