"""Core dataclasses for sessions, launch parameters and configuration.

All configuration models are designed for JSON serialization using dacite.
"""

from __future__ import annotations

import tempfile
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

import dacite


# =============================================================================
# Session Models
# =============================================================================


class SessionState(Enum):
    """Lifecycle state of the AI tool running in a session.

    Values double as the tokens written to the status-signal file.
    """

    IDLE = "idle"
    RUNNING = "running"  # Tool hooks report activity
    WAITING = "waiting"  # Needs user input (permission prompt, question)
    COMPLETED = "completion"  # Tool finished its turn

    @property
    def needs_snippet(self) -> bool:
        """Whether entering this state refreshes the latest response."""
        return self in (SessionState.WAITING, SessionState.COMPLETED)


@dataclass
class SessionParams:
    """Parameters a caller supplies when a session is first created."""

    working_directory: str
    initial_prompt: str = ""  # Handed to the tool on its first launch
    has_launched_tool: bool = False  # Owned by the caller, survives recreation
    auto_launch: bool = True
    skip_permissions: bool = True


# =============================================================================
# Configuration Models
# =============================================================================


DEFAULT_STATUS_DIR = str(Path(tempfile.gettempdir()) / "agent-monitor")
DEFAULT_STATUS_ENV_VAR = "AGENT_MONITOR_STATUS_FILE"


@dataclass
class MonitorSettings:
    """Tuning for status watching, idle detection and extraction."""

    idle_timeout_seconds: float = 5.0
    tick_interval_seconds: float = 1.0
    scrollback_lines: int = 100
    snippet_lines: int = 2
    status_dir: str = DEFAULT_STATUS_DIR
    status_env_var: str = DEFAULT_STATUS_ENV_VAR
    watch_debounce_ms: int = 50
    watch_retry_seconds: float = 1.0
    force_polling: bool = False


@dataclass
class LaunchSettings:
    """How the AI tool is started inside the shell."""

    tool_command: str = "claude"
    continue_flag: str = "--continue"
    skip_permissions_flag: str = "--dangerously-skip-permissions"
    shell_ready_delay_ms: int = 500
    launch_delay_ms: int = 300
    export_status_variable: bool = True
    send_exit_on_terminate: bool = True
    term: str = "xterm-256color"
    colorterm: str = "truecolor"
    locale: str = "en_US.UTF-8"


@dataclass
class AppSettings:
    """Global application settings."""

    log_level: str = "INFO"
    log_to_file: bool = True


@dataclass
class AppConfig:
    """Complete application configuration."""

    settings: AppSettings = field(default_factory=AppSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    launch: LaunchSettings = field(default_factory=LaunchSettings)


# =============================================================================
# Serialization Helpers
# =============================================================================


def _convert_enums(obj: object) -> object:
    """Recursively convert Enum values to their string values."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _convert_enums(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_enums(item) for item in obj]
    return obj


def model_to_dict(obj: object) -> dict:
    """Convert a dataclass model to a dictionary for JSON serialization."""
    data = asdict(obj)  # type: ignore[arg-type]
    return _convert_enums(data)  # type: ignore[return-value]


def model_from_dict(data_class: type, data: dict) -> object:
    """Load a dataclass model from a dictionary."""
    return dacite.from_dict(
        data_class=data_class,
        data=data,
        config=dacite.Config(cast=[Enum]),
    )
