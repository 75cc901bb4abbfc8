"""Custom exception hierarchy for Agent Monitor.

The monitoring core is fail-soft: status-file, watcher and extraction
failures are logged and recorded, never raised. The exceptions below are
raised only by the outer surfaces (configuration, hook installation and the
terminal adapters), where the caller can act on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class AgentMonitorError(Exception):
    """Base exception for all Agent Monitor errors.

    Attributes:
        message: Human-readable error description.
        context: Additional context for debugging.
        timestamp: When the error occurred.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now()
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(AgentMonitorError):
    """Base class for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Raised when configuration file fails to load."""

    def __init__(
        self,
        message: str = "Failed to load configuration",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(
        self,
        message: str = "Configuration validation failed",
        *,
        field: str | None = None,
        value: Any = None,
        expected: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = str(value)[:100]
        if expected:
            ctx["expected"] = expected
        super().__init__(message, context=ctx, cause=cause)


class ConfigSaveError(ConfigError):
    """Raised when configuration fails to save."""

    def __init__(
        self,
        message: str = "Failed to save configuration",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Terminal Errors
# =============================================================================


class TerminalError(AgentMonitorError):
    """Base class for terminal collaborator errors."""

    pass


class TerminalConnectionError(TerminalError):
    """Raised when the terminal emulator cannot be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to terminal",
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context=context, cause=cause)


class TerminalNotConnectedError(TerminalError):
    """Raised when an operation requires a connection but none exists."""

    def __init__(self, operation: str = "unknown") -> None:
        super().__init__(
            "Not connected to terminal",
            context={"attempted_operation": operation},
        )


class TerminalSessionNotFoundError(TerminalError):
    """Raised when a terminal session id cannot be resolved."""

    def __init__(
        self,
        session_id: str,
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        ctx["session_id"] = session_id
        super().__init__(
            f"Terminal session not found: {session_id}", context=ctx, cause=cause
        )


# =============================================================================
# Status Signal Errors
# =============================================================================


class StatusFileError(AgentMonitorError):
    """Raised when a status-signal file operation fails.

    Only used internally to label recorded failures; the core never lets it
    escape to callers.
    """

    def __init__(
        self,
        message: str = "Status file operation failed",
        *,
        file_path: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        if operation:
            ctx["operation"] = operation
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Hook Installation Errors
# =============================================================================


class HooksInstallError(AgentMonitorError):
    """Raised when tool hook settings cannot be read or written."""

    def __init__(
        self,
        message: str = "Failed to install hooks",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Error Registry for Categorization
# =============================================================================


@dataclass
class ErrorStats:
    """Track error statistics for monitoring."""

    total_count: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    recent_errors: list[tuple[datetime, str, str]] = field(default_factory=list)
    max_recent: int = 100

    def record(self, error: Exception) -> None:
        """Record an error occurrence."""
        self.total_count += 1
        type_name = type(error).__name__
        self.by_type[type_name] = self.by_type.get(type_name, 0) + 1

        self.recent_errors.append((datetime.now(), type_name, str(error)[:200]))
        if len(self.recent_errors) > self.max_recent:
            self.recent_errors.pop(0)

    def reset(self) -> None:
        """Forget all recorded errors."""
        self.total_count = 0
        self.by_type.clear()
        self.recent_errors.clear()


# Global error stats tracker
error_stats = ErrorStats()


def record_error(error: Exception) -> None:
    """Record an error to global stats."""
    error_stats.record(error)
