"""Hook installation for Claude Code integration.

Installs hooks into a project's ``.claude/settings.local.json`` that write
the session's status-signal file:

- PreToolUse (any tool)       -> running
- Notification (permissions)  -> waiting
- Stop                        -> completion

Each hook is a no-op unless the status-file environment variable is set, so
the tool behaves normally when started outside a monitored session.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .exceptions import HooksInstallError, record_error
from .models import DEFAULT_STATUS_ENV_VAR, SessionState

logger = logging.getLogger(__name__)

SETTINGS_DIR = ".claude"
SETTINGS_FILENAME = "settings.local.json"

# (hook event, matcher, token written)
HOOK_EVENTS = (
    ("PreToolUse", "*", SessionState.RUNNING),
    ("Notification", "permission_prompt", SessionState.WAITING),
    ("Stop", "*", SessionState.COMPLETED),
)


def get_settings_path(project_path: str | Path) -> Path:
    """Return the path of a project's local tool settings."""
    return Path(project_path) / SETTINGS_DIR / SETTINGS_FILENAME


def status_hook_command(state: SessionState, env_var: str = DEFAULT_STATUS_ENV_VAR) -> str:
    """Shell command that writes ``state`` to the status file named by ``env_var``."""
    return f'[ -n "${env_var}" ] && echo {state.value} > "${env_var}"'


def build_hook_config(env_var: str = DEFAULT_STATUS_ENV_VAR) -> dict[str, list[dict[str, Any]]]:
    """Build the hooks block for all status events."""
    return {
        event: [
            {
                "matcher": matcher,
                "hooks": [{"type": "command", "command": status_hook_command(state, env_var)}],
            }
        ]
        for event, matcher, state in HOOK_EVENTS
    }


def _is_status_entry(entry: Any, env_var: str) -> bool:
    """Check whether a hook entry was installed for ``env_var``."""
    if not isinstance(entry, dict):
        return False
    hooks = entry.get("hooks")
    if not isinstance(hooks, list):
        return False
    return any(
        isinstance(hook, dict) and f"${env_var}" in str(hook.get("command", ""))
        for hook in hooks
    )


def merge_hooks(settings: dict[str, Any], env_var: str = DEFAULT_STATUS_ENV_VAR) -> dict[str, Any]:
    """Merge status hooks into a settings dict.

    Earlier status hooks for the same variable are replaced; all other
    settings and hooks are preserved.
    """
    result = dict(settings)
    existing_hooks = result.get("hooks")
    hooks: dict[str, Any] = dict(existing_hooks) if isinstance(existing_hooks, dict) else {}

    for event, entries in build_hook_config(env_var).items():
        current = hooks.get(event)
        kept = []
        if isinstance(current, list):
            kept = [e for e in current if not _is_status_entry(e, env_var)]
        hooks[event] = kept + entries

    result["hooks"] = hooks
    return result


def remove_hooks(settings: dict[str, Any], env_var: str = DEFAULT_STATUS_ENV_VAR) -> dict[str, Any]:
    """Remove status hooks for ``env_var`` from a settings dict.

    Events left without entries, and an empty hooks block, are dropped.
    """
    result = dict(settings)
    existing_hooks = result.get("hooks")
    if not isinstance(existing_hooks, dict):
        return result

    hooks: dict[str, Any] = {}
    for event, entries in existing_hooks.items():
        if isinstance(entries, list):
            entries = [e for e in entries if not _is_status_entry(e, env_var)]
            if not entries:
                continue
        hooks[event] = entries

    if hooks:
        result["hooks"] = hooks
    else:
        result.pop("hooks", None)
    return result


def _load_settings(settings_path: Path) -> dict[str, Any]:
    if not settings_path.exists():
        return {}

    try:
        content = settings_path.read_text(encoding="utf-8")
    except OSError as e:
        record_error(e)
        raise HooksInstallError(
            "Failed to read tool settings", file_path=str(settings_path), cause=e
        ) from e

    if not content.strip():
        return {}

    try:
        settings = json.loads(content)
    except json.JSONDecodeError as e:
        record_error(e)
        raise HooksInstallError(
            f"Invalid JSON in tool settings at line {e.lineno}",
            file_path=str(settings_path),
            context={"line": e.lineno, "column": e.colno},
            cause=e,
        ) from e

    if not isinstance(settings, dict):
        raise HooksInstallError(
            "Tool settings must be a JSON object", file_path=str(settings_path)
        )
    return settings


def _save_settings(settings_path: Path, settings: dict[str, Any]) -> None:
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        settings_path.write_text(
            json.dumps(settings, indent=2, sort_keys=True) + "\n", encoding="utf-8"
        )
    except OSError as e:
        record_error(e)
        raise HooksInstallError(
            "Failed to write tool settings", file_path=str(settings_path), cause=e
        ) from e


def install_hooks(project_path: str | Path, env_var: str = DEFAULT_STATUS_ENV_VAR) -> Path:
    """Install status hooks into a project's local tool settings.

    Args:
        project_path: Project root directory.
        env_var: Environment variable naming the status file.

    Returns:
        Path of the settings file that was written.

    Raises:
        HooksInstallError: If the settings cannot be read, parsed or written.
            Existing settings are never overwritten when they fail to parse.
    """
    settings_path = get_settings_path(project_path)
    settings = merge_hooks(_load_settings(settings_path), env_var)
    _save_settings(settings_path, settings)
    logger.info("Installed status hooks in %s", settings_path)
    return settings_path


def uninstall_hooks(project_path: str | Path, env_var: str = DEFAULT_STATUS_ENV_VAR) -> bool:
    """Remove status hooks from a project's local tool settings.

    Returns:
        True if the settings file existed and was rewritten.

    Raises:
        HooksInstallError: If the settings cannot be read, parsed or written.
    """
    settings_path = get_settings_path(project_path)
    if not settings_path.exists():
        return False

    _save_settings(settings_path, remove_hooks(_load_settings(settings_path), env_var))
    logger.info("Removed status hooks from %s", settings_path)
    return True
