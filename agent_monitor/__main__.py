"""Entry point for python -m agent_monitor.

Usage:
    # Install status hooks into a project's Claude Code settings
    python -m agent_monitor install-hooks ~/src/myproj
    python -m agent_monitor uninstall-hooks ~/src/myproj

    # Decode a status-signal file
    python -m agent_monitor status /tmp/agent-monitor/TASK.status

    # Extract the latest response from a terminal dump (or stdin)
    python -m agent_monitor extract buffer.txt

    # Show the tail of the log file
    python -m agent_monitor logs --lines 50

    # Monitor an iTerm2 session and print state transitions
    python -m agent_monitor watch --task-id T1 --iterm-session "$ITERM_SESSION_ID" --cwd .
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_monitor.models import AppConfig, AppSettings


def _setup_logging(args: argparse.Namespace, settings: AppSettings) -> None:
    """Configure logging from command-line arguments and app settings."""
    from agent_monitor.logging_config import enable_debug_mode, setup_logging

    if args.debug:
        enable_debug_mode()
    else:
        setup_logging(
            level=args.log_level or settings.log_level,
            log_to_console=False,
            log_to_file=settings.log_to_file and not args.no_log_file,
        )


def _print_json(data: Any) -> None:
    """Print data as JSON to stdout."""
    print(json.dumps(data, indent=2, default=str))


def _load_config(args: argparse.Namespace) -> AppConfig | None:
    """Load merged configuration, printing errors instead of raising."""
    from agent_monitor.config import load_merged_config
    from agent_monitor.exceptions import ConfigError

    try:
        return load_merged_config(args.project)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


# =============================================================================
# CLI Command Handlers
# =============================================================================


async def cmd_install_hooks(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle install-hooks command."""
    from agent_monitor.exceptions import HooksInstallError
    from agent_monitor.hooks import install_hooks

    try:
        settings_path = install_hooks(args.path, config.monitor.status_env_var)
    except HooksInstallError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Installed status hooks in {settings_path}")
    return 0


async def cmd_uninstall_hooks(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle uninstall-hooks command."""
    from agent_monitor.exceptions import HooksInstallError
    from agent_monitor.hooks import uninstall_hooks

    try:
        removed = uninstall_hooks(args.path, config.monitor.status_env_var)
    except HooksInstallError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if removed:
        print(f"Removed status hooks from {args.path}")
    else:
        print("No tool settings found.")
    return 0


async def cmd_status(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle status command."""
    from agent_monitor.status_file import StatusSignalFile

    status_file = StatusSignalFile(args.file)
    reading = status_file.read()
    if reading is None:
        print(f"Error: cannot read {status_file.path}", file=sys.stderr)
        return 1

    if args.json:
        _print_json(
            {
                "path": str(status_file.path),
                "state": reading.state.value,
                "exists": reading.mtime is not None,
            }
        )
    else:
        print(reading.state.value)
    return 0


async def cmd_extract(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle extract command."""
    from agent_monitor.response_extractor import ResponseExtractor

    try:
        if args.file in (None, "-"):
            data = sys.stdin.buffer.read()
        else:
            data = Path(args.file).read_bytes()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        print("Error: buffer is not valid UTF-8", file=sys.stderr)
        return 1

    extractor = ResponseExtractor(
        max_lines=(
            args.lines if args.lines is not None else config.monitor.scrollback_lines
        ),
        snippet_lines=config.monitor.snippet_lines,
    )
    snippet, source = extractor.extract_with_source(extractor.clean_lines(text))

    if args.json:
        _print_json({"snippet": snippet, "source": source})
    elif snippet:
        print(snippet)
    return 0


async def cmd_logs(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle logs command."""
    from agent_monitor.logging_config import get_recent_logs

    lines = get_recent_logs(args.lines)
    if not lines:
        print("No log entries.", file=sys.stderr)
        return 0
    print("".join(lines), end="")
    return 0


async def cmd_watch(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle watch command.

    Runs until SIGINT/SIGTERM, printing one line per state transition.
    """
    from agent_monitor.exceptions import TerminalError
    from agent_monitor.iterm import ItermController
    from agent_monitor.models import SessionParams, SessionState
    from agent_monitor.registry import SessionRegistry
    from agent_monitor.status_file import status_path_for

    try:
        status_path_for(config.monitor.status_dir, args.task_id)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config.launch.send_exit_on_terminate = args.exit_on_stop

    controller = ItermController()
    try:
        await controller.connect()
        terminal = controller.get_terminal(
            args.iterm_session, config.monitor.scrollback_lines
        )
    except TerminalError as e:
        print(f"Error: {e}", file=sys.stderr)
        await controller.disconnect()
        return 1

    def on_state_changed(state: SessionState, snippet: str) -> None:
        if args.json:
            print(
                json.dumps(
                    {
                        "time": datetime.now().isoformat(timespec="seconds"),
                        "task_id": args.task_id,
                        "state": state.value,
                        "snippet": snippet,
                    }
                ),
                flush=True,
            )
        else:
            line = f"[{datetime.now():%H:%M:%S}] {state.value.upper()}"
            if snippet and state.needs_snippet:
                line += "\n  " + snippet.replace("\n", "\n  ")
            print(line, flush=True)

    def on_tool_launched_once() -> None:
        print(f"Tool launched for {args.task_id}", file=sys.stderr, flush=True)

    params = SessionParams(
        working_directory=str(Path(args.cwd).resolve()),
        initial_prompt=args.prompt or "",
        has_launched_tool=args.launched,
        auto_launch=not args.no_launch,
        skip_permissions=not args.no_skip_permissions,
    )

    registry = SessionRegistry(monitor=config.monitor, launch=config.launch)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        session = await registry.get_or_create(
            args.task_id,
            params,
            terminal,
            on_state_changed=on_state_changed,
            on_tool_launched_once=on_tool_launched_once,
        )
        print(f"Watching {args.task_id} (status file {session.status_path})", file=sys.stderr)
        await stop.wait()
    finally:
        await registry.terminate_all()
        await controller.disconnect()

    return 0


# =============================================================================
# Argument Parser
# =============================================================================


def _create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="agent-monitor",
        description="Track the lifecycle of AI coding assistants running in terminals",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging to console")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: from config, INFO)",
    )
    parser.add_argument("--no-log-file", action="store_true", help="Disable file logging")
    parser.add_argument(
        "--project", default=None, help="Project directory whose config overrides apply"
    )

    subparsers = parser.add_subparsers(dest="command")

    install_parser = subparsers.add_parser(
        "install-hooks", help="Install status hooks into a project's tool settings"
    )
    install_parser.add_argument("path", help="Project directory")

    uninstall_parser = subparsers.add_parser(
        "uninstall-hooks", help="Remove status hooks from a project's tool settings"
    )
    uninstall_parser.add_argument("path", help="Project directory")

    status_parser = subparsers.add_parser("status", help="Decode a status-signal file")
    status_parser.add_argument("file", help="Status file path")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    extract_parser = subparsers.add_parser(
        "extract", help="Extract the latest response from a terminal buffer dump"
    )
    extract_parser.add_argument("file", nargs="?", default=None, help="Dump file (default: stdin)")
    extract_parser.add_argument("--lines", type=int, default=None, help="Trailing lines to scan")
    extract_parser.add_argument("--json", action="store_true", help="Output as JSON")

    logs_parser = subparsers.add_parser("logs", help="Show recent log entries")
    logs_parser.add_argument("--lines", type=int, default=50, help="Number of lines to show")

    watch_parser = subparsers.add_parser("watch", help="Monitor an iTerm2 session")
    watch_parser.add_argument("--task-id", required=True, help="Task identifier")
    watch_parser.add_argument("--iterm-session", required=True, help="iTerm2 session id")
    watch_parser.add_argument("--cwd", default=".", help="Working directory for the tool")
    watch_parser.add_argument("--prompt", default=None, help="Initial prompt for a first launch")
    watch_parser.add_argument(
        "--no-launch", action="store_true", help="Prepare the shell but do not start the tool"
    )
    watch_parser.add_argument(
        "--launched",
        action="store_true",
        help="Tool was launched before for this task (resume instead of start)",
    )
    watch_parser.add_argument(
        "--no-skip-permissions", action="store_true", help="Keep the tool's permission prompts"
    )
    watch_parser.add_argument(
        "--exit-on-stop", action="store_true", help="Type 'exit' into the shell when stopping"
    )
    watch_parser.add_argument("--json", action="store_true", help="Print transitions as JSON lines")

    return parser


COMMANDS = {
    "install-hooks": cmd_install_hooks,
    "uninstall-hooks": cmd_uninstall_hooks,
    "status": cmd_status,
    "extract": cmd_extract,
    "logs": cmd_logs,
    "watch": cmd_watch,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    config = _load_config(args)
    if config is None:
        return 1

    _setup_logging(args, config.settings)
    return asyncio.run(COMMANDS[args.command](args, config))


if __name__ == "__main__":
    sys.exit(main())
