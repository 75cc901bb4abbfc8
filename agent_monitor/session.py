"""A monitored AI tool session bound to one task and one terminal.

Each session is driven by a single asyncio task (the actor) that consumes a
queue of events. The status-file watcher, the idle ticker and command sends
only publish onto that queue, so state is never mutated concurrently and
callbacks fire in the order signals were observed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Union

from .exceptions import TerminalError, record_error
from .logging_config import log_exception
from .idle_detector import IdleTimeoutDetector
from .models import LaunchSettings, MonitorSettings, SessionParams, SessionState
from .ports import TerminalBuffer
from .response_extractor import ResponseExtractor
from .state_machine import SessionStateMachine, StateChangedCallback
from .status_file import StatusReading, StatusSignalFile, status_path_for
from .status_watcher import StatusFileWatcher

logger = logging.getLogger(__name__)

ToolLaunchedCallback = Callable[[], None]


# =============================================================================
# Actor Events
# =============================================================================


@dataclass(frozen=True)
class StatusObserved:
    """The watcher decoded the status file."""

    reading: StatusReading


@dataclass(frozen=True)
class TimerTick:
    """Periodic re-read and idle-timeout check."""

    count: int


@dataclass(frozen=True)
class SendText:
    """Write text into the terminal; resolves ``done`` with success."""

    text: str
    done: asyncio.Future


@dataclass(frozen=True)
class ForceState:
    """Manual state override; resolves ``done`` with whether it changed."""

    state: SessionState
    done: asyncio.Future


SessionEvent = Union[StatusObserved, TimerTick, SendText, ForceState]


def escape_double_quoted(text: str) -> str:
    """Escape text for use inside a double-quoted shell word."""
    for char in ("\\", '"', "$", "`"):
        text = text.replace(char, "\\" + char)
    return text


# =============================================================================
# Session
# =============================================================================


class AgentSession:
    """Tracks the lifecycle of the AI tool running in one terminal.

    Handles:
    - Creating and removing the session's status-signal file
    - Watching the file and applying readings to the state machine
    - Forcing IDLE after a quiet RUNNING period
    - Capturing the latest response on WAITING/COMPLETED
    - Preparing the shell and launching the tool
    """

    def __init__(
        self,
        task_id: str,
        params: SessionParams,
        terminal: TerminalBuffer,
        *,
        monitor: MonitorSettings | None = None,
        launch: LaunchSettings | None = None,
        on_state_changed: StateChangedCallback | None = None,
        on_tool_launched_once: ToolLaunchedCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the session. Nothing runs until start().

        Args:
            task_id: Identifier of the owning task; also names the status file.
            params: Working directory, first prompt and launch flags.
            terminal: The terminal the tool runs in.
            monitor: Watch, timeout and extraction settings.
            launch: Tool launch settings.
            on_state_changed: Called with (state, snippet) per transition.
            on_tool_launched_once: Called after the first-ever tool launch.
            clock: Monotonic time source.
        """
        self.task_id = task_id
        self.params = params
        self.terminal = terminal
        self.monitor = monitor or MonitorSettings()
        self.launch = launch or LaunchSettings()
        self.on_tool_launched_once = on_tool_launched_once

        self.status_file = StatusSignalFile(status_path_for(self.monitor.status_dir, task_id))
        self.extractor = ResponseExtractor(
            max_lines=self.monitor.scrollback_lines,
            snippet_lines=self.monitor.snippet_lines,
        )
        self.detector = IdleTimeoutDetector(
            timeout_seconds=self.monitor.idle_timeout_seconds,
            interval_seconds=self.monitor.tick_interval_seconds,
        )
        self.state_machine = SessionStateMachine(
            on_state_changed,
            self._capture_latest_response,
            clock=clock,
        )
        self.watcher = StatusFileWatcher(
            self.status_file,
            self._post_reading,
            debounce_ms=self.monitor.watch_debounce_ms,
            retry_seconds=self.monitor.watch_retry_seconds,
            force_polling=self.monitor.force_polling,
        )

        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._has_launched_tool = params.has_launched_tool
        self._tool_launched_here = False
        self._started = False
        self._terminated = False
        self._actor_task: asyncio.Task | None = None
        self._ticker_task: asyncio.Task | None = None
        self._launch_task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"AgentSession({self.task_id!r}, state={self.state.value})"

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.state_machine.state

    @property
    def latest_response(self) -> str:
        return self.state_machine.latest_snippet

    @property
    def last_running_at(self) -> float | None:
        return self.state_machine.last_running_at

    @property
    def status_path(self) -> Path:
        return self.status_file.path

    @property
    def has_launched_tool(self) -> bool:
        return self._has_launched_tool

    @property
    def is_running(self) -> bool:
        return self._started and not self._terminated

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Create the status file and start the actor, watcher and ticker.

        If the status file cannot be created the session still runs; it is
        then classified by the idle timeout alone.
        """
        if self._started:
            return
        self._started = True

        if await asyncio.to_thread(self.status_file.create):
            await self._note_own_write()

        self._actor_task = asyncio.create_task(
            self._run_actor(), name=f"agent-session-{self.task_id}"
        )
        await self.watcher.start()
        self._ticker_task = asyncio.create_task(self._run_ticker())
        self._launch_task = asyncio.create_task(self._launch_sequence())

        logger.info("Session %s started (status file %s)", self.task_id, self.status_path)

    async def terminate(self, send_exit: bool | None = None) -> None:
        """Stop all background work and clean up.

        When this returns, the watcher, ticker and actor have stopped and no
        further callbacks will fire. Deleting the status file and sending
        ``exit`` are best effort. Safe to call more than once.

        Args:
            send_exit: Type ``exit`` into the shell. Defaults to the
                launch settings.
        """
        if self._terminated:
            return
        self._terminated = True

        await _cancel_task(self._launch_task)
        await _cancel_task(self._ticker_task)
        await self.watcher.stop()
        await _cancel_task(self._actor_task)
        self._launch_task = self._ticker_task = self._actor_task = None

        while not self._queue.empty():
            _resolve(self._queue.get_nowait(), False)

        await asyncio.to_thread(self.status_file.remove)

        if send_exit is None:
            send_exit = self.launch.send_exit_on_terminate
        if send_exit and self._started:
            await self._write_terminal("exit\r")

        logger.info("Session %s terminated", self.task_id)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def send_text(self, text: str) -> bool:
        """Write raw text to the terminal, serialized with state handling.

        Returns:
            True if the terminal accepted the text.
        """
        if not self.is_running:
            logger.debug("Session %s not running, dropping text", self.task_id)
            return False

        done = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(SendText(text, done))
        return await done

    async def send_command(self, command: str) -> bool:
        """Type a command followed by a carriage return. No escaping is applied."""
        return await self.send_text(command + "\r")

    async def set_state(self, state: SessionState) -> bool:
        """Override the state manually and mirror it to the status file.

        Returns:
            True if the state changed.
        """
        if not self.is_running:
            return False

        done = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(ForceState(state, done))
        return await done

    def setup_command(self) -> str:
        """Command that prepares the shell before the tool starts."""
        parts = []
        if self.launch.export_status_variable:
            parts.append(
                f"export {self.monitor.status_env_var}={shlex.quote(str(self.status_path))}"
            )
        parts.append(f"cd {shlex.quote(self.params.working_directory)} && clear")
        return "; ".join(parts)

    def launch_command(self) -> str:
        """Command that starts the tool.

        The first launch passes the initial prompt; later launches resume
        the previous conversation.
        """
        parts = [self.launch.tool_command]
        if self._has_launched_tool:
            parts.append(self.launch.continue_flag)
        if self.params.skip_permissions:
            parts.append(self.launch.skip_permissions_flag)
        if not self._has_launched_tool and self.params.initial_prompt:
            parts.append(f'"{escape_double_quoted(self.params.initial_prompt)}"')
        return " ".join(parts)

    async def launch_tool(self) -> bool:
        """Start the tool, at most once per session object.

        Returns:
            True if the launch command was sent.
        """
        if self._tool_launched_here:
            return False
        self._tool_launched_here = True

        first_launch = not self._has_launched_tool
        if not await self.send_command(self.launch_command()):
            self._tool_launched_here = False
            return False

        if first_launch:
            self._has_launched_tool = True
            if self.on_tool_launched_once:
                try:
                    self.on_tool_launched_once()
                except Exception as e:
                    log_exception(logger, e, "Error in tool launched callback")
                    record_error(e)
        return True

    def environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Environment for the shell hosting the tool.

        Args:
            base: Starting environment (defaults to this process's).

        Returns:
            The environment with the status-file variable and terminal
            locale settings applied.
        """
        env = dict(os.environ if base is None else base)
        env["TERM"] = self.launch.term
        env["COLORTERM"] = self.launch.colorterm
        env["LANG"] = self.launch.locale
        env["LC_ALL"] = self.launch.locale
        env["LC_CTYPE"] = self.launch.locale
        env[self.monitor.status_env_var] = str(self.status_path)
        return env

    # -------------------------------------------------------------------------
    # Actor
    # -------------------------------------------------------------------------

    def _post_reading(self, reading: StatusReading) -> None:
        if not self._terminated:
            self._queue.put_nowait(StatusObserved(reading))

    async def _run_ticker(self) -> None:
        async for count in self.detector.ticks():
            self._queue.put_nowait(TimerTick(count))

    async def _run_actor(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handle(event)
            except asyncio.CancelledError:
                _resolve(event, False)
                raise
            except Exception as e:
                log_exception(logger, e, f"Session {self.task_id} failed to handle {event}")
                record_error(e)
                _resolve(event, False)

    async def _handle(self, event: SessionEvent) -> None:
        if isinstance(event, StatusObserved):
            await self.state_machine.observe(event.reading)

        elif isinstance(event, TimerTick):
            reading = await asyncio.to_thread(self.status_file.read)
            if reading is not None:
                await self.state_machine.observe(reading)
            if await self.state_machine.check_idle_timeout(self.detector):
                await self._mirror_state(SessionState.IDLE)

        elif isinstance(event, SendText):
            sent = await self._write_terminal(event.text)
            _resolve(event, sent)

        elif isinstance(event, ForceState):
            changed = await self.state_machine.transition(event.state)
            await self._mirror_state(event.state)
            _resolve(event, changed)

    async def _mirror_state(self, state: SessionState) -> None:
        """Write our own state to the status file without it counting as a signal."""
        if await asyncio.to_thread(self.status_file.write, state):
            await self._note_own_write()

    async def _note_own_write(self) -> None:
        reading = await asyncio.to_thread(self.status_file.read)
        if reading is not None:
            self.state_machine.note_mtime(reading.mtime)

    async def _launch_sequence(self) -> None:
        await asyncio.sleep(self.launch.shell_ready_delay_ms / 1000)
        await self.send_command(self.setup_command())

        if self.params.auto_launch:
            await asyncio.sleep(self.launch.launch_delay_ms / 1000)
            await self.launch_tool()

    # -------------------------------------------------------------------------
    # Terminal Access
    # -------------------------------------------------------------------------

    async def _capture_latest_response(self) -> str:
        try:
            buffer = await self.terminal.read_buffer()
        except Exception as e:
            logger.warning("Failed to read terminal buffer for %s: %s", self.task_id, e)
            record_error(TerminalError("Failed to read terminal buffer", cause=e))
            return ""
        return self.extractor.extract_from_buffer(buffer)

    async def _write_terminal(self, text: str) -> bool:
        try:
            await self.terminal.send_text(text)
            return True
        except Exception as e:
            logger.warning("Failed to send text to %s: %s", self.task_id, e)
            record_error(TerminalError("Failed to send text to terminal", cause=e))
            return False


def _resolve(event: SessionEvent, result: bool) -> None:
    done = getattr(event, "done", None)
    if done is not None and not done.done():
        done.set_result(result)


async def _cancel_task(task: asyncio.Task | None) -> None:
    """Cancel a task and wait for it, unless it is the caller's own task."""
    if task is None or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
