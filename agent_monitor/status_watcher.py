"""File watching for status-signal files.

Watches a session's status file using watchfiles and publishes each decoded
reading to the session. The parent directory is watched rather than the file
itself so that writers which replace the file (rename into place, delete and
recreate) keep producing events.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable

from watchfiles import Change, awatch

from .exceptions import StatusFileError, record_error
from .status_file import StatusReading, StatusSignalFile

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[StatusReading], None]


class StatusFileWatcher:
    """Publishes status-file readings whenever the file changes on disk.

    Provides:
    - Async file watching using watchfiles
    - Re-read and decode on every write, replace or delete of the file
    - Automatic reattach when the watch fails or the directory disappears

    Readings are published unconditionally; suppressing repeats of the
    current state is the state machine's job.
    """

    def __init__(
        self,
        status_file: StatusSignalFile,
        publish: ReadingCallback,
        *,
        debounce_ms: int = 50,
        retry_seconds: float = 1.0,
        force_polling: bool = False,
    ) -> None:
        """Initialize the watcher.

        Args:
            status_file: The file to watch.
            publish: Receives each successful reading, in event order.
            debounce_ms: watchfiles debounce window.
            retry_seconds: Delay before reattaching after a failed watch,
                also used as the directory health-check interval.
            force_polling: Use stat polling instead of OS notifications.
        """
        self.status_file = status_file
        self.publish = publish
        self.debounce_ms = debounce_ms
        self.retry_seconds = retry_seconds
        self.force_polling = force_polling

        self.attach_count = 0
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._target = os.path.realpath(status_file.path)
        self._directory = os.path.dirname(self._target)

    @property
    def is_watching(self) -> bool:
        """Check if the watch loop is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start watching. Calling start twice is a no-op."""
        if self.is_watching:
            logger.debug("Watcher for %s already running", self._target)
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        """Stop watching and wait for the watch task to finish."""
        self._stop_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _watch_loop(self) -> None:
        """Watch until stopped, reattaching whenever the watch degrades."""
        while not self._stop_event.is_set():
            self.attach_count += 1
            try:
                Path(self._directory).mkdir(parents=True, exist_ok=True)
                await self._watch_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Status watch on %s failed: %s", self._directory, e)
                record_error(
                    StatusFileError(
                        "Status file watch failed",
                        file_path=self._target,
                        operation="watch",
                        cause=e,
                    )
                )

            if self._stop_event.is_set():
                break

            logger.debug("Reattaching status watch on %s", self._directory)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.retry_seconds)
            except asyncio.TimeoutError:
                pass

    async def _watch_once(self) -> None:
        """Run one watch attachment.

        Returns when the watched directory is gone, so the caller can
        recreate it and reattach.
        """
        async for changes in awatch(
            self._directory,
            watch_filter=self._accepts,
            stop_event=self._stop_event,
            debounce=self.debounce_ms,
            rust_timeout=max(int(self.retry_seconds * 1000), 1),
            yield_on_timeout=True,
            force_polling=self.force_polling,
            recursive=False,
        ):
            if not os.path.isdir(self._directory):
                logger.info("Status directory %s disappeared", self._directory)
                return

            if any(os.path.realpath(path) == self._target for _, path in changes):
                await self._on_file_change()

    def _accepts(self, change: Change, path: str) -> bool:
        return os.path.realpath(path) in (self._target, self._directory)

    async def _on_file_change(self) -> None:
        """Re-read the file and publish the decoded reading."""
        reading = await asyncio.to_thread(self.status_file.read)
        if reading is None:
            return

        logger.debug("Status file %s reads %s", self._target, reading.state.value)
        self.publish(reading)
