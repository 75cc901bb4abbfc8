"""Status-signal file shared with the AI tool's hook scripts.

Hooks overwrite the file with a single token (``running``, ``waiting`` or
``completion``). Anything else, including an empty or missing file, means
idle. All operations here are fail-soft: they log and return instead of
raising, because the writer is an external process we do not control.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .exceptions import StatusFileError, record_error
from .models import SessionState

logger = logging.getLogger(__name__)

STATUS_FILE_SUFFIX = ".status"

_TOKEN_STATES = {
    SessionState.RUNNING.value: SessionState.RUNNING,
    SessionState.WAITING.value: SessionState.WAITING,
    SessionState.COMPLETED.value: SessionState.COMPLETED,
}


def decode_status(content: str) -> SessionState:
    """Decode status-file content into a session state.

    Matching is case-insensitive and ignores surrounding whitespace.
    Unknown content decodes to IDLE.
    """
    return _TOKEN_STATES.get(content.strip().lower(), SessionState.IDLE)


def status_path_for(status_dir: str | Path, task_id: str) -> Path:
    """Return the status file location for a task.

    Raises:
        ValueError: If the task id is empty or would resolve outside
            ``status_dir``.
    """
    if (
        not task_id
        or "/" in task_id
        or "\\" in task_id
        or "\0" in task_id
    ):
        raise ValueError(f"Invalid task id for a status file: {task_id!r}")
    return Path(status_dir) / f"{task_id}{STATUS_FILE_SUFFIX}"


@dataclass(frozen=True)
class StatusReading:
    """One observation of the status file."""

    state: SessionState
    mtime: int | None  # st_mtime_ns; None when the file was absent


class StatusSignalFile:
    """A session's status-signal file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).absolute()

    def __repr__(self) -> str:
        return f"StatusSignalFile({str(self.path)!r})"

    def create(self) -> bool:
        """Create the parent directory and initialize the file with ``idle``.

        Returns:
            True if the file was written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Failed to create status directory %s: %s", self.path.parent, e)
            record_error(
                StatusFileError(
                    "Failed to create status directory",
                    file_path=str(self.path.parent),
                    operation="mkdir",
                    cause=e,
                )
            )
            return False
        return self.write(SessionState.IDLE)

    def read(self) -> StatusReading | None:
        """Read and decode the file.

        Returns:
            The reading, an IDLE reading if the file is missing, or None if
            the file exists but could not be read.
        """
        try:
            mtime = self.path.stat().st_mtime_ns
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return StatusReading(SessionState.IDLE, None)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Unreadable status file %s: %s", self.path, e)
            record_error(
                StatusFileError(
                    "Failed to read status file",
                    file_path=str(self.path),
                    operation="read",
                    cause=e,
                )
            )
            return None

        return StatusReading(decode_status(content), mtime)

    def write(self, state: SessionState) -> bool:
        """Overwrite the file with the token for ``state``.

        The content is written to a sibling temp file and renamed into place
        so readers never observe a partial token.

        Returns:
            True if the file was written.
        """
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.value)
            os.replace(tmp_path, self.path)
            return True
        except OSError as e:
            logger.warning("Failed to write status file %s: %s", self.path, e)
            record_error(
                StatusFileError(
                    "Failed to write status file",
                    file_path=str(self.path),
                    operation="write",
                    cause=e,
                )
            )
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            return False

    def remove(self) -> None:
        """Delete the file. Missing files and failures are ignored."""
        try:
            self.path.unlink()
            logger.debug("Removed status file %s", self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove status file %s: %s", self.path, e)
            record_error(
                StatusFileError(
                    "Failed to remove status file",
                    file_path=str(self.path),
                    operation="remove",
                    cause=e,
                )
            )

    def exists(self) -> bool:
        return self.path.exists()
