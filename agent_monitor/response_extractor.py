"""Latest-response extraction from terminal scrollback.

Given the tail of a session's terminal buffer, derive a short snippet that
describes what the AI tool last said or is asking. There is no structured
protocol to parse, so this is pattern matching against the tool's terminal
chrome. The patterns below are tuned to Claude Code's output.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)


# =============================================================================
# Cleaning
# =============================================================================

# CSI sequences (colors, cursor movement, private modes like ESC[?25l)
_CSI_PATTERN = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
# OSC sequences (window titles, hyperlinks), BEL or ST terminated
_OSC_PATTERN = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
# Character set designation (ESC ( B etc.)
_CHARSET_PATTERN = re.compile(r"\x1b[()][AB012]")


def strip_control_characters(line: str) -> str:
    """Remove escape sequences and control characters from a line.

    Code points below 32 are dropped except newline and tab. The result is
    trimmed of surrounding whitespace.
    """
    result = _CSI_PATTERN.sub("", line)
    result = _OSC_PATTERN.sub("", result)
    result = _CHARSET_PATTERN.sub("", result)
    result = "".join(ch for ch in result if ord(ch) >= 32 or ch in "\n\t")
    return result.strip()


# =============================================================================
# Meaningful Line Filter
# =============================================================================

SHELL_PROMPT_PREFIXES = ("$", "%")

TOOL_COMMAND_NAME = "claude"
OPTION_MARKER = "--"

# Control hints and animated progress lines ("- Booping...", "* Brewed for 3s")
CHROME_PREFIXES = (
    "Esc to",
    "- Booping",
    "+ Booping",
    "- Determining",
    "+ Determining",
    "- Processing",
    "+ Processing",
    "* Cooked",
    "* Brewed",
    "* Churned",
)

# Status bar and permission-mode banners
CHROME_SUBSTRINGS = (
    "ctrl+c to interrupt",
    "bypass permissions",
    "accept edits",
)

MIN_TEXT_RATIO = 0.3

# Hiragana through CJK unified ideographs
_CJK_RANGE = (0x3040, 0x9FFF)


def _is_text_char(ch: str) -> bool:
    return ch.isalnum() or _CJK_RANGE[0] <= ord(ch) <= _CJK_RANGE[1]


def is_meaningful_line(line: str) -> bool:
    """Check whether a cleaned line looks like assistant prose.

    Rejects empty lines, shell prompts, tool command lines, known UI chrome
    and lines that are mostly box-drawing or spinner glyphs.
    """
    trimmed = line.strip()

    if not trimmed:
        return False

    if trimmed.startswith(SHELL_PROMPT_PREFIXES):
        return False

    if TOOL_COMMAND_NAME in trimmed and OPTION_MARKER in trimmed:
        return False

    if trimmed.startswith(CHROME_PREFIXES):
        return False

    if any(marker in trimmed for marker in CHROME_SUBSTRINGS):
        return False

    # Token/thinking counter, e.g. "(12s · 1.2k tokens · thinking)"
    if "tokens" in trimmed and "thinking" in trimmed:
        return False

    text_count = sum(1 for ch in trimmed if _is_text_char(ch))
    return text_count / len(trimmed) >= MIN_TEXT_RATIO


# =============================================================================
# Extraction
# =============================================================================

# Leading glyphs of an assistant response block
RESPONSE_BULLETS = ("⏺", "●", "◆")
# Emoji presentation selector that may follow a bullet glyph
VARIATION_SELECTOR = "\ufe0f"

QUESTION_PREFIXES = ("Do you want", "Would you like", "Are you sure")
QUESTION_MIN_LENGTH = 10

# "1. Yes", "> Allow", "Yes, and don't ask again", "No"
_MENU_OPTION_PATTERN = re.compile(r"^(?:\d+\.|>|Yes|No)")

DEFAULT_MAX_LINES = 100
DEFAULT_SNIPPET_LINES = 2


def is_question_line(line: str) -> bool:
    """Check whether a cleaned line is an interactive prompt."""
    trimmed = line.strip()
    if trimmed.startswith(QUESTION_PREFIXES):
        return True
    return trimmed.endswith("?") and len(trimmed) > QUESTION_MIN_LENGTH


def is_menu_option(line: str) -> bool:
    """Check whether a cleaned line looks like a prompt's first option."""
    return bool(_MENU_OPTION_PATTERN.match(line.strip()))


def _tail(items: list[str], count: int) -> list[str]:
    return items[-count:] if count > 0 else []


def strip_bullet(line: str) -> str:
    """Remove a leading response bullet and the spacing after it."""
    trimmed = line.strip()
    if trimmed.startswith(RESPONSE_BULLETS):
        return trimmed[1:].lstrip(VARIATION_SELECTOR).strip()
    return trimmed


class ResponseExtractor:
    """Derives a short snippet from the tail of a terminal buffer.

    Strategies, in priority order:
    1. Question - the last prompt-like line, plus its first menu option
    2. Response block - the first meaningful lines of the last bulleted block
    3. Fallback - the last meaningful lines anywhere in the window
    """

    def __init__(
        self,
        max_lines: int = DEFAULT_MAX_LINES,
        snippet_lines: int = DEFAULT_SNIPPET_LINES,
    ) -> None:
        """Initialize the extractor.

        Args:
            max_lines: How many trailing buffer lines to consider.
            snippet_lines: Maximum lines in a response-block or fallback snippet.
        """
        self.max_lines = max_lines
        self.snippet_lines = snippet_lines

    def clean_lines(self, text: str) -> list[str]:
        """Split a buffer into cleaned lines, keeping only the trailing window."""
        lines = _tail(text.splitlines(), self.max_lines)
        return [strip_control_characters(line) for line in lines]

    def extract_from_buffer(self, buffer: str | bytes) -> str:
        """Extract a snippet from a raw terminal buffer.

        Args:
            buffer: Scrollback contents as text or UTF-8 bytes.

        Returns:
            The snippet, or an empty string if the buffer is not valid text
            or nothing meaningful survives filtering.
        """
        if isinstance(buffer, bytes):
            try:
                buffer = buffer.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.debug("Terminal buffer is not valid UTF-8: %s", e)
                return ""

        return self.extract(self.clean_lines(buffer))

    def extract(self, lines: list[str]) -> str:
        """Extract a snippet from already-cleaned lines."""
        snippet, _ = self.extract_with_source(lines)
        return snippet

    def extract_with_source(self, lines: list[str]) -> tuple[str, str]:
        """Extract a snippet and report which strategy produced it.

        Useful for debugging and logging.

        Returns:
            Tuple of (snippet, source) where source is one of "question",
            "response_block" or "fallback".
        """
        question_index = self._find_last(lines, is_question_line)
        if question_index is not None:
            return self._question_snippet(lines, question_index), "question"

        block_index = self._find_last(
            lines, lambda line: line.strip().startswith(RESPONSE_BULLETS)
        )
        if block_index is not None:
            return self._block_snippet(lines, block_index), "response_block"

        meaningful = [line for line in lines if is_meaningful_line(line)]
        return "\n".join(_tail(meaningful, self.snippet_lines)), "fallback"

    @staticmethod
    def _find_last(lines: list[str], predicate) -> int | None:
        for index in range(len(lines) - 1, -1, -1):
            if predicate(lines[index]):
                return index
        return None

    def _question_snippet(self, lines: list[str], index: int) -> str:
        result = [lines[index].strip()]

        if index + 1 < len(lines):
            next_line = lines[index + 1].strip()
            if next_line and is_menu_option(next_line):
                result.append(next_line)

        return "\n".join(result)

    def _block_snippet(self, lines: list[str], start: int) -> str:
        result: list[str] = []
        if self.snippet_lines <= 0:
            return ""
        for line in lines[start:]:
            clean_line = strip_bullet(line)
            if is_meaningful_line(clean_line):
                result.append(clean_line)
                if len(result) >= self.snippet_lines:
                    break
        return "\n".join(result)
