"""Tests for latest-response extraction."""

import pytest

from agent_monitor.response_extractor import (
    ResponseExtractor,
    is_menu_option,
    is_meaningful_line,
    is_question_line,
    strip_bullet,
    strip_control_characters,
)


class TestStripControlCharacters:
    """Test escape sequence removal."""

    def test_removes_color_codes(self):
        assert strip_control_characters("\x1b[1;32mDone\x1b[0m") == "Done"

    def test_removes_private_mode_sequences(self):
        assert strip_control_characters("\x1b[?25lHidden cursor\x1b[?25h") == "Hidden cursor"

    def test_removes_osc_title(self):
        assert strip_control_characters("\x1b]0;claude\x07Working") == "Working"

    def test_removes_charset_designation(self):
        assert strip_control_characters("\x1b(BPlain") == "Plain"

    def test_drops_control_characters_but_keeps_tab(self):
        assert strip_control_characters("a\x07b\tc\x00") == "ab\tc"

    def test_trims_whitespace(self):
        assert strip_control_characters("   padded \r") == "padded"


class TestIsMeaningfulLine:
    """Test the prose filter."""

    def test_plain_sentence(self):
        assert is_meaningful_line("I updated the parser, and the tests pass.") is True

    def test_japanese_text(self):
        assert is_meaningful_line("テストがすべて成功しました。") is True

    def test_empty(self):
        assert is_meaningful_line("") is False
        assert is_meaningful_line("    ") is False

    @pytest.mark.parametrize("line", ["$ ls -la", "% git status"])
    def test_shell_prompts(self, line):
        assert is_meaningful_line(line) is False

    def test_tool_invocation(self):
        assert is_meaningful_line('claude --dangerously-skip-permissions "fix it"') is False

    def test_tool_name_without_option_is_kept(self):
        assert is_meaningful_line("I asked claude about it.") is True

    @pytest.mark.parametrize(
        "line",
        [
            "Esc to cancel",
            "- Booping... (3s)",
            "+ Determining next step",
            "- Processing files",
            "* Cooked for 12s",
            "* Brewed for 4s",
            "* Churned for 1m 2s",
            "Working (ctrl+c to interrupt)",
            ">> bypass permissions on (shift+tab to cycle)",
            ">> accept edits on",
            "(12s · 1.2k tokens · thinking)",
        ],
    )
    def test_ui_chrome(self, line):
        assert is_meaningful_line(line) is False

    def test_box_drawing(self):
        line = "╭" + "─" * 17 + "ab"
        assert is_meaningful_line(line) is False

    def test_spinner_noise(self):
        assert is_meaningful_line("✻ ✶ ✳ ✢ ·") is False

    def test_threshold(self):
        # 3 text chars of 10 is exactly 0.3
        assert is_meaningful_line("abc-------") is True
        assert is_meaningful_line("ab--------") is False


class TestLinePredicates:
    """Test question, menu and bullet helpers."""

    @pytest.mark.parametrize(
        "line",
        [
            "Do you want to proceed?",
            "Would you like me to continue",
            "Are you sure",
            "Should I also update the docs?",
        ],
    )
    def test_question_lines(self, line):
        assert is_question_line(line) is True

    def test_short_question_is_not_a_prompt(self):
        assert is_question_line("Why not?") is False

    def test_prefix_match_is_case_sensitive(self):
        assert is_question_line("do you want") is False

    @pytest.mark.parametrize("line", ["1. Yes", "> Allow", "Yes, and don't ask again", "No"])
    def test_menu_options(self, line):
        assert is_menu_option(line) is True

    def test_not_menu_option(self):
        assert is_menu_option("Maybe later") is False

    def test_strip_bullet(self):
        assert strip_bullet("⏺ Done.") == "Done."
        assert strip_bullet("  ●  Spaced") == "Spaced"
        assert strip_bullet("No bullet") == "No bullet"

    def test_strip_bullet_with_variation_selector(self):
        assert strip_bullet("⏺\ufe0f Done.") == "Done."
        assert strip_bullet("●\ufe0fTight") == "Tight"


class TestResponseExtractor:
    """Test snippet extraction strategies."""

    @pytest.fixture
    def extractor(self):
        return ResponseExtractor()

    def test_question_with_menu_option(self, extractor):
        buffer = "\n".join(
            [
                "⏺ I need to run a command.",
                "Do you want to proceed with this action?",
                "1. Yes",
                "2. No",
            ]
        )
        assert extractor.extract_from_buffer(buffer) == (
            "Do you want to proceed with this action?\n1. Yes"
        )

    def test_question_without_menu_option(self, extractor):
        buffer = "Would you like me to also add tests?\n\nsomething else"
        assert extractor.extract_from_buffer(buffer) == "Would you like me to also add tests?"

    def test_last_question_wins(self, extractor):
        lines = ["Is this the first question?", "text", "Is this the second question?"]
        snippet, source = extractor.extract_with_source(lines)
        assert snippet == "Is this the second question?"
        assert source == "question"

    def test_question_wins_over_later_response_block(self, extractor):
        lines = [
            "Do you want to apply this change?",
            "1. Yes",
            "⏺ Applied the change to parser.py.",
            "Everything compiles.",
        ]
        snippet, source = extractor.extract_with_source(lines)
        assert snippet == "Do you want to apply this change?\n1. Yes"
        assert source == "question"

    def test_emoji_bullet_block(self, extractor):
        lines = ["⏺\ufe0f Renamed the module.", "Imports updated."]
        assert extractor.extract(lines) == "Renamed the module.\nImports updated."

    def test_response_block(self, extractor):
        buffer = "\n".join(
            [
                "$ claude --continue",
                "⏺ I fixed the off-by-one error in the parser.",
                "All tests pass now.",
                "Let me know if anything else is needed.",
                "",
                "╭──────────────────────────────╮",
            ]
        )
        snippet, source = extractor.extract_with_source(extractor.clean_lines(buffer))
        assert snippet == "I fixed the off-by-one error in the parser.\nAll tests pass now."
        assert source == "response_block"

    def test_response_block_skips_chrome(self, extractor):
        lines = ["⏺", "* Brewed for 3s", "First sentence here.", "───────", "Second one."]
        assert extractor.extract(lines) == "First sentence here.\nSecond one."

    def test_last_response_block_wins(self, extractor):
        lines = ["⏺ Old answer.", "⏺ New answer."]
        assert extractor.extract(lines) == "New answer."

    def test_fallback_takes_last_meaningful_lines(self, extractor):
        lines = ["one line", "two lines", "three lines", "$ prompt", "──────────"]
        snippet, source = extractor.extract_with_source(lines)
        assert snippet == "two lines\nthree lines"
        assert source == "fallback"

    def test_nothing_meaningful(self, extractor):
        assert extractor.extract_from_buffer("$ \n──────\n") == ""

    def test_empty_buffer(self, extractor):
        assert extractor.extract_from_buffer("") == ""
        assert extractor.extract_from_buffer(b"") == ""

    def test_bytes_buffer(self, extractor):
        assert extractor.extract_from_buffer("⏺ Done.".encode("utf-8")) == "Done."

    def test_invalid_utf8_bytes(self, extractor):
        assert extractor.extract_from_buffer(b"\xff\xfe Done.") == ""

    def test_escape_sequences_cleaned(self, extractor):
        buffer = "\x1b[1m⏺\x1b[0m \x1b[32mBuilt successfully.\x1b[0m"
        assert extractor.extract_from_buffer(buffer) == "Built successfully."

    def test_only_trailing_window_considered(self):
        extractor = ResponseExtractor(max_lines=2)
        buffer = "Do you want to see this question?\nline a\nline b"
        assert extractor.extract_from_buffer(buffer) == "line a\nline b"

    def test_snippet_lines_configurable(self):
        extractor = ResponseExtractor(snippet_lines=3)
        lines = ["⏺ One.", "Two.", "Three.", "Four."]
        assert extractor.extract(lines) == "One.\nTwo.\nThree."

    def test_zero_window_sees_nothing(self):
        extractor = ResponseExtractor(max_lines=0)
        assert extractor.clean_lines("⏺ Done.\nMore text here.") == []
        assert extractor.extract_from_buffer("⏺ Done.\nMore text here.") == ""

    @pytest.mark.parametrize(
        "lines", [["⏺ One.", "Two."], ["plain line", "another plain line"]]
    )
    def test_zero_snippet_lines(self, lines):
        assert ResponseExtractor(snippet_lines=0).extract(lines) == ""
