"""Tests for replmux.text.scrub (OutputScrubber, ScrubPattern)."""

from __future__ import annotations

from replmux.process.buffer import OutputBuffer
from replmux.text.scrub import (
    DEFAULT_SCRUBBER,
    OutputScrubber,
    ScrubKind,
    ScrubPattern,
    default_patterns,
    scrub,
)

SAMPLES = [
    "\x1b[2Kfoo\nundefined\nbar\n",
    "\x1b[2Kundefined\n",
    "coffee> \x1b[1G\x1b[0Jcoffee> \x1b[9G1 + 1\n2\ncoffee> ",
    "  undefined\r\nvalue\n\tundefined \n",
    "undefinedX\nnot noise undefined\n",
    "\x1b[K no number\x1b[31m color\n",
    "",
]


# ---------------------------------------------------------------------------
# Pattern construction
# ---------------------------------------------------------------------------


class TestScrubPatterns:
    def test_default_order(self) -> None:
        patterns = default_patterns()
        assert patterns[0].kind == ScrubKind.CONTROL_SEQUENCE
        assert [p.kind for p in patterns[1:]] == [ScrubKind.ECHOED_NOISE]

    def test_noise_token_is_literal(self) -> None:
        scrubber = OutputScrubber([ScrubPattern.noise("a.b")])
        assert scrubber.scrub("a.b\naxb\n") == "axb\n"

    def test_empty_tokens_skipped(self) -> None:
        patterns = default_patterns(noise_tokens=["", "None"])
        assert len(patterns) == 2

    def test_custom_control_commands(self) -> None:
        scrubber = OutputScrubber(default_patterns(control_commands="m"))
        assert scrubber.scrub("\x1b[31mred\x1b[2K") == "red\x1b[2K"

    def test_patterns_are_immutable_tuple(self) -> None:
        assert isinstance(DEFAULT_SCRUBBER.patterns, tuple)


# ---------------------------------------------------------------------------
# scrub()
# ---------------------------------------------------------------------------


class TestScrub:
    def test_example(self) -> None:
        assert scrub("\x1b[2Kfoo\nundefined\nbar\n") == "foo\nbar\n"

    def test_cursor_column_and_erase_display(self) -> None:
        assert scrub("a\x1b[1Gb\x1b[0Jc") == "abc"

    def test_requires_numeric_parameter(self) -> None:
        assert scrub("\x1b[Kx") == "\x1b[Kx"

    def test_other_sequences_untouched(self) -> None:
        assert scrub("\x1b[31mred\x1b[0m") == "\x1b[31mred\x1b[0m"

    def test_noise_with_indent_and_crlf(self) -> None:
        assert scrub("  undefined\r\nok\n") == "ok\n"

    def test_noise_must_be_whole_line(self) -> None:
        text = "x = undefined\nundefinedness\n"
        assert scrub(text) == text

    def test_noise_needs_line_end(self) -> None:
        assert scrub("undefined") == "undefined"

    def test_removal_exposing_noise(self) -> None:
        assert scrub("\x1b[2Kundefined\n") == ""

    def test_no_match_is_noop(self) -> None:
        assert scrub("plain text\n") == "plain text\n"

    def test_idempotent(self) -> None:
        for sample in SAMPLES:
            once = scrub(sample)
            assert scrub(once) == once

    def test_start_leaves_prefix_alone(self) -> None:
        text = "\x1b[2Kkeep\n\x1b[2Kdrop\n"
        assert DEFAULT_SCRUBBER.scrub(text, 9) == "\x1b[2Kkeep\ndrop\n"

    def test_start_keeps_line_context(self) -> None:
        # Window starts mid-line: "undefined" there is not a whole line
        text = "x undefined\n"
        assert DEFAULT_SCRUBBER.scrub(text, 2) == text


# ---------------------------------------------------------------------------
# scrub_tracking() / pending_start()
# ---------------------------------------------------------------------------


class TestTrackingAndPending:
    def test_positions_after_deletion_shift(self) -> None:
        text, (pos,) = DEFAULT_SCRUBBER.scrub_tracking("\x1b[2Kab", 0, (6,))
        assert text == "ab"
        assert pos == 2

    def test_position_inside_deletion_moves_to_start(self) -> None:
        text, (pos,) = DEFAULT_SCRUBBER.scrub_tracking("a\x1b[2Kb", 0, (3,))
        assert text == "ab"
        assert pos == 1

    def test_pending_none(self) -> None:
        assert DEFAULT_SCRUBBER.pending_start("coffee> ") == len("coffee> ")

    def test_pending_partial_escape(self) -> None:
        assert DEFAULT_SCRUBBER.pending_start("foo\x1b[2") == 3

    def test_pending_partial_noise(self) -> None:
        assert DEFAULT_SCRUBBER.pending_start("foo\n  undef") == 4

    def test_pending_complete_token_without_newline(self) -> None:
        assert DEFAULT_SCRUBBER.pending_start("undefined") == 0

    def test_pending_broken_noise(self) -> None:
        assert DEFAULT_SCRUBBER.pending_start("undefx") == len("undefx")


# ---------------------------------------------------------------------------
# Streaming equivalence
# ---------------------------------------------------------------------------


class TestStreamingEquivalence:
    def test_any_split_matches_whole(self) -> None:
        for sample in SAMPLES:
            for i in range(len(sample) + 1):
                buf = OutputBuffer()
                buf.append(sample[:i])
                buf.append(sample[i:])
                assert buf.read_all() == scrub(sample), (sample, i)

    def test_byte_by_byte(self) -> None:
        sample = SAMPLES[2]
        buf = OutputBuffer()
        for ch in sample:
            buf.append(ch)
        assert buf.read_all() == scrub(sample)
