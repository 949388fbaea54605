"""Output scrubbing: strip terminal control sequences and REPL noise.

Two kinds of pattern are deleted from process output:

* **control sequences**: ``ESC [ <digits> <command>`` for the cursor-column
  (``G``), erase-in-display (``J``) and erase-in-line (``K``) commands;
* **echoed noise**: lines made of optional leading whitespace and a literal
  noise token (node-based REPLs print a stray ``undefined`` after most
  statements), through the end of the line.

Scrubbing is applied to a *window* of a larger text so that streamed output
can be re-scanned as it grows. Text before the window start is never
modified but still gives ``^`` its line context.

Uses the ``regex`` module rather than ``re`` for its partial matching, which
tells us whether the tail of the output could still grow into a match.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import regex

CONTROL_COMMANDS = "GJK"
NOISE_TOKENS: tuple[str, ...] = ("undefined",)


class ScrubKind(enum.Enum):
    CONTROL_SEQUENCE = "control_sequence"
    ECHOED_NOISE = "echoed_noise"


@dataclass(frozen=True)
class ScrubPattern:
    """One pattern to delete from output."""

    kind: ScrubKind
    pattern: str

    @classmethod
    def control_sequence(cls, commands: str = CONTROL_COMMANDS) -> ScrubPattern:
        return cls(
            ScrubKind.CONTROL_SEQUENCE,
            rf"\x1b\[[0-9]+[{regex.escape(commands)}]",
        )

    @classmethod
    def noise(cls, token: str) -> ScrubPattern:
        return cls(
            ScrubKind.ECHOED_NOISE,
            rf"^[ \t]*{regex.escape(token)}[ \t]*\r?\n",
        )


def default_patterns(
    noise_tokens: Iterable[str] = NOISE_TOKENS,
    control_commands: str = CONTROL_COMMANDS,
) -> tuple[ScrubPattern, ...]:
    """Build the standard ordered pattern set: control sequences first."""
    patterns = [ScrubPattern.control_sequence(control_commands)]
    patterns.extend(ScrubPattern.noise(token) for token in noise_tokens if token)
    return tuple(patterns)


class OutputScrubber:
    """Deletes every match of an ordered set of patterns from output text.

    The pattern set is fixed at construction; one scrubber can be shared by
    any number of sessions. Deletions are repeated until the text stops
    changing, so scrubbing is idempotent even when removing one match exposes
    another (``"\\x1b[2Kundefined\\n"`` scrubs to ``""``).
    """

    def __init__(self, patterns: Iterable[ScrubPattern] | None = None) -> None:
        self._patterns = (
            tuple(patterns) if patterns is not None else default_patterns()
        )
        self._compiled = [
            regex.compile(p.pattern, regex.MULTILINE) for p in self._patterns
        ]

    @property
    def patterns(self) -> tuple[ScrubPattern, ...]:
        return self._patterns

    def scrub(self, text: str, start: int = 0) -> str:
        """Return ``text`` with every match at or after ``start`` removed."""
        scrubbed, _ = self.scrub_tracking(text, start, ())
        return scrubbed

    def scrub_tracking(
        self, text: str, start: int, positions: Sequence[int]
    ) -> tuple[str, list[int]]:
        """Scrub ``text`` from ``start`` and map ``positions`` through the deletions.

        A position inside a deleted span moves to the start of that span.

        Returns:
            (scrubbed_text, mapped_positions)
        """
        mapped = list(positions)
        while True:
            changed = False
            for compiled in self._compiled:
                spans = [
                    m.span() for m in compiled.finditer(text, start) if m.end() > m.start()
                ]
                if not spans:
                    continue
                changed = True
                text = _delete_spans(text, spans)
                mapped = [_map_position(p, spans) for p in mapped]
            if not changed:
                return text, mapped

    def pending_start(self, text: str, start: int = 0) -> int:
        """Index where a trailing, still incomplete match begins.

        Returns ``len(text)`` when nothing at the end of ``text`` could grow
        into a match. ``text`` is expected to be scrubbed already.
        """
        pending = len(text)
        for compiled in self._compiled:
            match = compiled.search(text, start, partial=True)
            if match is not None and match.partial:
                pending = min(pending, match.start())
        return pending


def _delete_spans(text: str, spans: list[tuple[int, int]]) -> str:
    pieces = []
    last = 0
    for begin, end in spans:
        pieces.append(text[last:begin])
        last = end
    pieces.append(text[last:])
    return "".join(pieces)


def _map_position(position: int, spans: list[tuple[int, int]]) -> int:
    shift = 0
    for begin, end in spans:
        if position >= end:
            shift += end - begin
        elif position > begin:
            return begin - shift
        else:
            break
    return position - shift


DEFAULT_SCRUBBER = OutputScrubber()


def scrub(chunk: str) -> str:
    """Scrub a self-contained chunk of output with the default patterns."""
    return DEFAULT_SCRUBBER.scrub(chunk)
