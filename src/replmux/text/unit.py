"""Input unit extraction: recover what the user typed after a prompt."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from replmux.errors import NoPromptFound, UnbalancedInput

DEFAULT_PROMPT = r"^\w*> "


@dataclass(frozen=True)
class SyntaxRules:
    """Lexical rules used to find the end of a balanced expression.

    Defaults follow CoffeeScript/JavaScript: the three bracket pairs, three
    string quotes with backslash escapes, and ``#`` line comments.
    """

    pairs: dict[str, str] = field(
        default_factory=lambda: {"(": ")", "[": "]", "{": "}"}
    )
    quotes: str = "\"'`"
    escape: str = "\\"
    comment: str | None = "#"

    @property
    def closers(self) -> frozenset[str]:
        return frozenset(self.pairs.values())


DEFAULT_SYNTAX = SyntaxRules()


def compile_prompt(prompt: str | re.Pattern[str]) -> re.Pattern[str]:
    """Compile a prompt regex so that ``^`` matches at every line start."""
    if isinstance(prompt, re.Pattern):
        return prompt
    return re.compile(prompt, re.MULTILINE)


def find_prompt_end(
    buffer: str, cursor: int, prompt: str | re.Pattern[str] = DEFAULT_PROMPT
) -> int:
    """Return the position just past the prompt governing ``cursor``.

    Starts with the line containing ``cursor`` and walks back line by line
    until one begins with the prompt.
    """
    prompt_re = compile_prompt(prompt)
    line_start = buffer.rfind("\n", 0, cursor) + 1
    while True:
        match = prompt_re.match(buffer, line_start)
        if match is not None:
            return match.end()
        if line_start == 0:
            raise NoPromptFound(cursor)
        line_start = buffer.rfind("\n", 0, line_start - 1) + 1


def extract_current_unit(
    buffer: str,
    cursor: int | None = None,
    prompt: str | re.Pattern[str] = DEFAULT_PROMPT,
    syntax: SyntaxRules = DEFAULT_SYNTAX,
) -> str:
    """Extract the input unit that starts at the prompt preceding ``cursor``.

    The prompt and any whitespace after it are skipped, then one expression
    is consumed: a run of adjacent atoms (symbol characters, balanced
    delimiter groups, string literals) with no whitespace between them.
    Internal whitespace and newlines inside groups are kept verbatim.

    Args:
        buffer: Session transcript text.
        cursor: Reference position; defaults to the end of ``buffer``.
        prompt: Prompt regex, anchored at line start.
        syntax: Delimiter, string and comment rules.

    Raises:
        NoPromptFound: No line at or before ``cursor`` starts with the prompt.
        UnbalancedInput: The expression never closes a group or string.
    """
    if cursor is None:
        cursor = len(buffer)
    cursor = max(0, min(cursor, len(buffer)))

    start = find_prompt_end(buffer, cursor, prompt)
    while start < len(buffer) and buffer[start].isspace():
        start += 1
    end = scan_expression(buffer, start, syntax)
    return buffer[start:end]


def scan_expression(text: str, pos: int, syntax: SyntaxRules = DEFAULT_SYNTAX) -> int:
    """Return the end index of the expression starting at ``pos``."""
    closers = syntax.closers
    end = pos
    while end < len(text):
        ch = text[end]
        if ch.isspace():
            break
        if syntax.comment and text.startswith(syntax.comment, end):
            break
        if ch in closers:
            if end == pos:
                raise UnbalancedInput(end, f"unexpected {ch!r}")
            break
        if ch in syntax.pairs:
            end = _scan_group(text, end, syntax)
        elif ch in syntax.quotes:
            end = _scan_string(text, end, syntax)
        else:
            end += 1
    return end


def _scan_group(text: str, pos: int, syntax: SyntaxRules) -> int:
    closers = syntax.closers
    stack: list[str] = []
    i = pos
    while i < len(text):
        ch = text[i]
        if ch in syntax.quotes:
            i = _scan_string(text, i, syntax)
            continue
        if syntax.comment and text.startswith(syntax.comment, i):
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline + 1
            continue
        if ch in syntax.pairs:
            stack.append(syntax.pairs[ch])
        elif ch in closers:
            if stack.pop() != ch:
                raise UnbalancedInput(i, f"mismatched {ch!r}")
            if not stack:
                return i + 1
        i += 1
    raise UnbalancedInput(pos, f"unclosed {text[pos]!r}")


def _scan_string(text: str, pos: int, syntax: SyntaxRules) -> int:
    quote = text[pos]
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if syntax.escape and ch == syntax.escape:
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    raise UnbalancedInput(pos, f"unterminated string {quote}")
