"""Text processing for REPL transcripts: output scrubbing and input units."""

from replmux.text.scrub import OutputScrubber, ScrubKind, ScrubPattern, scrub
from replmux.text.unit import SyntaxRules, extract_current_unit

__all__ = [
    "OutputScrubber",
    "ScrubKind",
    "ScrubPattern",
    "SyntaxRules",
    "extract_current_unit",
    "scrub",
]
