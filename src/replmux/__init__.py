"""replmux: run and multiplex interactive REPL subprocesses.

Starts REPL processes behind pipes, scrubs their output of terminal control
sequences and noise, tracks several named sessions at once, and recovers
the input the user typed after a prompt.
"""

from replmux.controller import SessionController
from replmux.errors import NoPromptFound, NotRunning, ReplmuxError, SpawnError
from replmux.process import OutputBuffer, SessionProcess, SessionStatus
from replmux.session import Session, SessionRegistry
from replmux.text import OutputScrubber, extract_current_unit, scrub

__version__ = "0.1.0"

__all__ = [
    "NoPromptFound",
    "NotRunning",
    "OutputBuffer",
    "OutputScrubber",
    "ReplmuxError",
    "Session",
    "SessionController",
    "SessionProcess",
    "SessionRegistry",
    "SessionStatus",
    "SpawnError",
    "extract_current_unit",
    "scrub",
]
