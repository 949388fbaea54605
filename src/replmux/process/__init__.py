"""REPL process management: piped subprocesses with scrubbed output.

Each session process owns one OS subprocess, a stdin pipe and a merged
stdout/stderr pipe, and an output buffer that scrubs control sequences and
REPL noise as output streams in.
"""

from replmux.process.buffer import OutputBuffer
from replmux.process.session import SessionProcess, SessionStatus

__all__ = [
    "OutputBuffer",
    "SessionProcess",
    "SessionStatus",
]
