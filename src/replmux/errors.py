"""Error taxonomy for replmux.

Subprocess crashes are not errors: they surface as a status transition on
the session (``EXITED`` / ``KILLED``). The exceptions below cover the cases
where the caller asked for something that cannot be done.
"""

from __future__ import annotations


class ReplmuxError(Exception):
    """Base class for all replmux errors."""


class SpawnError(ReplmuxError):
    """The launch command could not be turned into a running process.

    Raised when the command string is empty or malformed, the executable
    cannot be located, or the OS refuses to create the process. Fatal to that
    launch attempt only.
    """


class NotRunning(ReplmuxError):
    """Input was sent, or output polled, on a session that is no longer running."""

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is not running (status={status})")


class NoPromptFound(ReplmuxError):
    """No prompt line precedes the cursor, so no input unit can be extracted."""

    def __init__(self, cursor: int) -> None:
        self.cursor = cursor
        super().__init__(f"No prompt found at or before position {cursor}")


class UnbalancedInput(ReplmuxError):
    """The input unit opens a delimiter or string that never closes."""

    def __init__(self, position: int, reason: str) -> None:
        self.position = position
        self.reason = reason
        super().__init__(f"Unbalanced input at position {position}: {reason}")
