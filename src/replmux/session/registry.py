"""Session registry: named REPL sessions and the default session."""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from replmux.process.buffer import DEFAULT_MAX_CHARS, OutputBuffer
from replmux.process.session import SessionProcess, SessionStatus
from replmux.session.wire import Wire
from replmux.text.scrub import OutputScrubber
from replmux.text.unit import (
    DEFAULT_PROMPT,
    DEFAULT_SYNTAX,
    SyntaxRules,
    compile_prompt,
    extract_current_unit,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionOptions:
    """Per-session settings fixed at creation time."""

    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    line_terminator: str = "\n"
    echoes_input: bool = False
    read_only_prompt: bool = True
    prompt: str = DEFAULT_PROMPT
    syntax: SyntaxRules = DEFAULT_SYNTAX
    scrubber: OutputScrubber | None = None
    buffer_max_chars: int = DEFAULT_MAX_CHARS


@dataclass(eq=False)
class Session:
    """One named REPL conversation bound to a session process."""

    name: str
    identifier: str
    process: SessionProcess
    command: str
    order: int
    prompt: re.Pattern[str] = field(default_factory=lambda: compile_prompt(DEFAULT_PROMPT))
    syntax: SyntaxRules = DEFAULT_SYNTAX
    # Advisory for front ends: text before the last prompt end is not editable
    read_only_prompt: bool = True
    registry: SessionRegistry | None = field(default=None, repr=False)

    @property
    def status(self) -> SessionStatus:
        return self.process.status

    @property
    def alive(self) -> bool:
        return self.process.alive

    @property
    def echoes_input(self) -> bool:
        return self.process.echoes_input

    @property
    def buffer(self) -> OutputBuffer:
        return self.process.buffer

    @property
    def output(self) -> str:
        """The scrubbed transcript, prompts and input included."""
        return self.process.buffer.read_all()

    def send_input(self, text: str) -> None:
        self.process.send_input(text)

    def poll_output(self) -> str:
        return self.process.poll_output()

    def extract_current_unit(self, cursor: int | None = None) -> str:
        """Extract the input unit at ``cursor`` (default: end) of the transcript."""
        return extract_current_unit(self.output, cursor, self.prompt, self.syntax)

    def kill(self) -> None:
        """Kill the process and unlink the session from its registry."""
        if self.registry is not None:
            self.registry.kill(self)
        else:
            self.process.kill()


class SessionRegistry:
    """Tracks live sessions by name and the default (oldest live) session.

    Sessions sharing a base name get unique identifiers ``name``,
    ``name<2>``, ``name<3>``, … using the lowest free suffix. An identifier
    stays taken until its session is removed, which happens automatically
    when the process exits and explicitly on ``kill()``.

    Single writer: only the owning controller (and the exit callbacks it
    wires up, which run on the same event loop) mutate the registry.
    """

    def __init__(self, wire: Wire | None = None) -> None:
        self._by_name: dict[str, list[Session]] = {}
        self._default: Session | None = None
        self._order = itertools.count(1)
        self._wire = wire

    def unique_identifier(self, name: str) -> str:
        """Lowest free identifier for ``name``: bare, then ``name<2>``, …"""
        taken = {s.identifier for s in self._by_name.get(name, [])}
        if name not in taken:
            return name
        for n in itertools.count(2):
            candidate = f"{name}<{n}>"
            if candidate not in taken:
                return candidate
        raise AssertionError("unreachable")

    def get(self, identifier: str) -> Session | None:
        """Get a session by its unique identifier."""
        for session in self.sessions():
            if session.identifier == identifier:
                return session
        return None

    def find(self, name: str) -> Session | None:
        """Find the oldest live session named ``name`` (base name or identifier)."""
        for session in self._by_name.get(name, []):
            if session.alive:
                return session
        session = self.get(name)
        if session is not None and session.alive:
            return session
        return None

    async def create(
        self,
        name: str,
        command: list[str],
        options: SessionOptions | None = None,
        launch_command: str | None = None,
    ) -> Session:
        """Spawn a new session under a fresh identifier for ``name``.

        Raises:
            SpawnError: The process could not be started.
        """
        options = options or SessionOptions()
        buffer = OutputBuffer(
            scrubber=options.scrubber, max_chars=options.buffer_max_chars
        )
        process = await SessionProcess.spawn(
            command,
            options.env,
            cwd=options.cwd,
            line_terminator=options.line_terminator,
            echoes_input=options.echoes_input,
            buffer=buffer,
        )

        session = Session(
            name=name,
            identifier=self.unique_identifier(name),
            process=process,
            command=launch_command or " ".join(command),
            order=next(self._order),
            prompt=compile_prompt(options.prompt),
            syntax=options.syntax,
            read_only_prompt=options.read_only_prompt,
            registry=self,
        )

        def _on_exit(_process: SessionProcess, exit_code: int | None) -> None:
            self.remove(session)
            if self._wire:
                tail = session.buffer.read_tail(3)
                self._wire.send_session_exit(
                    session.identifier, exit_code, "\n".join(tail)
                )

        process.set_on_exit(_on_exit)

        self._by_name.setdefault(name, []).append(session)
        if self._default is None or not self._default.alive:
            self._default = session
        logger.info("Created session %s (pid=%d)", session.identifier, process.pid)
        return session

    async def find_or_create(
        self,
        display_name: str,
        command: list[str],
        options: SessionOptions | None = None,
        launch_command: str | None = None,
    ) -> Session:
        """Return the live session named ``display_name``, or create one."""
        session = self.find(display_name)
        if session is not None:
            logger.debug("Reusing session %s", session.identifier)
            return session
        return await self.create(display_name, command, options, launch_command)

    def remove(self, session: Session) -> None:
        """Unlink a dead session and move the default on if it was the default."""
        siblings = self._by_name.get(session.name, [])
        if session in siblings:
            siblings.remove(session)
            if not siblings:
                del self._by_name[session.name]
            logger.info("Removed session %s", session.identifier)

        if self._default is session:
            live = [s for s in self.sessions() if s.alive]
            self._default = live[0] if live else None

    def kill(self, session: Session) -> None:
        """Kill a session and remove it from tracking."""
        session.process.kill()
        self.remove(session)
        if self._wire:
            self._wire.send_session_killed(session.identifier)

    @property
    def default(self) -> Session | None:
        """The oldest live session, or None."""
        return self._default

    def sessions(self) -> list[Session]:
        """All tracked sessions in creation order."""
        tracked = [s for group in self._by_name.values() for s in group]
        return sorted(tracked, key=lambda s: s.order)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Summaries of all tracked sessions."""
        return [
            {
                "id": s.identifier,
                "name": s.name,
                "command": s.command,
                "alive": s.alive,
                "status": s.status.value,
                "default": s is self._default,
                "read_only_prompt": s.read_only_prompt,
                "lines": s.buffer.line_count,
            }
            for s in self.sessions()
        ]

    async def cleanup(self) -> None:
        """Kill all sessions. Called on shutdown."""
        for session in self.sessions():
            self.kill(session)
        logger.info("All sessions cleaned up")

    def __len__(self) -> int:
        return sum(len(group) for group in self._by_name.values())
