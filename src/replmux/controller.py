"""Session controller: the public entry point for launching REPLs."""

from __future__ import annotations

import logging
import shlex

from replmux.config import ImplementationConfig, ReplmuxConfig
from replmux.errors import SpawnError
from replmux.process.session import repl_env_overrides
from replmux.session.registry import Session, SessionOptions, SessionRegistry
from replmux.session.wire import Wire
from replmux.text.scrub import OutputScrubber, default_patterns

logger = logging.getLogger(__name__)


class SessionController:
    """Launches REPL sessions or attaches to ones that are already running.

    The controller is the only writer of its registry. Scrubbers are built
    once per implementation and shared read-only by that implementation's
    sessions.
    """

    def __init__(
        self,
        config: ReplmuxConfig | None = None,
        registry: SessionRegistry | None = None,
        wire: Wire | None = None,
    ) -> None:
        self.config = config or ReplmuxConfig()
        self._wire = wire
        self._registry = registry or SessionRegistry(wire=wire)
        self._scrubbers: dict[str, OutputScrubber] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def run(
        self,
        command: str,
        name: str | None = None,
        implementation: str | None = None,
    ) -> Session:
        """Attach to the live session called ``name`` or start ``command`` as it.

        Args:
            command: Launch command, split with POSIX shell quoting rules.
            name: Session display name; defaults to the configured name.
            implementation: Implementation whose prompt, echo and noise
                settings apply; defaults to the configured default.

        Raises:
            SpawnError: The command is empty or malformed, or the process
                could not be started.
        """
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise SpawnError(f"Malformed command {command!r}: {e}") from e
        if not argv:
            raise SpawnError("Empty command")

        display_name = name or self.config.default_name
        impl_name = implementation or self.config.default_implementation
        impl = self.config.implementation(impl_name)

        existing = self._registry.find(display_name)
        if existing is not None:
            logger.info("Attaching to running session %s", existing.identifier)
            if self._wire:
                self._wire.send_session_reuse(existing.identifier)
            return existing

        options = SessionOptions(
            env=repl_env_overrides(),
            cwd=self.config.cwd,
            line_terminator=impl.line_terminator,
            echoes_input=impl.echoes_input,
            read_only_prompt=impl.read_only_prompt,
            prompt=impl.prompt,
            scrubber=self._scrubber_for(impl_name, impl),
            buffer_max_chars=self.config.buffer_max_chars,
        )
        try:
            session = await self._registry.find_or_create(
                display_name, argv, options, launch_command=command
            )
        except SpawnError as e:
            logger.error("Failed to launch %r: %s", command, e)
            if self._wire:
                self._wire.send_error(str(e))
            raise

        if self._wire:
            self._wire.send_session_start(session.identifier, session.command)
        return session

    async def launch(
        self, implementation: str | None = None, name: str | None = None
    ) -> Session:
        """Run the configured launch command of an implementation."""
        impl = self.config.implementation(implementation)
        return await self.run(impl.command, name=name, implementation=implementation)

    def kill(self, session: Session) -> None:
        """Kill a session; other sessions are unaffected."""
        self._registry.kill(session)

    async def shutdown(self) -> None:
        """Kill every session."""
        await self._registry.cleanup()

    def _scrubber_for(self, name: str, impl: ImplementationConfig) -> OutputScrubber:
        scrubber = self._scrubbers.get(name)
        if scrubber is None:
            tokens = (
                impl.noise_tokens
                if impl.noise_tokens is not None
                else self.config.scrub.noise_tokens
            )
            scrubber = OutputScrubber(
                default_patterns(tokens, self.config.scrub.control_commands)
            )
            self._scrubbers[name] = scrubber
        return scrubber
