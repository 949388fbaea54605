"""Configuration: pydantic models for replmux settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from replmux.text.scrub import CONTROL_COMMANDS, NOISE_TOKENS
from replmux.text.unit import DEFAULT_PROMPT

DEFAULT_NAME = "Coffee"


class ImplementationConfig(BaseModel):
    """How to launch and talk to one REPL implementation."""

    command: str = Field(
        default="coffee -i", description="Launch command, split like a POSIX shell"
    )
    prompt: str = Field(
        default=DEFAULT_PROMPT,
        description="Prompt regex, matched at the start of a line",
    )
    echoes_input: bool = Field(
        default=False,
        description="The REPL echoes input back itself, so it is not inserted into the transcript",
    )
    line_terminator: str = Field(default="\n")
    noise_tokens: list[str] | None = Field(
        default=None,
        description="Overrides the global noise tokens for this implementation",
    )
    read_only_prompt: bool = Field(default=True)


class ScrubConfig(BaseModel):
    """Patterns deleted from every session's output."""

    control_commands: str = Field(
        default=CONTROL_COMMANDS,
        description="Final letters of the ESC[<n><letter> sequences to strip",
    )
    noise_tokens: list[str] = Field(default_factory=lambda: list(NOISE_TOKENS))


class ReplmuxConfig(BaseModel):
    """Top-level replmux configuration."""

    implementations: dict[str, ImplementationConfig] = Field(
        default_factory=lambda: {"coffee": ImplementationConfig()}
    )
    default_implementation: str = Field(default="coffee")
    default_name: str = Field(
        default=DEFAULT_NAME, description="Session name used when none is given"
    )
    scrub: ScrubConfig = Field(default_factory=ScrubConfig)
    buffer_max_chars: int = Field(
        default=1_000_000, description="Transcript size kept per session"
    )
    cwd: str | None = Field(default=None, description="Working directory for REPLs")

    def implementation(self, name: str | None = None) -> ImplementationConfig:
        """Resolve an implementation by name (default implementation if None).

        Raises:
            KeyError: No implementation with that name is configured.
        """
        key = name or self.default_implementation
        try:
            return self.implementations[key]
        except KeyError:
            raise KeyError(f"Unknown REPL implementation: {key}") from None

    @classmethod
    def load(cls, config_path: str | None = None) -> ReplmuxConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            REPLMUX_IMPLEMENTATION     - Default implementation name
            REPLMUX_NAME               - Default session name
            REPLMUX_BUFFER_MAX_CHARS   - Transcript size kept per session
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_impl = os.environ.get("REPLMUX_IMPLEMENTATION")
        if env_impl:
            config_data["default_implementation"] = env_impl

        env_name = os.environ.get("REPLMUX_NAME")
        if env_name:
            config_data["default_name"] = env_name

        env_max_chars = os.environ.get("REPLMUX_BUFFER_MAX_CHARS")
        if env_max_chars:
            config_data["buffer_max_chars"] = int(env_max_chars)

        return cls.model_validate(config_data)
