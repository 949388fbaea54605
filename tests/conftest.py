"""Shared fixtures: a tiny line-based REPL run with the current interpreter."""

from __future__ import annotations

import asyncio
import shlex
import sys

import pytest

from replmux.config import ImplementationConfig, ReplmuxConfig
from replmux.controller import SessionController

# Prints "> ", reads a line, answers "=<line>", repeats until EOF or "quit".
ECHO_REPL = """\
import sys
while True:
    sys.stdout.write("> ")
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line or line.strip() == "quit":
        break
    sys.stdout.write("=" + line)
    sys.stdout.flush()
"""


def python_argv(source: str) -> list[str]:
    return [sys.executable, "-u", "-c", source]


def python_command(source: str) -> str:
    return shlex.join(python_argv(source))


async def read_until(session, needle: str, timeout: float = 10.0) -> str:
    """Accumulate polled output until ``needle`` shows up."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    collected = ""
    while needle not in collected:
        collected += session.poll_output()
        if needle in collected:
            break
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise AssertionError(f"{needle!r} not seen, got {collected!r}")
        await session.buffer.wait_for_data(timeout=min(remaining, 0.2))
    return collected


@pytest.fixture
def repl_config() -> ReplmuxConfig:
    return ReplmuxConfig(
        implementations={"echo": ImplementationConfig(command=python_command(ECHO_REPL))},
        default_implementation="echo",
    )


@pytest.fixture
async def controller(repl_config: ReplmuxConfig):
    ctl = SessionController(repl_config)
    yield ctl
    await ctl.shutdown()
