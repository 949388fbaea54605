"""CLI entry point for replmux."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from replmux.config import ReplmuxConfig
from replmux.errors import NoPromptFound, NotRunning, ReplmuxError
from replmux.text.unit import DEFAULT_PROMPT, extract_current_unit

app = typer.Typer(
    name="replmux",
    help="Run interactive REPLs behind pipes with scrubbed output.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


@app.command()
def run(
    command: str | None = typer.Argument(
        None, help="Launch command (default: the implementation's command)."
    ),
    name: str | None = typer.Option(
        None, "--name", "-n", help="Session name (default: from config)."
    ),
    implementation: str | None = typer.Option(
        None, "--impl", "-i", help="REPL implementation (default: from config)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Start a REPL and connect this terminal to it."""
    setup_logging(verbose)
    config = ReplmuxConfig.load(config_file)

    try:
        impl = config.implementation(implementation)
    except KeyError as e:
        typer.echo(f"Error: {e.args[0]}", err=True)
        raise typer.Exit(1)

    try:
        exit_code = asyncio.run(
            _run_session(config, command or impl.command, name, implementation)
        )
    except ReplmuxError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    raise typer.Exit(exit_code)


async def _run_session(
    config: ReplmuxConfig,
    command: str,
    name: str | None,
    implementation: str | None,
) -> int:
    """Drive one session: stdin lines in, scrubbed output out."""
    from replmux.controller import SessionController
    from replmux.session.wire import EventType, Wire

    wire = Wire()
    controller = SessionController(config, wire=wire)
    session = await controller.run(command, name=name, implementation=implementation)
    logger.info("Connected to %s", session.identifier)

    async def _pump_output() -> None:
        while True:
            await session.buffer.wait_for_data(timeout=0.5)
            try:
                output = session.poll_output()
            except NotRunning:
                return
            if output:
                sys.stdout.write(output)
                sys.stdout.flush()

    async def _pump_input() -> None:
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str] = asyncio.Queue()

        # Daemon thread so a blocked readline never holds up shutdown
        def _read_stdin() -> None:
            for line in iter(sys.stdin.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, "")

        threading.Thread(target=_read_stdin, daemon=True).start()
        while session.alive:
            line = await lines.get()
            if not line:
                controller.kill(session)
                return
            try:
                session.send_input(line.rstrip("\n"))
            except NotRunning:
                return

    async def _consume_wire() -> None:
        queue = wire.subscribe()
        while True:
            event = await queue.get()
            if event is None:
                break
            d = event.data
            if event.type == EventType.SESSION_EXIT:
                typer.echo(
                    f"\n[{d['session']} exited with code {d['exit_code']}]", err=True
                )
            elif event.type == EventType.ERROR:
                typer.echo(f"Error: {d['error']}", err=True)

    wire_task = asyncio.create_task(_consume_wire())
    input_task = asyncio.create_task(_pump_input())
    try:
        await _pump_output()
    finally:
        input_task.cancel()
        await controller.shutdown()
        wire.close()
        await wire_task

    code = session.process.exit_code
    return code if code is not None and code >= 0 else 0


@app.command()
def implementations(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """List configured REPL implementations."""
    config = ReplmuxConfig.load(config_file)

    table = Table(title="REPL implementations")
    table.add_column("Name")
    table.add_column("Command")
    table.add_column("Prompt")
    table.add_column("Echoes input")
    for key, impl in config.implementations.items():
        marker = " (default)" if key == config.default_implementation else ""
        table.add_row(
            f"{key}{marker}",
            impl.command,
            impl.prompt,
            "yes" if impl.echoes_input else "no",
        )
    Console().print(table)


@app.command()
def unit(
    transcript: Path = typer.Argument(help="Saved session transcript."),
    cursor: int | None = typer.Option(
        None, "--cursor", help="Reference position (default: end of file)."
    ),
    prompt: str = typer.Option(DEFAULT_PROMPT, "--prompt", "-p", help="Prompt regex."),
) -> None:
    """Print the input unit at the cursor of a saved transcript."""
    if not transcript.is_file():
        typer.echo(f"Error: Transcript not found: {transcript}", err=True)
        raise typer.Exit(1)

    text = transcript.read_text(encoding="utf-8", errors="replace")
    try:
        typer.echo(extract_current_unit(text, cursor, prompt))
    except NoPromptFound as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)
    except ReplmuxError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
