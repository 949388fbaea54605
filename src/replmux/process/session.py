"""Session process: one REPL subprocess with piped, scrubbed I/O."""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import os
import shutil
import signal
import subprocess
import uuid
from dataclasses import dataclass, field
from typing import Callable

from replmux.errors import NotRunning, SpawnError
from replmux.process.buffer import OutputBuffer

logger = logging.getLogger(__name__)

DISABLED_PAGER = "cat"
NO_READLINE_FLAG = "NODE_NO_READLINE"


class SessionStatus(enum.Enum):
    """Lifecycle states for a session process."""

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"  # Process exited on its own
    KILLED = "killed"  # Killed by us (SIGKILL)


def repl_env_overrides() -> dict[str, str]:
    """Environment overrides every REPL child gets: no pager, no readline."""
    return {
        "PAGER": DISABLED_PAGER,
        NO_READLINE_FLAG: "1",
        "TERM": "dumb",
    }


def child_environment(overrides: dict[str, str]) -> dict[str, str]:
    """Build the child's environment without touching ``os.environ``."""
    env = {**os.environ, **overrides}
    env.pop("PROMPT_COMMAND", None)
    return env


@dataclass
class SessionProcess:
    """A REPL subprocess connected through pipes.

    stdin is a pipe we write input to; stdout and stderr are merged into a
    single pipe read by an asyncio task, decoded, and appended to ``buffer``
    where it is scrubbed. The child runs in its own process group so the
    whole tree can be killed.

    Lifecycle: ``STARTING -> RUNNING -> EXITED | KILLED``.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    command: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    line_terminator: str = "\n"
    echoes_input: bool = False

    # Internal state
    buffer: OutputBuffer = field(default_factory=OutputBuffer)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pid: int = field(default=0, init=False)
    _pgid: int = field(default=0, init=False)
    _reader_task: asyncio.Task | None = field(default=None, init=False)
    _status: SessionStatus = field(default=SessionStatus.STARTING, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _on_exit: Callable[[SessionProcess, int | None], None] | None = field(
        default=None, init=False
    )

    @classmethod
    async def spawn(
        cls,
        command: list[str],
        env_overrides: dict[str, str] | None = None,
        **kwargs,
    ) -> SessionProcess:
        """Create and start a session process.

        Raises:
            SpawnError: The executable cannot be located or process creation fails.
        """
        process = cls(command=list(command), env=dict(env_overrides or {}), **kwargs)
        await process.start()
        return process

    def set_on_exit(
        self, callback: Callable[[SessionProcess, int | None], None]
    ) -> None:
        """Set a callback to be invoked when the process exits on its own.

        The callback receives (process, exit_code). It is called from the
        reader task, NOT when the process is killed via kill().
        """
        self._on_exit = callback

    async def start(self) -> None:
        """Spawn the process in its own process group."""
        if not self.command:
            raise SpawnError("Empty command")
        executable = self.command[0]
        if shutil.which(executable, path=self.env.get("PATH")) is None:
            raise SpawnError(f"Executable not found: {executable}")

        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,  # Creates new process group
                env=child_environment(self.env),
                cwd=self.cwd,
            )
        except OSError as e:
            raise SpawnError(f"Could not start {executable}: {e}") from e

        self._pid = self._proc.pid
        self._pgid = os.getpgid(self._pid)
        self._status = SessionStatus.RUNNING

        self.buffer.attach_loop(asyncio.get_running_loop())
        self._reader_task = asyncio.create_task(self._read_loop())

        logger.info(
            "Session process %s started: pid=%d pgid=%d cmd=%s",
            self.id,
            self._pid,
            self._pgid,
            " ".join(self.command),
        )

    async def _read_loop(self) -> None:
        """Continuously read merged stdout/stderr from the child."""
        assert self._proc is not None and self._proc.stdout is not None
        loop = asyncio.get_running_loop()
        fd = self._proc.stdout.fileno()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while self._status == SessionStatus.RUNNING:
                try:
                    data = await loop.run_in_executor(None, os.read, fd, 4096)
                except OSError:
                    break

                # kill() may have run while the read was blocked
                if not data or self._status != SessionStatus.RUNNING:
                    break

                self.buffer.append(decoder.decode(data))
        except Exception as e:
            logger.debug("Reader for session %s ended: %s", self.id, e)
        finally:
            if self._status == SessionStatus.RUNNING:
                self.buffer.append(decoder.decode(b"", final=True))
                await self._mark_exited(loop)
            self._proc.stdout.close()

    async def _mark_exited(self, loop: asyncio.AbstractEventLoop) -> None:
        assert self._proc is not None
        exit_code = await loop.run_in_executor(None, self._proc.wait)
        # kill() may have won the race while we waited
        if self._status != SessionStatus.RUNNING:
            return
        self._exit_code = exit_code
        self._status = SessionStatus.EXITED
        self.buffer.finish()
        if self._proc.stdin is not None:
            try:
                self._proc.stdin.close()
            except OSError:
                pass
        logger.info("Session process %s exited (code=%s)", self.id, exit_code)
        if self._on_exit:
            try:
                self._on_exit(self, exit_code)
            except Exception:
                logger.exception("Error in on_exit callback for session %s", self.id)

    def send_input(self, text: str) -> None:
        """Write ``text`` plus the line terminator to the child's stdin.

        Raises:
            NotRunning: The process is not in the RUNNING state, or its
                stdin has already been closed.
        """
        if self._status != SessionStatus.RUNNING or self._proc is None:
            raise NotRunning(self.id, self._status.value)

        data = text + self.line_terminator
        try:
            assert self._proc.stdin is not None
            self._proc.stdin.write(data.encode("utf-8"))
            self._proc.stdin.flush()
        except (BrokenPipeError, ValueError) as e:
            raise NotRunning(self.id, self._status.value) from e

        if not self.echoes_input:
            self.buffer.insert_input(data)

    def poll_output(self) -> str:
        """Return scrubbed output that arrived since the last poll.

        After a normal exit the remaining output is still handed out; once it
        is drained, further polls raise.

        Raises:
            NotRunning: The process was killed, never started, or has exited
                and nothing is left to read.
        """
        if self._status in (SessionStatus.STARTING, SessionStatus.KILLED):
            raise NotRunning(self.id, self._status.value)
        output = self.buffer.poll()
        if not output and self._status == SessionStatus.EXITED:
            raise NotRunning(self.id, self._status.value)
        return output

    def kill(self) -> None:
        """Kill the entire process tree and discard unread output."""
        if self._status != SessionStatus.RUNNING:
            return

        self._status = SessionStatus.KILLED
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.info("Killed session process %s (pgid=%d)", self.id, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing session process %s: %s", self.id, e)

        # Wait for process to be reaped (avoids zombies)
        if self._proc is not None:
            try:
                self._exit_code = self._proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning("Session process %s was not reaped", self.id)
            if self._proc.stdin is not None:
                try:
                    self._proc.stdin.close()
                except OSError:
                    pass

        self.buffer.discard_pending()

    @property
    def alive(self) -> bool:
        return self._status == SessionStatus.RUNNING

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def pid(self) -> int:
        return self._pid

    async def wait_for_exit(self, timeout: float = 10.0) -> int | None:
        """Wait for the process to stop. Returns exit code or None on timeout."""
        if self._proc is None:
            return None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self._status in (SessionStatus.EXITED, SessionStatus.KILLED):
                return self._exit_code
            await asyncio.sleep(0.05)
        return None

    def __del__(self) -> None:
        """Ensure cleanup on garbage collection."""
        if self._status == SessionStatus.RUNNING:
            self.kill()
