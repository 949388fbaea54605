"""Session output buffer: scrubbed transcript plus raw output."""

from __future__ import annotations

import asyncio
import threading

from replmux.text.scrub import OutputScrubber

DEFAULT_MAX_CHARS = 1_000_000


class OutputBuffer:
    """Thread-safe transcript of one REPL session.

    Keeps two tracks:

    * **visible** (``_text``): scrubbed process output interleaved with the
      input sent to non-echoing processes. This is what prompts and input
      units are read from.
    * **raw** (``_raw``): process output exactly as received.

    Scrubbing only ever looks at the window from ``last_output_start`` to the
    end of the text. After each append the marker moves to the start of the
    last unterminated line, since no pattern spans a line break. Everything
    before it is final.

    ``poll()`` hands out visible output since the previous poll, minus echoed
    input, and holds back a trailing fragment that could still become a
    pattern match once more output arrives.

    An ``asyncio.Event`` is set whenever new data arrives, allowing
    consumers to ``await`` instead of polling.  Call ``attach_loop()``
    once from the asyncio thread to enable this.
    """

    def __init__(
        self,
        scrubber: OutputScrubber | None = None,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._scrubber = scrubber or OutputScrubber()
        self._max_chars = max_chars
        self._text = ""
        self._raw = ""
        self._scan_start = 0  # last-output-start marker
        self._read_pos = 0  # poll cursor
        self._inputs: list[tuple[int, int]] = []  # echoed input not yet polled
        self._finished = False
        self._total_chars = 0  # Total output chars ever received
        self._lock = threading.Lock()
        # Event-based notification (set after attach_loop)
        self._data_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach an asyncio event loop so append() can signal waiters.

        Must be called from the asyncio thread (or pass an explicit loop).
        After this, ``wait_for_data()`` becomes usable.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._data_event = asyncio.Event()

    @property
    def scrubber(self) -> OutputScrubber:
        return self._scrubber

    def append(self, chunk: str) -> None:
        """Append process output and scrub the open window in place."""
        if not chunk:
            return
        with self._lock:
            self._raw = (self._raw + chunk)[-self._max_chars :]
            self._total_chars += len(chunk)
            text, (read_pos,) = self._scrubber.scrub_tracking(
                self._text + chunk, self._scan_start, (self._read_pos,)
            )
            self._text = text
            self._read_pos = read_pos
            self._scan_start = max(self._scan_start, text.rfind("\n") + 1)
            self._trim()
        self._notify()

    def insert_input(self, text: str) -> None:
        """Record input sent to a process that does not echo it.

        The input becomes part of the transcript but is skipped by ``poll()``.
        It closes the scrubbing window, which also releases any held-back
        fragment before it.
        """
        if not text:
            return
        with self._lock:
            start = len(self._text)
            self._text += text
            self._inputs.append((start, len(self._text)))
            self._scan_start = len(self._text)
            self._trim()
        self._notify()

    def poll(self) -> str:
        """Return visible output that arrived since the previous poll."""
        with self._lock:
            if self._finished:
                end = len(self._text)
            else:
                end = self._scrubber.pending_start(self._text, self._scan_start)
            end = max(end, self._read_pos)

            pieces = []
            pos = self._read_pos
            remaining = []
            for begin, stop in self._inputs:
                if stop <= pos:
                    continue
                if begin >= end:
                    remaining.append((begin, stop))
                    continue
                pieces.append(self._text[pos:begin])
                pos = max(pos, stop)
            pieces.append(self._text[pos:end] if pos < end else "")
            self._inputs = remaining
            self._read_pos = max(pos, end)
            return "".join(pieces)

    @property
    def has_pending(self) -> bool:
        """Whether anything after the poll cursor is still undelivered."""
        with self._lock:
            return self._read_pos < len(self._text)

    def finish(self) -> None:
        """Mark the output as complete; held-back fragments become final."""
        with self._lock:
            self._finished = True
            self._scan_start = len(self._text)
        self._notify()

    def discard_pending(self) -> None:
        """Drop everything not yet polled."""
        with self._lock:
            self._read_pos = len(self._text)
            self._inputs.clear()

    def _trim(self) -> None:
        # Caller holds the lock.
        excess = len(self._text) - self._max_chars
        if excess <= 0:
            return
        newline = self._text.find("\n", excess)
        cut = newline + 1 if newline != -1 else excess
        self._text = self._text[cut:]
        self._scan_start = max(0, self._scan_start - cut)
        self._read_pos = max(0, self._read_pos - cut)
        self._inputs = [
            (max(0, begin - cut), stop - cut)
            for begin, stop in self._inputs
            if stop > cut
        ]

    def _notify(self) -> None:
        # Signal waiters (thread-safe)
        if self._data_event is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._data_event.set)

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new data is appended (or timeout).

        Returns True if data arrived, False on timeout.
        Resets the event so the next call blocks again.
        """
        if self._data_event is None:
            # Fallback: no loop attached, just sleep briefly
            await asyncio.sleep(0.05)
            return True
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
            self._data_event.clear()
            return True
        except asyncio.TimeoutError:
            return False

    def read_all(self) -> str:
        """Read the whole visible transcript."""
        with self._lock:
            return self._text

    def read_all_raw(self) -> str:
        """Read all buffered raw output (control sequences preserved)."""
        with self._lock:
            return self._raw

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N lines of the visible transcript."""
        with self._lock:
            lines = self._text.split("\n")
        return lines[-n:] if len(lines) > n else lines

    @property
    def last_output_start(self) -> int:
        """Start of the region still open to scrubbing."""
        with self._lock:
            return self._scan_start

    @property
    def line_count(self) -> int:
        """Current number of lines in the visible transcript."""
        with self._lock:
            return self._text.count("\n") + (1 if self._text else 0)

    @property
    def total_chars(self) -> int:
        """Total number of output characters ever received."""
        with self._lock:
            return self._total_chars

    def __len__(self) -> int:
        with self._lock:
            return len(self._text)
