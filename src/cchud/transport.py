"""Read-only tail of the hook event transport.

The transport is normally a named pipe that hook scripts append JSON lines
to, but any append-only file works. The reader treats it as a channel that
may disappear and be recreated: read errors trigger a reconnect loop with
exponential backoff, and a transport that is still absent after a backoff
wait ends the session until the caller asks for a fresh open.

Reconnect state is held explicitly in ``ReconnectState`` so the loop can be
driven with a fake clock, waiter, existence check and opener.
"""

from __future__ import annotations

import logging
import os
import stat
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024

# Longest record kept; anything longer is dropped up to its newline
MAX_RECORD_BYTES = 1 << 20

# Bytes remembered before the read offset to spot a rewritten file
TAIL_CHECK_BYTES = 64

# Beyond this exponent the delay is always the cap
_MAX_BACKOFF_EXPONENT = 64


class TransportSignal(StrEnum):
    """Notifications emitted by the reader."""

    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    SESSION_ENDED = "session_ended"


class EndOfStream:
    """Sentinel returned by ``read_next`` when no more records will arrive."""

    _instance: EndOfStream | None = None

    def __new__(cls) -> EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = EndOfStream()


@dataclass
class ReconnectState:
    """Backoff bookkeeping for the reconnect loop."""

    attempts: int = 0
    next_deadline: float | None = None


def backoff_delay(attempts: int, base: float = 0.1, cap: float = 30.0) -> float:
    """Delay before reconnect attempt number ``attempts`` (0-based).

    Args:
        attempts: Failed attempts so far.
        base: Delay for the first attempt, in seconds.
        cap: Upper bound, in seconds.

    Returns:
        ``min(base * 2**attempts, cap)``.
    """
    if attempts >= _MAX_BACKOFF_EXPONENT:
        return cap
    return min(base * (2 ** max(attempts, 0)), cap)


def _open_nonblocking(path: Path) -> int:
    # O_NONBLOCK lets a pipe open without a writer present
    return os.open(path, os.O_RDONLY | os.O_NONBLOCK)


class TransportReader:
    """Tails newline-delimited records from a pipe or append-only file."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        poll_interval: float = 0.1,
        reconnect_base: float = 0.1,
        reconnect_cap: float = 30.0,
        max_record_bytes: int = MAX_RECORD_BYTES,
        exists: Callable[[Path], bool] | None = None,
        opener: Callable[[Path], int] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wait: Callable[[float], bool] | None = None,
        on_signal: Callable[[TransportSignal, ReconnectState], None] | None = None,
    ) -> None:
        """Create a reader; call ``open`` to start reading.

        Args:
            path: Transport path, may also be given to ``open``.
            poll_interval: Idle wait between reads when no data is available.
            reconnect_base: First reconnect delay in seconds.
            reconnect_cap: Maximum reconnect delay in seconds.
            max_record_bytes: Longest record returned; longer ones are
                logged and skipped.
            exists: Existence check, defaults to ``Path.exists``.
            opener: Returns a readable file descriptor for the path.
            clock: Monotonic clock used for reconnect deadlines.
            wait: Sleeps for the given seconds and returns True if interrupted
                by ``close``. Defaults to waiting on the close event.
            on_signal: Called with each TransportSignal and the reconnect state.
        """
        self.path = path
        self.poll_interval = poll_interval
        self.reconnect_base = reconnect_base
        self.reconnect_cap = reconnect_cap
        self.max_record_bytes = max_record_bytes
        self._exists = exists or (lambda p: p.exists())
        self._opener = opener or _open_nonblocking
        self._clock = clock
        self._closed = threading.Event()
        self._wait = wait or self._closed.wait
        self._on_signal = on_signal
        self._io_lock = threading.Lock()

        self._fd: int | None = None
        self._inode: int | None = None
        self._is_fifo = False
        self._offset = 0
        self._tail = b""
        self._buffer = bytearray()
        self._discarding = False
        self._ended = False
        self._state = ReconnectState()

    # -- public API ---------------------------------------------------------

    @property
    def closed(self) -> bool:
        """True once ``close`` has been called."""
        return self._closed.is_set()

    @property
    def ended(self) -> bool:
        """True when the transport was confirmed absent."""
        return self._ended

    @property
    def connected(self) -> bool:
        """True while a file descriptor is held."""
        return self._fd is not None

    @property
    def reconnect_state(self) -> ReconnectState:
        """Copy of the current backoff state."""
        return replace(self._state)

    def open(self, path: Path | None = None) -> TransportReader:
        """Open the transport for reading.

        An absent transport is not an error: the reader ends the session
        immediately and ``read_next`` returns END_OF_STREAM.

        Args:
            path: Transport path; defaults to the path given at construction.

        Returns:
            This reader, which serves as the handle.
        """
        if path is not None:
            self.path = path
        if self.path is None:
            raise ValueError("no transport path given")

        self._release()
        self._clear_buffer()
        self._ended = False
        self._state = ReconnectState()

        if not self._exists(self.path):
            logger.info("transport %s not present", self.path)
            self._end()
        elif not self._connect():
            logger.warning("transport %s exists but could not be opened; will retry", self.path)
        return self

    def reopen(self) -> TransportReader:
        """Open the same path again after the session ended."""
        return self.open()

    def read_next(self) -> str | EndOfStream:
        """Return the next non-empty record, suspending until one is available.

        Returns:
            The record text without its newline, or END_OF_STREAM when the
            reader is closed or the transport is gone.
        """
        while not self.closed:
            line = self._pop_line()
            if line is not None:
                if line.strip():
                    return line
                continue

            if self._ended:
                return END_OF_STREAM

            if self._fd is None:
                if not self._reconnect():
                    break
                continue

            try:
                got_data = self._fill()
            except OSError as e:
                logger.warning("transport read failed: %s", e)
                self._release()
                continue

            if got_data:
                continue

            if self.path is None or not self._exists(self.path):
                logger.info("transport %s disappeared", self.path)
                self._release()
                continue

            if self._check_replaced():
                continue
            if self._wait(self.poll_interval):
                break

        if self.closed:
            self._release()
        return END_OF_STREAM

    def wait_for_transport(self, interval: float) -> bool:
        """Block until the transport path exists again.

        Args:
            interval: Seconds between existence checks.

        Returns:
            True when the transport exists, False if the reader was closed.
        """
        while not self.closed:
            if self.path is not None and self._exists(self.path):
                return True
            if self._wait(interval):
                break
        return False

    def close(self) -> None:
        """Stop reading. Interrupts any reconnect or idle wait."""
        self._closed.set()
        self._release()

    def __iter__(self) -> Iterator[str]:
        while True:
            record = self.read_next()
            if isinstance(record, EndOfStream):
                return
            yield record

    def __enter__(self) -> TransportReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- internals ----------------------------------------------------------

    def _emit(self, signal: TransportSignal) -> None:
        if self._on_signal is not None:
            self._on_signal(signal, self.reconnect_state)

    def _end(self) -> None:
        self._ended = True
        self._state.next_deadline = None
        self._emit(TransportSignal.SESSION_ENDED)

    def _connect(self) -> bool:
        if self.path is None:
            return False
        try:
            fd = self._opener(self.path)
        except OSError as e:
            logger.debug("open %s failed: %s", self.path, e)
            return False
        try:
            info = os.fstat(fd)
        except OSError:
            os.close(fd)
            return False
        with self._io_lock:
            self._fd = fd
            self._inode = info.st_ino
            self._is_fifo = stat.S_ISFIFO(info.st_mode)
            self._offset = 0
            self._tail = b""
        return True

    def _release(self) -> None:
        with self._io_lock:
            if self._fd is not None:
                try:
                    os.close(self._fd)
                except OSError:
                    pass
            self._fd = None
            self._inode = None

    def _reconnect(self) -> bool:
        """Backoff until the transport reopens, ends, or the reader closes."""
        assert self.path is not None
        while not self.closed:
            delay = backoff_delay(self._state.attempts, self.reconnect_base, self.reconnect_cap)
            self._state.next_deadline = self._clock() + delay
            logger.info(
                "reconnect attempt %d to %s in %.2fs",
                self._state.attempts + 1,
                self.path,
                delay,
            )
            self._emit(TransportSignal.RECONNECTING)
            if self._wait(delay):
                return False

            if not self._exists(self.path):
                logger.warning("transport %s still absent after %.2fs; ending session", self.path, delay)
                self._end()
                return False

            if self._connect():
                logger.info("reconnected to %s after %d failed attempts", self.path, self._state.attempts)
                self._state = ReconnectState()
                self._emit(TransportSignal.RECONNECTED)
                return True

            self._state.attempts += 1
        return False

    def _fill(self) -> bool:
        with self._io_lock:
            if self._fd is None:
                return False
            if self._rewritten():
                logger.info("transport %s was truncated or rewritten; rewinding", self.path)
                os.lseek(self._fd, 0, os.SEEK_SET)
                self._offset = 0
                self._tail = b""
                self._clear_buffer()
            try:
                data = os.read(self._fd, READ_CHUNK)
            except BlockingIOError:
                return False
        if not data:
            return False
        self._offset += len(data)
        self._tail = (self._tail + data)[-TAIL_CHECK_BYTES:]
        self._append(data)
        return True

    def _rewritten(self) -> bool:
        """True when a regular file shrank below, or changed before, the read offset.

        Caller holds the I/O lock. A rewrite that leaves the bytes just before
        the offset unchanged is not detected.
        """
        if self._is_fifo or self._fd is None or not self._offset:
            return False
        if os.fstat(self._fd).st_size < self._offset:
            return True
        if not self._tail:
            return False
        return os.pread(self._fd, len(self._tail), self._offset - len(self._tail)) != self._tail

    def _append(self, data: bytes) -> None:
        if self._discarding:
            newline = data.find(b"\n")
            if newline < 0:
                return
            data = data[newline + 1 :]
            self._discarding = False
        self._buffer += data

        # Only the unterminated tail can keep growing
        start = self._buffer.rfind(b"\n") + 1
        if len(self._buffer) - start > self.max_record_bytes:
            logger.warning(
                "dropping record longer than %d bytes from %s",
                self.max_record_bytes,
                self.path,
            )
            del self._buffer[start:]
            self._discarding = True

    def _clear_buffer(self) -> None:
        self._buffer.clear()
        self._discarding = False

    def _pop_line(self) -> str | None:
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                return None
            line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            if len(line) <= self.max_record_bytes:
                return line.decode("utf-8", errors="replace").rstrip("\r")
            logger.warning(
                "dropping record longer than %d bytes from %s",
                self.max_record_bytes,
                self.path,
            )

    def _check_replaced(self) -> bool:
        """Reopen the transport when the path now names a different file.

        Returns:
            True when the handle was reopened or released.
        """
        assert self.path is not None
        try:
            info = os.stat(self.path)
        except OSError:
            self._release()
            return True

        if info.st_ino != self._inode:
            logger.info("transport %s was recreated; reopening", self.path)
            self._release()
            self._clear_buffer()
            if not self._connect():
                logger.warning("reopen of %s failed", self.path)
            return True
        return False
