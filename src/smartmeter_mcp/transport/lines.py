"""Line multiplexer: a reader thread feeding a bounded queue of text lines.

The reader thread is the only code that reads the stream. Lines are decoded
as latin-1 so that raw binary datagram payloads embedded in ``ERXUDP`` lines
survive the trip one byte per character.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import BinaryIO, Iterator

from ..errors import LinkClosed

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 4
ENCODING = "latin-1"
PUT_POLL_INTERVAL = 0.1

_CLOSED = object()


def _strip_terminator(raw: bytes) -> bytes:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw


class LineMultiplexer:
    """Publishes newline-delimited lines of a byte stream to a single consumer.

    Usage::

        lines = LineMultiplexer(port)
        lines.start()
        line = lines.get(timeout=10)   # raises queue.Empty / LinkClosed
    """

    def __init__(self, stream: BinaryIO, capacity: int = DEFAULT_CAPACITY) -> None:
        self._stream = stream
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._closed = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._reader, name="smartmeter-line-reader", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        """Stop the reader thread and close the underlying stream.

        Lines not yet consumed are discarded; later ``get`` calls raise
        :class:`LinkClosed`.
        """
        self._stop.set()
        self._closed = True
        try:
            self._stream.close()
        except OSError as e:
            logger.warning("Error closing stream: %s", e)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _publish(self, item: object) -> bool:
        """Queue ``item``, waiting for room until :meth:`close` is called."""
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=PUT_POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _reader(self) -> None:
        pending = b""
        try:
            while not self._stop.is_set():
                raw = self._stream.readline()
                if not raw:
                    break
                if not raw.endswith(b"\n"):
                    # readline() returned early (read timeout); keep collecting
                    pending += raw
                    continue
                line = _strip_terminator(pending + raw)
                pending = b""
                if not self._publish(line.decode(ENCODING)):
                    break
        except Exception as e:
            logger.debug("Reader thread stopped: %s", e)
        finally:
            if pending:
                self._publish(_strip_terminator(pending).decode(ENCODING))
            if not self._publish(_CLOSED):
                # closed: nobody reads the remaining lines
                while True:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        break
                self._queue.put_nowait(_CLOSED)
            logger.debug("Line reader terminated")

    def get(self, timeout: float | None = None) -> str:
        """Return the next line.

        Raises:
            queue.Empty: No line within ``timeout`` seconds.
            LinkClosed: The stream has ended and every buffered line was consumed.
        """
        if self._closed:
            raise LinkClosed("Serial link closed")
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._closed = True
            raise LinkClosed("Serial link closed")
        return item

    def __iter__(self) -> Iterator[str]:
        while True:
            try:
                yield self.get()
            except LinkClosed:
                return
