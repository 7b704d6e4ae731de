"""Command/response driver for SK commands.

One command is outstanding at a time. The driver writes a command line and
collects every line the module prints until the ``OK`` terminator, a
``FAIL`` line, or an idle gap longer than the timeout.
"""

from __future__ import annotations

import logging
import queue
import sys
import time
from typing import BinaryIO, Callable, TextIO

from ..errors import CommandRejected, CommandTimeout, LinkClosed
from ..protocol.commands import is_link_local_command
from ..utils.deadline import Deadline, DeadlineExpired, LineSource, wait_line

logger = logging.getLogger(__name__)

IDLE_TIMEOUT = 10.0
TERMINATOR = b"\r\n"
OK = "OK"
FAIL_PREFIX = "FAIL "
ENCODING = "latin-1"


class CommandDriver:
    """Issues SK commands over a line source and a writable stream.

    Args:
        lines: Source of received lines (a :class:`LineMultiplexer`).
        writer: Binary stream with ``write`` and ``flush``.
        debug: Echo every command and received line to ``echo``.
        echo: Text sink for the debug echo; defaults to ``sys.stderr``
            because stdout carries the MCP stdio transport.
        idle_timeout: Longest gap between two reply lines.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        lines: LineSource,
        writer: BinaryIO,
        debug: bool = False,
        echo: TextIO | None = None,
        idle_timeout: float = IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lines = lines
        self._writer = writer
        self.debug = debug
        self._echo = echo
        self.idle_timeout = idle_timeout
        self.clock = clock

    def deadline(self, seconds: float, name: str = "") -> Deadline:
        """Create a deadline on the driver's clock."""
        return Deadline(seconds, name=name, clock=self.clock)

    def _print(self, text: str) -> None:
        if self.debug:
            print(text, file=self._echo or sys.stderr, flush=True)

    def write_command(self, command: str, payload: bytes | None = None) -> None:
        """Write one command line; ``payload`` is appended raw after a space."""
        if payload is None:
            self._print(command)
            data = command.encode(ENCODING) + TERMINATOR
        else:
            self._print(f"{command} {payload.hex()}")
            data = command.encode(ENCODING) + b" " + payload + TERMINATOR
        try:
            self._writer.write(data)
            self._writer.flush()
        except OSError as e:
            raise LinkClosed(f"SK command write error: {e}") from e

    def next_line(self, *deadlines: Deadline) -> str:
        """Wait for the next line of any kind.

        Raises:
            DeadlineExpired: The earliest deadline ran out first.
            LinkClosed: The line queue closed.
        """
        line = wait_line(self.lines, *deadlines)
        self._print(line)
        return line

    def drain(self) -> int:
        """Discard lines already queued, e.g. left over from an abandoned exchange.

        Returns:
            The number of discarded lines.

        Raises:
            LinkClosed: The line queue closed.
        """
        discarded = 0
        while True:
            try:
                line = self.lines.get(timeout=0)
            except queue.Empty:
                return discarded
            logger.debug("Discarding stale line: %r", line)
            discarded += 1

    def send(self, command: str, payload: bytes | None = None) -> str:
        """Send a command and return the lines printed before ``OK``.

        ``SKLL64`` never prints ``OK``; its first reply line is the result.

        Returns:
            The reply lines joined with newlines (possibly empty).

        Raises:
            CommandRejected: The module printed a ``FAIL`` line.
            CommandTimeout: No line arrived within the idle timeout.
            LinkClosed: The serial link ended.
        """
        self.write_command(command, payload)

        single_line = is_link_local_command(command)
        idle = self.deadline(self.idle_timeout, "command")
        received: list[str] = []
        while True:
            try:
                line = self.next_line(idle)
            except DeadlineExpired:
                raise CommandTimeout(
                    f"SK command timeout ({self.idle_timeout:g}sec): {command.split()[0]}"
                ) from None
            if line.startswith(FAIL_PREFIX):
                raise CommandRejected(line)
            if line == OK:
                return "\n".join(received)
            received.append(line)
            if single_line:
                return "\n".join(received)
            idle.reset()
