"""Deadlines and the single wait primitive used by every timeout in the session layer.

A :class:`Deadline` is a restartable timer measured against an injectable
monotonic clock. :func:`wait_line` races any number of deadlines against the
next line of a line source, so that nested timeouts (per attempt and total)
compose without separate timer threads.
"""

from __future__ import annotations

import queue
import time
from typing import Callable, Protocol


class LineSource(Protocol):
    def get(self, timeout: float | None = None) -> str: ...


class DeadlineExpired(Exception):
    """Raised by :func:`wait_line` with the deadline that ran out."""

    def __init__(self, deadline: "Deadline") -> None:
        super().__init__(f"{deadline.name} deadline expired ({deadline.seconds:g}sec)")
        self.deadline = deadline


class Deadline:
    """A timer that expires ``seconds`` after it was last (re)started."""

    def __init__(
        self,
        seconds: float,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.seconds = seconds
        self.name = name or "idle"
        self._clock = clock
        self._expires_at = clock() + seconds

    def reset(self) -> None:
        self._expires_at = self._clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def __repr__(self) -> str:
        return f"Deadline(name={self.name!r}, remaining={self.remaining():.3f})"


def wait_line(lines: LineSource, *deadlines: Deadline) -> str:
    """Return the next line, or raise once the earliest deadline expires.

    Raises:
        DeadlineExpired: Carrying the first expired deadline (in argument
            order when several expire together).
        LinkClosed: Propagated from the line source.
    """
    if not deadlines:
        raise ValueError("wait_line needs at least one deadline")
    while True:
        for deadline in deadlines:
            if deadline.expired:
                raise DeadlineExpired(deadline)
        timeout = min(deadline.remaining() for deadline in deadlines)
        try:
            return lines.get(timeout=timeout)
        except queue.Empty:
            continue
