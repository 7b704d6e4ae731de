"""Shared fixtures: a scripted Wi-SUN module running on a fake clock."""

from __future__ import annotations

import queue
from collections import deque
from dataclasses import dataclass

import pytest

from smartmeter_mcp.errors import LinkClosed
from smartmeter_mcp.protocol.framing import (
    ClassCode,
    Frame,
    Property,
    ServiceCode,
    decode_frame,
    encode_frame,
)
from smartmeter_mcp.session.driver import CommandDriver

METER_ADDR = "FE80:0000:0000:0000:021C:6400:030C:12A4"
MODULE_ADDR = "FE80:0000:0000:0000:021D:1290:1234:5678"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Delay:
    """A gap of ``seconds`` before the next scripted line."""

    seconds: float


class FakeModem:
    """Writable stream plus line source that answers commands from a script.

    ``reply(prefix, *items)`` queues ``items`` (lines or :class:`Delay`)
    to be emitted once a command starting with ``prefix`` is written.
    Waiting on an empty script advances the clock by the full timeout.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.written: list[bytes] = []
        self.closed = False
        self._pending: deque = deque()
        self._replies: list[tuple[str, list, bool]] = []

    def reply(self, prefix: str, *items, repeat: bool = False) -> None:
        self._replies.append((prefix, list(items), repeat))

    def feed(self, *items) -> None:
        self._pending.extend(_copy(items))

    @property
    def commands(self) -> list[str]:
        return [data.decode("latin-1")[:-2] for data in self.written]

    def write(self, data: bytes) -> int:
        self.written.append(bytes(data))
        text = data.decode("latin-1")
        for i, (prefix, items, repeat) in enumerate(self._replies):
            if text.startswith(prefix):
                self._pending.extend(_copy(items))
                if not repeat:
                    del self._replies[i]
                break
        return len(data)

    def flush(self) -> None:
        pass

    def get(self, timeout: float | None = None) -> str:
        while self._pending:
            item = self._pending[0]
            if isinstance(item, Delay):
                if timeout is not None and item.seconds > timeout:
                    self.clock.advance(timeout)
                    item.seconds -= timeout
                    raise queue.Empty
                self.clock.advance(item.seconds)
                self._pending.popleft()
                continue
            return self._pending.popleft()
        if self.closed:
            raise LinkClosed("Serial link closed")
        if timeout is None:
            raise AssertionError("get() without timeout on an empty script")
        self.clock.advance(timeout)
        raise queue.Empty


def _copy(items):
    return [Delay(i.seconds) if isinstance(i, Delay) else i for i in items]


class SequenceRng:
    """Random source returning predetermined values from ``randrange``."""

    def __init__(self, *values: int) -> None:
        self._values = iter(values)

    def randrange(self, stop: int) -> int:
        value = next(self._values)
        assert 0 <= value < stop
        return value


def sent_status(status: int) -> str:
    return f"EVENT 21 {METER_ADDR} {status:02X}"


def erxudp(payload: bytes) -> str:
    """An ERXUDP notification carrying ``payload`` as hex ASCII."""
    return (
        f"ERXUDP {METER_ADDR} {MODULE_ADDR} 0E1A 0E1A 001C6400030C12A4 1 "
        f"{len(payload):04X} {payload.hex().upper()}"
    )


def meter_response(tid: int, *properties: Property) -> bytes:
    return encode_frame(
        Frame(
            transaction_id=tid,
            source=ClassCode.SMART_ELECTRIC_METER,
            destination=ClassCode.CONTROLLER,
            service=ServiceCode.GET_RES,
            properties=list(properties),
        )
    )


def sent_frames(modem: FakeModem, dual_stack: bool = False) -> list[Frame]:
    """Decode the frames carried by every SKSENDTO written so far."""
    n_header = 7 if dual_stack else 6
    frames = []
    for data in modem.written:
        if data.startswith(b"SKSENDTO "):
            frames.append(decode_frame(data.split(b" ", n_header)[n_header][:-2]))
    return frames


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def modem(clock: FakeClock) -> FakeModem:
    return FakeModem(clock)


@pytest.fixture
def driver(modem: FakeModem, clock: FakeClock) -> CommandDriver:
    return CommandDriver(modem, modem, clock=clock)
