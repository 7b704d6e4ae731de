"""Parsing of asynchronous lines printed by the Wi-SUN module."""

from __future__ import annotations

import binascii
from dataclasses import dataclass, field
from enum import IntEnum

from ..errors import DatagramFormatError

EVENT_PREFIX = "EVENT "
DATAGRAM_PREFIX = "ERXUDP "

# ERXUDP SENDER DEST RPORT LPORT SENDERLLA [RSSI] SECURED [SIDE] DATALEN DATA
_DATAGRAM_TOKENS = 9
_DATAGRAM_TOKENS_DUAL_STACK = 10


class EventCode(IntEnum):
    """``EVENT`` numbers (printed in hex by the module)."""

    UDP_SENT = 0x21
    PANA_FAILED = 0x24
    PANA_COMPLETE = 0x25


class SendStatus(IntEnum):
    """Last parameter of ``EVENT 21``."""

    SUCCESS = 0x00
    FAILURE = 0x01
    NEIGHBOR_SOLICITATION = 0x02


@dataclass
class Event:
    """A parsed ``EVENT`` line."""

    code: int
    sender: str
    params: list[str] = field(default_factory=list)


@dataclass
class Datagram:
    """A parsed ``ERXUDP`` notification."""

    sender: str
    destination: str
    remote_port: int
    local_port: int
    payload: bytes

    def __repr__(self) -> str:
        return (
            f"Datagram(sender={self.sender}, rport=0x{self.remote_port:04X}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def parse_event(line: str) -> Event | None:
    """Parse an ``EVENT`` line, or return None for any other line."""
    if not line.startswith(EVENT_PREFIX):
        return None
    tokens = line.split()
    if len(tokens) < 3:
        return None
    try:
        code = int(tokens[1], 16)
    except ValueError:
        return None
    return Event(code=code, sender=tokens[2], params=tokens[3:])


def is_event(line: str, code: EventCode) -> bool:
    event = parse_event(line)
    return event is not None and event.code == code


def parse_send_status(reply: str) -> int | None:
    """Extract the transmission status from an ``SKSENDTO`` reply.

    Returns:
        The status byte of the ``EVENT 21`` line, or None if the reply
        carries no such line.
    """
    for line in reply.splitlines():
        event = parse_event(line)
        if event is None or event.code != EventCode.UDP_SENT or not event.params:
            continue
        try:
            return int(event.params[-1], 16)
        except ValueError:
            return None
    return None


def parse_datagram(line: str, dual_stack: bool = False) -> Datagram:
    """Parse an ``ERXUDP`` line into a Datagram.

    The payload is either raw binary (WOPT 0) or hex ASCII (WOPT 1); the
    declared length decides which. When the module also prints an RSSI
    field the tokens shift by one, in which case the trailing token is split
    once more to find the real length and data.

    Raises:
        DatagramFormatError: On a malformed line.
    """
    if not line.startswith(DATAGRAM_PREFIX):
        raise DatagramFormatError(f"Not an ERXUDP line: {line}")
    n_tokens = _DATAGRAM_TOKENS_DUAL_STACK if dual_stack else _DATAGRAM_TOKENS
    tokens = line.split(" ", n_tokens - 1)
    if len(tokens) < n_tokens:
        raise DatagramFormatError(f"Unknown ERXUDP format: {line}")

    length = _parse_hex(tokens[n_tokens - 2], line)
    data = tokens[n_tokens - 1]
    if len(data) not in (length, 2 * length):
        parts = data.split(" ", 1)
        if len(parts) < 2:
            raise DatagramFormatError(f"ERXUDP data length mismatch: {line}")
        length = _parse_hex(parts[0], line)
        data = parts[1]
        if len(data) not in (length, 2 * length):
            raise DatagramFormatError(f"ERXUDP data length mismatch: {line}")

    if len(data) == length:
        payload = data.encode("latin-1")
    else:
        try:
            payload = binascii.unhexlify(data)
        except (binascii.Error, ValueError) as e:
            raise DatagramFormatError(
                f"ERXUDP parse error (not a hexadecimal): {line}"
            ) from e

    return Datagram(
        sender=tokens[1],
        destination=tokens[2],
        remote_port=_parse_hex(tokens[3], line),
        local_port=_parse_hex(tokens[4], line),
        payload=payload,
    )


def _parse_hex(token: str, line: str) -> int:
    try:
        return int(token, 16)
    except ValueError as e:
        raise DatagramFormatError(f"ERXUDP parse error (not a number): {line}") from e
