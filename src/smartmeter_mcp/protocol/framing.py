"""ECHONET Lite frame builder and parser.

Frame layout (big-endian)::

    +--------+------+-------------+-------------+-----+-----+---------------------------+
    | EHD    | TID  | SEOJ        | DEOJ        | ESV | OPC | EPC / PDC / EDT  x OPC    |
    | 2 bytes| 2 B  | 1 B + 2 B   | 1 B + 2 B   | 1 B | 1 B | 1 B / 1 B / PDC bytes     |
    +--------+------+-------------+-------------+-----+-----+---------------------------+

- EHD: 0x10 0x81 (ECHONET Lite, specified message format)
- TID: transaction id correlating a request with its response
- SEOJ/DEOJ: source and destination object class codes
- ESV: service code; a response is the request's code + 0x10
- OPC: number of properties that follow
- EPC/PDC/EDT: property code, value length, value bytes
"""

from __future__ import annotations

import random
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Sequence

from ..errors import TooShort, UnknownHeader

HEADER = 0x1081
HEADER_SIZE = 12
MAX_PROPERTIES = 255
MAX_VALUE_SIZE = 255
RESPONSE_OFFSET = 0x10

_HEADER_STRUCT = struct.Struct(">HHBHBHBB")


class ClassCode(IntEnum):
    """ECHONET Lite object class codes (group, class, instance)."""

    CONTROLLER = 0x05FF01
    SMART_ELECTRIC_METER = 0x028801


class ServiceCode(IntEnum):
    """ECHONET Lite services used against the meter."""

    GET = 0x62
    GET_RES = 0x72


class PropertyCode(IntEnum):
    """Properties of the low-voltage smart electric energy meter."""

    POSITIVE_CUMULATIVE_ENERGY = 0xE0
    CUMULATIVE_ENERGY_UNIT = 0xE1
    NEGATIVE_CUMULATIVE_ENERGY = 0xE3
    INSTANTANEOUS_POWER = 0xE7
    INSTANTANEOUS_CURRENT = 0xE8


@dataclass(frozen=True)
class Property:
    """One (EPC, EDT) pair."""

    code: int
    value: bytes = b""

    def __repr__(self) -> str:
        return (
            f"Property(code=0x{self.code:02X}, "
            f"value={self.value.hex(' ') if self.value else '(empty)'})"
        )


@dataclass
class Frame:
    """A parsed or to-be-sent ECHONET Lite frame."""

    transaction_id: int
    source: int
    destination: int
    service: int
    properties: list[Property] = field(default_factory=list)

    def regenerate_transaction_id(self, rng: random.Random | None = None) -> int:
        """Assign a fresh random transaction id and return it."""
        self.transaction_id = new_transaction_id(rng)
        return self.transaction_id

    def values(self) -> dict[int, bytes]:
        """Map property codes to their raw value bytes."""
        return {prop.code: prop.value for prop in self.properties}

    def __repr__(self) -> str:
        props = ", ".join(repr(p) for p in self.properties)
        return (
            f"Frame(tid=0x{self.transaction_id:04X}, "
            f"seoj=0x{self.source:06X}, deoj=0x{self.destination:06X}, "
            f"esv=0x{self.service:02X}, properties=[{props}])"
        )


def new_transaction_id(rng: random.Random | None = None) -> int:
    """Draw a uniformly random 16-bit transaction id."""
    return (rng or random).randrange(0x10000)


def build_request(
    destination: int,
    service: int,
    codes: Sequence[int],
    values: Sequence[bytes] | None = None,
    rng: random.Random | None = None,
) -> Frame:
    """Build a request frame sent from the controller object.

    Args:
        destination: Class code of the target object.
        service: Service code, e.g. ``ServiceCode.GET``.
        codes: Property codes to request.
        values: Optional property values; when shorter than ``codes`` the
            extra codes are dropped.
        rng: Random source for the transaction id.
    """
    count = len(codes) if values is None else min(len(codes), len(values))
    properties = [
        Property(code=codes[i], value=b"" if values is None else bytes(values[i]))
        for i in range(count)
    ]
    return Frame(
        transaction_id=new_transaction_id(rng),
        source=ClassCode.CONTROLLER,
        destination=destination,
        service=service,
        properties=properties,
    )


def encode_frame(frame: Frame) -> bytes:
    """Serialize a frame to its wire representation.

    Raises:
        ValueError: If a header field is out of range, there are more than
            255 properties, or a property value is longer than 255 bytes.
    """
    if not 0 <= frame.transaction_id <= 0xFFFF:
        raise ValueError(f"Transaction id must be 16-bit, got {frame.transaction_id}")
    for name, code in (("source", frame.source), ("destination", frame.destination)):
        if not 0 <= code <= 0xFFFFFF:
            raise ValueError(f"{name} class code must be 24-bit, got {code:#x}")
    if not 0 <= frame.service <= 0xFF:
        raise ValueError(f"Service code must be 8-bit, got {frame.service}")
    if len(frame.properties) > MAX_PROPERTIES:
        raise ValueError(
            f"At most {MAX_PROPERTIES} properties per frame, got {len(frame.properties)}"
        )

    buf = bytearray(
        _HEADER_STRUCT.pack(
            HEADER,
            frame.transaction_id,
            frame.source >> 16 & 0xFF,
            frame.source & 0xFFFF,
            frame.destination >> 16 & 0xFF,
            frame.destination & 0xFFFF,
            frame.service,
            len(frame.properties),
        )
    )
    for prop in frame.properties:
        if not 0 <= prop.code <= 0xFF:
            raise ValueError(f"Property code must be 8-bit, got {prop.code}")
        if len(prop.value) > MAX_VALUE_SIZE:
            raise ValueError(
                f"Property 0x{prop.code:02X} value must be at most "
                f"{MAX_VALUE_SIZE} bytes, got {len(prop.value)}"
            )
        buf += bytes([prop.code, len(prop.value)]) + prop.value
    return bytes(buf)


def decode_frame(data: bytes) -> Frame:
    """Parse wire bytes into a Frame.

    Unknown property codes are kept as opaque properties; only structural
    malformation is an error.

    Raises:
        TooShort: Fewer than 12 bytes, or a declared property runs past the
            end of the buffer.
        UnknownHeader: The first two bytes are not 0x1081.
    """
    if len(data) < HEADER_SIZE:
        raise TooShort(f"Too short ECHONET Lite frame: {len(data)} bytes")
    (
        header,
        tid,
        src_group,
        src_code,
        dst_group,
        dst_code,
        service,
        count,
    ) = _HEADER_STRUCT.unpack_from(data)
    if header != HEADER:
        raise UnknownHeader(f"Unknown ECHONET Lite header: {data[0]:02X}{data[1]:02X}")

    properties: list[Property] = []
    offset = HEADER_SIZE
    for _ in range(count):
        if len(data) < offset + 2:
            raise TooShort("Too short ECHONET Lite frame: truncated property header")
        code, size = data[offset], data[offset + 1]
        offset += 2
        if len(data) < offset + size:
            raise TooShort(
                f"Too short ECHONET Lite frame: property 0x{code:02X} "
                f"declares {size} bytes, {len(data) - offset} remain"
            )
        properties.append(Property(code=code, value=bytes(data[offset : offset + size])))
        offset += size

    return Frame(
        transaction_id=tid,
        source=src_group << 16 | src_code,
        destination=dst_group << 16 | dst_code,
        service=service,
        properties=properties,
    )


def correlates(request: Frame, candidate: Frame) -> bool:
    """Check whether two frames form a request/response pair.

    The check is symmetric: the service codes may differ by the response
    offset in either direction. Frames without properties never correlate.
    """
    if request.transaction_id != candidate.transaction_id:
        return False
    if request.source != candidate.destination or request.destination != candidate.source:
        return False
    if abs(request.service - candidate.service) != RESPONSE_OFFSET:
        return False
    if not request.properties or not candidate.properties:
        return False
    if len(request.properties) != len(candidate.properties):
        return False
    return all(
        req.code == res.code
        for req, res in zip(request.properties, candidate.properties)
    )
