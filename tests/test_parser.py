"""Tests for EVENT and ERXUDP line parsing."""

import pytest

from smartmeter_mcp.errors import DatagramFormatError
from smartmeter_mcp.protocol.parser import (
    EventCode,
    SendStatus,
    is_event,
    parse_datagram,
    parse_event,
    parse_send_status,
)

from conftest import METER_ADDR, MODULE_ADDR, erxudp

PAYLOAD = bytes.fromhex("1081000102880105FF017201E80400140064")
PREFIX = f"ERXUDP {METER_ADDR} {MODULE_ADDR} 0E1A 0E1A 001C6400030C12A4"


def test_parse_event():
    event = parse_event(f"EVENT 25 {METER_ADDR}")
    assert event is not None
    assert event.code == EventCode.PANA_COMPLETE
    assert event.sender == METER_ADDR
    assert event.params == []


def test_parse_event_ignores_other_lines():
    assert parse_event("OK") is None
    assert parse_event("EVENT") is None
    assert parse_event("EVENT ZZ FE80::1") is None


def test_is_event():
    assert is_event(f"EVENT 24 {METER_ADDR}", EventCode.PANA_FAILED)
    assert not is_event(f"EVENT 24 {METER_ADDR}", EventCode.PANA_COMPLETE)


def test_send_status_from_multi_line_reply():
    reply = f"SKSENDTO 1 {METER_ADDR} 0E1A 1 000E\nEVENT 21 {METER_ADDR} 00"
    assert parse_send_status(reply) == SendStatus.SUCCESS


def test_send_status_dual_stack_event():
    assert parse_send_status(f"EVENT 21 {METER_ADDR} 0 02") == SendStatus.NEIGHBOR_SOLICITATION


def test_send_status_missing():
    assert parse_send_status("") is None
    assert parse_send_status(f"EVENT 02 {METER_ADDR}") is None


def test_parse_hex_datagram():
    datagram = parse_datagram(erxudp(PAYLOAD))
    assert datagram.payload == PAYLOAD
    assert datagram.sender == METER_ADDR
    assert datagram.destination == MODULE_ADDR
    assert datagram.remote_port == 3610
    assert datagram.local_port == 3610


def test_parse_binary_datagram():
    line = f"{PREFIX} 1 {len(PAYLOAD):04X} " + PAYLOAD.decode("latin-1")
    assert parse_datagram(line).payload == PAYLOAD


def test_parse_binary_datagram_containing_spaces():
    payload = b"\x10\x81 \x20abc"
    line = f"{PREFIX} 1 {len(payload):04X} " + payload.decode("latin-1")
    assert parse_datagram(line).payload == payload


def test_parse_datagram_with_rssi():
    line = f"{PREFIX} -45 1 {len(PAYLOAD):04X} {PAYLOAD.hex().upper()}"
    assert parse_datagram(line).payload == PAYLOAD


def test_parse_dual_stack_datagram():
    line = f"{PREFIX} 1 0 {len(PAYLOAD):04X} {PAYLOAD.hex().upper()}"
    assert parse_datagram(line, dual_stack=True).payload == PAYLOAD


def test_parse_datagram_too_few_tokens():
    with pytest.raises(DatagramFormatError):
        parse_datagram(f"ERXUDP {METER_ADDR} {MODULE_ADDR} 0E1A")


def test_parse_datagram_length_mismatch():
    with pytest.raises(DatagramFormatError):
        parse_datagram(f"{PREFIX} 1 0012 ABCDEF")


def test_parse_datagram_bad_length_field():
    with pytest.raises(DatagramFormatError):
        parse_datagram(f"{PREFIX} 1 XYZW {PAYLOAD.hex()}")


def test_parse_datagram_not_hex():
    with pytest.raises(DatagramFormatError):
        parse_datagram(f"{PREFIX} 1 0002 ZZZZ")


def test_parse_datagram_wrong_prefix():
    with pytest.raises(DatagramFormatError):
        parse_datagram("EVENT 21 FE80::1 00")
