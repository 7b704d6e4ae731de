"""Exception hierarchy shared by the protocol, transport and session layers."""

from __future__ import annotations

from enum import Enum


class SmartMeterError(Exception):
    """Base class for every error raised while talking to the meter."""


class CommandTimeout(SmartMeterError):
    """No reply line arrived within the idle timeout of an SK command."""


class CommandRejected(SmartMeterError):
    """The module answered an SK command with a ``FAIL`` line."""

    def __init__(self, line: str) -> None:
        super().__init__(f"SK command response error: {line}")
        self.line = line


class LinkClosed(SmartMeterError):
    """The serial stream ended; no further commands are possible."""


class DecodeError(SmartMeterError):
    """Malformed ECHONET Lite frame bytes."""


class TooShort(DecodeError):
    """The buffer ended before the header or a declared property completed."""


class UnknownHeader(DecodeError):
    """The leading two bytes are not the ECHONET Lite header."""


class DatagramFormatError(SmartMeterError):
    """An ``ERXUDP`` notification line could not be parsed."""


class Unauthenticated(SmartMeterError):
    """The module refused to send a datagram: no PANA session is established."""


class ReadTimeout(SmartMeterError):
    """No correlated response frame arrived before the read gap expired."""


class JoinTimeout(Enum):
    """Which of the two PANA deadlines expired."""

    ATTEMPT = "attempt"
    TOTAL = "total"


class JoinFailed(SmartMeterError):
    """PANA authentication did not complete."""

    def __init__(self, kind: JoinTimeout, seconds: float) -> None:
        super().__init__(f"PANA connection timeout ({kind.value}, {seconds:g}sec)")
        self.kind = kind
        self.seconds = seconds
