"""SK command names and builders for the Wi-SUN module.

Every builder returns the command text without the trailing CR+LF; the
driver appends the terminator (and, for ``SKSENDTO``, the raw payload).
"""

from __future__ import annotations

from enum import Enum

ECHONET_PORT = 3610
SECURED = 1
SIDE_B_ROUTE = 0


class SKCommand(str, Enum):
    """SK command names."""

    SET_PASSWORD = "SKSETPWD"
    SET_ROUTE_B_ID = "SKSETRBID"
    SET_REGISTER = "SKSREG"
    JOIN = "SKJOIN"
    SEND_TO = "SKSENDTO"
    LINK_LOCAL_64 = "SKLL64"


# Virtual registers
REG_CHANNEL = "S2"
REG_PAN_ID = "S3"


def build_set_password(password: str) -> str:
    """Build ``SKSETPWD`` with the length of the Route B password in hex."""
    if not password:
        raise ValueError("Route B password must not be empty")
    return f"{SKCommand.SET_PASSWORD.value} {len(password):X} {password}"


def build_set_route_b_id(route_b_id: str) -> str:
    if not route_b_id:
        raise ValueError("Route B id must not be empty")
    return f"{SKCommand.SET_ROUTE_B_ID.value} {route_b_id}"


def build_set_register(register: str, value: str) -> str:
    return f"{SKCommand.SET_REGISTER.value} {register} {value}"


def build_set_channel(channel: str) -> str:
    return build_set_register(REG_CHANNEL, channel)


def build_set_pan_id(pan_id: str) -> str:
    return build_set_register(REG_PAN_ID, pan_id)


def build_join(address: str) -> str:
    """Build ``SKJOIN`` to start PANA authentication with the meter."""
    return f"{SKCommand.JOIN.value} {address}"


def build_link_local(mac_address: str) -> str:
    """Build ``SKLL64`` to derive the IPv6 link-local address of a MAC."""
    return f"{SKCommand.LINK_LOCAL_64.value} {mac_address}"


def build_send_to(
    address: str,
    length: int,
    dual_stack: bool = False,
    port: int = ECHONET_PORT,
) -> str:
    """Build the ``SKSENDTO`` header; the raw datagram follows after a space.

    The dual-stack edition of the firmware takes an extra side field
    (0 = B-route) between the security flag and the data length.

    Args:
        address: IPv6 address of the meter.
        length: Datagram length in bytes.
        dual_stack: Use the dual-stack command form.
        port: Destination UDP port.
    """
    if not 0 <= length <= 0xFFFF:
        raise ValueError(f"Datagram length must fit in 16 bits, got {length}")
    fields = [SKCommand.SEND_TO.value, str(SECURED), address, f"{port:04X}", str(SECURED)]
    if dual_stack:
        fields.append(str(SIDE_B_ROUTE))
    fields.append(f"{length:04X}")
    return " ".join(fields)


def is_link_local_command(command: str) -> bool:
    """``SKLL64`` answers with a single line and no ``OK``."""
    return command.startswith(SKCommand.LINK_LOCAL_64.value + " ")
