"""Bridge configuration, loadable from YAML.

Example document::

    device:
      port: /dev/ttyUSB0
      baud_rate: 115200
    route_b:
      id: 00112233445566778899AABBCCDDEEFF
      password: 0123456789AB
    network:
      channel: "21"
      pan_id: "8888"
      address: FE80:0000:0000:0000:021C:6400:030C:12A4
      dual_stack: false
    metrics:
      prefix: smartmeter
    logging:
      level: INFO
    debug: false
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml

from ..transport.serial_connection import DEFAULT_BAUD_RATE

DEFAULT_METRIC_KEY_PREFIX = "smartmeter"


@dataclass
class MeterConfig:
    """Everything needed to reach one smart meter over Route B."""

    serial_port: str = ""
    baud_rate: int = DEFAULT_BAUD_RATE
    route_b_id: str = ""
    route_b_password: str = ""
    channel: str = ""
    pan_id: str = ""
    address: str = ""
    mac_address: str = ""  # resolved to ``address`` with SKLL64 when address is empty
    dual_stack: bool = False
    debug: bool = False
    metric_key_prefix: str = DEFAULT_METRIC_KEY_PREFIX
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: str) -> MeterConfig:
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeterConfig:
        device = data.get("device", {})
        route_b = data.get("route_b", {})
        network = data.get("network", {})
        return cls(
            serial_port=device.get("port", ""),
            baud_rate=int(device.get("baud_rate", DEFAULT_BAUD_RATE)),
            route_b_id=str(route_b.get("id", "")),
            route_b_password=str(route_b.get("password", "")),
            # quote channel and PAN id in YAML; unquoted digits are read as numbers
            channel=str(network.get("channel", "")),
            pan_id=str(network.get("pan_id", "")),
            address=str(network.get("address", "")),
            mac_address=str(network.get("mac_address", "")),
            dual_stack=bool(network.get("dual_stack", False)),
            debug=bool(data.get("debug", False)),
            metric_key_prefix=data.get("metrics", {}).get("prefix", DEFAULT_METRIC_KEY_PREFIX),
            log_level=data.get("logging", {}).get("level", "INFO"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary; the password is redacted."""
        return {
            "device": {
                "port": self.serial_port,
                "baud_rate": self.baud_rate,
            },
            "route_b": {
                "id": self.route_b_id,
                "password": "<redacted>" if self.route_b_password else "",
            },
            "network": {
                "channel": self.channel,
                "pan_id": self.pan_id,
                "address": self.address,
                "mac_address": self.mac_address,
                "dual_stack": self.dual_stack,
            },
            "metrics": {
                "prefix": self.metric_key_prefix,
            },
            "logging": {
                "level": self.log_level,
            },
            "debug": self.debug,
        }

    def validate(self) -> None:
        """Raise ValueError naming every missing required setting."""
        missing = [
            name
            for name, value in (
                ("device.port", self.serial_port),
                ("route_b.id", self.route_b_id),
                ("route_b.password", self.route_b_password),
                ("network.channel", self.channel),
                ("network.pan_id", self.pan_id),
            )
            if not value
        ]
        if not self.address and not self.mac_address:
            missing.append("network.address (or network.mac_address)")
        if missing:
            raise ValueError(f"Missing configuration: {', '.join(missing)}")

