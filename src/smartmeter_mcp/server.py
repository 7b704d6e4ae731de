"""MCP server entry point for the Route B smart meter bridge.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

import yaml
from mcp.server.fastmcp import FastMCP

from .errors import SmartMeterError
from .meter import SmartMeter
from .models.config import MeterConfig
from .models.metrics import GRAPH_DEFINITIONS, format_metrics, metric_key

logger = logging.getLogger(__name__)

CONFIG_ENV = "SMARTMETER_CONFIG"

mcp = FastMCP(
    "smartmeter",
    instructions="MCP server for a Route B smart electric energy meter over Wi-SUN",
)

# Global connection state
_meter: SmartMeter | None = None
_last_metrics: dict[str, float] = {}


def _get_meter() -> SmartMeter:
    """Get the open meter, raising if not connected."""
    if _meter is None or not _meter.connected:
        raise RuntimeError(
            "Not connected to the Wi-SUN module. Use the 'connect' tool first."
        )
    return _meter


def _load_config(config_path: str | None) -> MeterConfig:
    path = config_path or os.environ.get(CONFIG_ENV)
    if not path:
        raise ValueError(
            f"No configuration file given and {CONFIG_ENV} is not set"
        )
    return MeterConfig.from_yaml(path)


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(config_path: str | None = None) -> dict[str, Any]:
    """Open the serial port of the Wi-SUN module.

    Reads the YAML configuration from ``config_path`` or from the file
    named by the SMARTMETER_CONFIG environment variable. Authentication
    happens lazily on the first failed read.
    """
    global _meter
    if _meter is not None and _meter.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _meter.config.serial_port,
        }

    try:
        config = _load_config(config_path)
        meter = SmartMeter(config)
        meter.open()
    except (OSError, ValueError, yaml.YAMLError, SmartMeterError) as e:
        return {"connected": False, "error": str(e)}

    _meter = meter
    return {
        "connected": True,
        "port": config.serial_port,
        "address": meter.engine.address if meter.engine else config.address,
        "dual_stack": config.dual_stack,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial port."""
    global _meter
    if _meter is None:
        return {"disconnected": True}
    _meter.close()
    _meter = None
    return {"disconnected": True}


@mcp.tool()
def authenticate() -> dict[str, Any]:
    """Run the PANA handshake with the meter now.

    Sets the Route B credentials, channel and PAN id, then joins. Fails
    after 10 seconds without progress or 20 seconds in total.
    """
    meter = _get_meter()
    try:
        meter.authenticate()
    except SmartMeterError as e:
        return {"authenticated": False, "error": str(e)}
    return {"authenticated": True}


# ─── READING TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def read_properties(codes: list[int]) -> dict[str, Any]:
    """Get raw ECHONET Lite property values from the meter.

    Args:
        codes: Property codes (EPC), e.g. [231] for instantaneous power (0xE7).
    """
    if not codes or not all(0 <= c <= 0xFF for c in codes):
        return {"error": "Property codes must be 0-255"}
    meter = _get_meter()
    try:
        values = meter.read_properties(codes)
    except SmartMeterError as e:
        return {"error": str(e)}
    return {
        "properties": {f"0x{code:02X}": value.hex() for code, value in values.items()},
    }


@mcp.tool()
def fetch_metrics() -> dict[str, Any]:
    """Read instantaneous power [W] and R/T-phase current [A].

    Also returns the readings as tab-separated ``key value timestamp`` lines.
    """
    global _last_metrics
    meter = _get_meter()
    try:
        metrics = meter.fetch_metrics()
    except (SmartMeterError, ValueError) as e:
        return {"error": str(e)}
    _last_metrics = metrics
    prefix = meter.config.metric_key_prefix
    return {
        "metrics": {metric_key(prefix, name): value for name, value in metrics.items()},
        "text": format_metrics(metrics, prefix),
    }


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Report connection and authentication state."""
    if _meter is None:
        return {"connected": False, "authenticated": False}
    return {
        "connected": _meter.connected,
        "authenticated": _meter.authenticated,
        "port": _meter.config.serial_port,
        "last_metrics": _last_metrics,
    }


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("smartmeter://graphs")
def resource_graphs() -> str:
    """Graph definitions for the published metrics."""
    return json.dumps(
        {name: graph.to_dict() for name, graph in GRAPH_DEFINITIONS.items()}, indent=2
    )


@mcp.resource("smartmeter://device/status")
def resource_device_status() -> str:
    """Connection status as JSON."""
    return json.dumps(get_status(), indent=2)


@mcp.resource("smartmeter://config")
def resource_config() -> str:
    """Active configuration with the password redacted."""
    if _meter is None:
        return json.dumps({"error": "Not connected"})
    return json.dumps(_meter.config.to_dict(), indent=2)


# ─── PROMPTS ──────────────────────────────────────────────────────────

@mcp.prompt()
def analyze_consumption(minutes: int = 10) -> str:
    """Sample power usage for a while and summarize it."""
    return f"""Call fetch_metrics once a minute for {minutes} minutes.
Report:
- Average, minimum and peak power [W]
- Whether R and T phase currents are balanced
- Any sudden jumps that suggest a large appliance switching on

If a read fails, call get_status and authenticate before retrying."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    level = logging.INFO
    path = os.environ.get(CONFIG_ENV)
    if path:
        try:
            level = getattr(logging, MeterConfig.from_yaml(path).log_level.upper())
        except (OSError, AttributeError, yaml.YAMLError) as e:
            print(f"Ignoring log level from {path}: {e}", file=sys.stderr)
    logging.basicConfig(level=level, stream=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
