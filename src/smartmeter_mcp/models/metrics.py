"""Conversion of meter property values into named numeric metrics.

Graph layout::

    <prefix>.power.value     instantaneous power [W]   (EPC 0xE7, int32)
    <prefix>.current.r       R-phase current [A]       (EPC 0xE8, int16 x 0.1)
    <prefix>.current.t       T-phase current [A]       (EPC 0xE8, int16 x 0.1)
"""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass, field
from typing import Mapping

from ..protocol.framing import PropertyCode


@dataclass
class MetricDefinition:
    name: str
    label: str
    stacked: bool = False


@dataclass
class GraphDefinition:
    """How a group of metrics should be graphed."""

    label: str
    unit: str
    metrics: list[MetricDefinition] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "unit": self.unit,
            "metrics": [
                {"name": m.name, "label": m.label, "stacked": m.stacked}
                for m in self.metrics
            ],
        }


GRAPH_DEFINITIONS: dict[str, GraphDefinition] = {
    "power": GraphDefinition(
        label="Electric power consumption [W]",
        unit="integer",
        metrics=[MetricDefinition("value", "Electric power")],
    ),
    "current": GraphDefinition(
        label="Electric current [A]",
        unit="integer",
        metrics=[
            MetricDefinition("r", "R-phase current", stacked=True),
            MetricDefinition("t", "T-phase current", stacked=True),
        ],
    ),
}

# metric name -> graph name
_METRIC_GRAPHS = {
    metric.name: graph
    for graph, definition in GRAPH_DEFINITIONS.items()
    for metric in definition.metrics
}

METRIC_PROPERTIES = [PropertyCode.INSTANTANEOUS_POWER, PropertyCode.INSTANTANEOUS_CURRENT]


def properties_to_metrics(properties: Mapping[int, bytes]) -> dict[str, float]:
    """Convert raw property values to metrics, discarding unknown codes.

    Raises:
        ValueError: If ``properties`` is empty or a known property has the
            wrong value length.
    """
    if not properties:
        raise ValueError("No property in response")

    metrics: dict[str, float] = {}
    for code, value in properties.items():
        if code == PropertyCode.INSTANTANEOUS_POWER:
            if len(value) != 4:
                raise ValueError(f"Instantaneous power must be 4 bytes, got {len(value)}")
            metrics["value"] = float(struct.unpack(">i", value)[0])
        elif code == PropertyCode.INSTANTANEOUS_CURRENT:
            if len(value) != 4:
                raise ValueError(f"Instantaneous current must be 4 bytes, got {len(value)}")
            r, t = struct.unpack(">hh", value)
            metrics["r"] = r / 10.0
            metrics["t"] = t / 10.0
    return metrics


def metric_key(prefix: str, name: str) -> str:
    """Full key of a metric, e.g. ``smartmeter.power.value``."""
    return f"{prefix}.{_METRIC_GRAPHS[name]}.{name}"


def format_metrics(
    metrics: Mapping[str, float],
    prefix: str,
    timestamp: int | None = None,
) -> str:
    """Render metrics as ``key<TAB>value<TAB>epoch`` lines."""
    if timestamp is None:
        timestamp = int(time.time())
    return "\n".join(
        f"{metric_key(prefix, name)}\t{value}\t{timestamp}"
        for name, value in metrics.items()
    )
