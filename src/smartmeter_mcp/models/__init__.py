"""Data models for configuration and metrics."""

from .config import MeterConfig
from .metrics import GRAPH_DEFINITIONS, GraphDefinition, properties_to_metrics
