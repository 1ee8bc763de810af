"""Public telemetry helpers for the salvo server."""

from __future__ import annotations

from .config import TelemetryConfig, init_telemetry, load_telemetry_config
from .logger import init_logging, setup_logging
from .metrics import get_meter, init_metrics, record_match_metric
from .tracer import get_tracer, init_tracing

__all__ = [
    "TelemetryConfig",
    "get_tracer",
    "get_meter",
    "record_match_metric",
    "init_logging",
    "init_tracing",
    "init_metrics",
    "init_telemetry",
    "load_telemetry_config",
    "setup_logging",
]
