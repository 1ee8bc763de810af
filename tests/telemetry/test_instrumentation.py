"""Telemetry instrumentation unit tests."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from salvo.engine import grid as grid_module
from salvo.engine import match as match_module
from salvo.engine.grid import Grid
from salvo.engine.match import Match
from salvo.engine.ship import Coordinate, Ship, ShipType
from salvo.telemetry import config as telemetry_config_module
from salvo.telemetry import logger as logger_module
from salvo.telemetry import metrics as metrics_module
from salvo.telemetry import tracer as tracer_module
from salvo.telemetry.config import TelemetryConfig


class DummySpan:
    def __init__(self, names: list[str], span_name: str, attributes: dict) -> None:
        self._names = names
        self._names.append(span_name)
        self._attributes = attributes

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key, value):
        self._attributes[key] = value


class DummyTracer:
    def __init__(self) -> None:
        self.span_names: list[str] = []
        self.attributes: dict = {}

    def start_as_current_span(self, name: str):
        return DummySpan(self.span_names, name, self.attributes)


class QuietSession:
    def __init__(self, name: str, lines: list[str]) -> None:
        self.name = name
        self.lines = lines
        self.grid: Grid | None = None
        self.shots: list[Coordinate] = []

    def send(self, text: str) -> None:
        pass

    def receive_line(self) -> str:
        return self.lines.pop(0)

    def disconnect(self) -> None:
        pass


def reset_singletons() -> None:
    tracer_module._TRACERS.clear()
    tracer_module._TRACER_PROVIDER = None
    metrics_module._METER = None
    metrics_module._METER_PROVIDER = None
    metrics_module._INSTRUMENTS = {}


def test_tracer_cached_per_name() -> None:
    reset_singletons()
    assert tracer_module.get_tracer() is tracer_module.get_tracer()
    assert tracer_module.get_tracer("salvo.engine.match") is tracer_module.get_tracer("salvo.engine.match")


def test_init_tracing_and_metrics(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_singletons()

    provider_instance = MagicMock()
    monkeypatch.setattr(tracer_module, "TracerProvider", MagicMock(return_value=provider_instance))
    monkeypatch.setattr(tracer_module, "OTLPSpanExporter", MagicMock(return_value=MagicMock()))
    monkeypatch.setattr(tracer_module.trace, "set_tracer_provider", MagicMock())
    tracer_module.init_tracing(TelemetryConfig(enable_tracing=True, otlp_traces_endpoint="http://example"))
    assert tracer_module._TRACER_PROVIDER is provider_instance
    provider_instance.add_span_processor.assert_called_once()

    meter_provider = MagicMock()
    meter_provider.get_meter.return_value = MagicMock()
    monkeypatch.setattr(metrics_module, "MeterProvider", MagicMock(return_value=meter_provider))
    monkeypatch.setattr(metrics_module, "OTLPMetricExporter", MagicMock(return_value=MagicMock()))
    monkeypatch.setattr(metrics_module, "PeriodicExportingMetricReader", MagicMock(return_value=MagicMock()))
    monkeypatch.setattr(metrics_module.otel_metrics, "set_meter_provider", MagicMock())
    metrics_module.init_metrics(TelemetryConfig(enable_metrics=True, otlp_metrics_endpoint="http://example"))
    assert metrics_module._METER is meter_provider.get_meter.return_value
    reset_singletons()


def test_record_match_metric_reuses_counters(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_singletons()
    meter = MagicMock()
    monkeypatch.setattr(metrics_module, "_METER", meter)

    metrics_module.record_match_metric("salvo_shots", 1, {"result": "hit"})
    metrics_module.record_match_metric("salvo_shots", 1, {"result": "miss"})

    meter.create_counter.assert_called_once_with("salvo_shots", unit="1")
    counter = meter.create_counter.return_value
    assert counter.add.call_count == 2
    reset_singletons()


def test_init_logging_installs_handler_once(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger_module, "_HANDLER_INSTALLED", False)
    monkeypatch.setattr(logger_module, "set_logger_provider", MagicMock())
    added: list[logging.Handler] = []
    root = logging.getLogger()
    monkeypatch.setattr(root, "addHandler", added.append)

    logger_module.init_logging(TelemetryConfig(enable_logging=True))
    logger_module.init_logging(TelemetryConfig(enable_logging=True))
    assert len(added) == 1


def test_init_telemetry_noop(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    monkeypatch.setattr(telemetry_config_module, "init_tracing", lambda cfg: calls.append("tr"))
    monkeypatch.setattr(telemetry_config_module, "init_metrics", lambda cfg: calls.append("me"))
    monkeypatch.setattr(telemetry_config_module, "init_logging", lambda cfg: calls.append("lo"))

    telemetry_config_module.init_telemetry(TelemetryConfig())
    assert calls == []


def test_init_telemetry_respects_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    monkeypatch.setattr(telemetry_config_module, "init_tracing", lambda cfg: calls.append("tr"))
    monkeypatch.setattr(telemetry_config_module, "init_metrics", lambda cfg: calls.append("me"))
    monkeypatch.setattr(telemetry_config_module, "init_logging", lambda cfg: calls.append("lo"))

    config = TelemetryConfig(enable_tracing=True, enable_logging=True)
    telemetry_config_module.init_telemetry(config)
    assert calls == ["tr", "lo"]


def test_from_env_reads_endpoints(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SALVO_ENABLE_TRACING", "OTEL_TRACES_ENABLED", "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317/")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT", "http://metrics:4317")
    monkeypatch.setenv("OTEL_SERVICE_NAME", "salvo-test")
    monkeypatch.setenv("OTEL_RESOURCE_ATTRIBUTES", "deployment.environment=ci, team=games")

    config = TelemetryConfig.from_env(enable_logging=False)

    assert config.otlp_traces_endpoint == "http://collector:4317/v1/traces"
    assert config.otlp_metrics_endpoint == "http://metrics:4317"
    assert config.enable_tracing and config.enable_metrics
    assert not config.enable_logging
    assert config.resource_dict() == {
        "service.name": "salvo-test",
        "service.namespace": "server",
        "deployment.environment": "ci",
        "team": "games",
    }


def test_load_telemetry_config_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    telemetry_config_module.load_telemetry_config.cache_clear()
    calls = {"count": 0}

    def fake_from_env(**overrides):
        calls["count"] += 1
        return TelemetryConfig(enable_tracing=True)

    monkeypatch.setattr(
        telemetry_config_module.TelemetryConfig,
        "from_env",
        classmethod(lambda cls, **overrides: fake_from_env(**overrides)),
    )

    first = telemetry_config_module.load_telemetry_config()
    second = telemetry_config_module.load_telemetry_config()
    assert first is second
    assert calls["count"] == 1
    telemetry_config_module.load_telemetry_config.cache_clear()


def test_match_emits_spans_and_metrics(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = DummyTracer()
    metric_calls: list[tuple[str, float, dict | None]] = []
    monkeypatch.setattr(match_module, "tracer", tracer)
    monkeypatch.setattr(
        match_module,
        "record_match_metric",
        lambda name, value=1, attrs=None: metric_calls.append((name, value, attrs)),
    )

    alice, bob = QuietSession("alice", ["zz", "A1"]), QuietSession("bob", ["B1"])
    for player in (alice, bob):
        player.grid = Grid(2, 1, [Ship.at(ShipType.boat(), Coordinate(1, 1))])
    match = Match(countdown_seconds=0)
    match.add_session(alice)
    match.add_session(bob)
    match.run(2, 1)

    assert tracer.span_names[0] == "match.run"
    assert tracer.span_names.count("match.turn") == 3
    assert tracer.attributes["winner"] == "alice"
    assert ("salvo_shots", 1, {"result": "astray"}) in metric_calls
    assert ("salvo_shots", 1, {"result": "miss"}) in metric_calls
    assert ("salvo_shots", 1, {"result": "hit"}) in metric_calls
    assert metric_calls[-1] == ("salvo_matches", 1, {"outcome": "finished"})


def test_grid_placement_records_outcomes(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = DummyTracer()
    results: list[str] = []
    monkeypatch.setattr(grid_module, "tracer", tracer)
    monkeypatch.setattr(
        grid_module,
        "record_match_metric",
        lambda name, value=1, attrs=None: results.append(attrs["result"]),
    )

    grid = Grid(2, 2)
    assert grid.place_ship(Ship.at(ShipType.boat(), Coordinate(1, 1)))
    assert not grid.place_ship(Ship.at(ShipType.boat(), Coordinate(1, 1)))
    assert results == ["success", "failed"]
    assert tracer.span_names == ["grid.place_ship", "grid.place_ship"]
