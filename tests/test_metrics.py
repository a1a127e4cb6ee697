import json
import logging

import pytest

from meteobridge.metrics import COUNTERS, IngestMetrics


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _payloads(caplog):
    return [
        json.loads(rec.message.split(" ", 1)[1])
        for rec in caplog.records
        if rec.message.startswith("ingest_metrics ")
    ]


def test_ingest_metrics_logs_counters_and_delta(caplog: pytest.LogCaptureFixture) -> None:
    """Un volcado forzado debe incluir contadores acumulados y el delta del intervalo."""

    logger_name = "test.metrics"
    metrics = IngestMetrics(log_interval_s=60.0, logger=logging.getLogger(logger_name))

    with caplog.at_level(logging.INFO, logger=logger_name):
        metrics.increment("devices_discovered")
        metrics.increment("voltage_samples")
        metrics.increment("meteo_samples", 3)
        metrics.increment("records_emitted", 2)
        metrics.increment("sink_failures")
        metrics.maybe_log(force=True)
        metrics.increment("records_emitted")
        metrics.maybe_log(force=True)

    payloads = _payloads(caplog)
    assert len(payloads) == 2

    first, second = payloads
    assert first["type"] == "ingest_metrics"
    assert set(first["counters"]) == set(COUNTERS)
    assert first["counters"]["meteo_samples"] == 3
    assert first["counters"]["records_emitted"] == 2
    assert first["delta"] == first["counters"]

    assert second["counters"]["records_emitted"] == 3
    assert second["delta"]["records_emitted"] == 1
    assert second["delta"]["meteo_samples"] == 0


def test_ingest_metrics_dumps_once_interval_elapsed(caplog: pytest.LogCaptureFixture) -> None:
    logger_name = "test.metrics.periodic"
    clock = FakeClock()
    metrics = IngestMetrics(log_interval_s=300.0, logger=logging.getLogger(logger_name), clock=clock)

    with caplog.at_level(logging.INFO, logger=logger_name):
        metrics.increment("decode_errors")
        assert _payloads(caplog) == []
        clock.now += 301.0
        metrics.increment("decode_errors")

    payloads = _payloads(caplog)
    assert len(payloads) == 1
    assert payloads[0]["interval_s"] == 301.0
    assert payloads[0]["counters"]["decode_errors"] == 2


def test_zero_interval_only_dumps_when_forced(caplog: pytest.LogCaptureFixture) -> None:
    logger_name = "test.metrics.forced"
    metrics = IngestMetrics(log_interval_s=0, logger=logging.getLogger(logger_name))

    with caplog.at_level(logging.INFO, logger=logger_name):
        metrics.increment("records_emitted")
        assert _payloads(caplog) == []
        metrics.maybe_log(force=True)

    assert len(_payloads(caplog)) == 1


def test_per_room_counters_are_reported(caplog: pytest.LogCaptureFixture) -> None:
    """Los contadores con habitación se desglosan en el volcado."""

    logger_name = "test.metrics.rooms"
    metrics = IngestMetrics(log_interval_s=3600.0, logger=logging.getLogger(logger_name))

    with caplog.at_level(logging.INFO, logger=logger_name):
        metrics.increment("records_emitted", room="Salon")
        metrics.increment("records_emitted", room="Salon")
        metrics.increment("sink_failures", room="Cocina")
        metrics.increment("devices_discovered")
        metrics.maybe_log(force=True)

    rooms = _payloads(caplog)[0]["rooms"]
    assert rooms == {"Cocina": {"sink_failures": 1}, "Salon": {"records_emitted": 2}}
    assert metrics.room_snapshot("Salon") == {"records_emitted": 2}
    assert metrics.room_snapshot("Dormitorio") == {}


def test_ingest_metrics_rejects_unknown_counter() -> None:
    metrics = IngestMetrics()

    with pytest.raises(KeyError):
        metrics.increment("no_existe")
