"""Sink que escribe registros completos en InfluxDB (API v1 o v2)."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, TYPE_CHECKING

import requests

from .base import CompletedRecord, SinkError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from meteobridge.config.schema import InfluxSettings


logger = logging.getLogger(__name__)


class InfluxSink:
    """Shared InfluxDB client used by every sensor worker.

    One ``requests.Session`` backs all writes. Each write holds ``_lock`` for
    its whole duration and runs in a worker thread, so writes never interleave
    on the session and the event loop is not blocked.
    """

    def __init__(
        self,
        settings: "InfluxSettings",
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.timeout = settings.timeout_s
        base = settings.url.rstrip("/")
        if settings.driver == "influxdb_v2":
            self._write_url = f"{base}/api/v2/write"
            self._params = {"org": settings.org, "bucket": settings.bucket, "precision": "ns"}
            self._headers = {"Authorization": f"Token {settings.token}"}
            self._auth = None
        else:
            self._write_url = f"{base}/write"
            self._params = {"db": settings.database, "precision": "ns"}
            self._headers = {}
            self._auth = settings.credentials
        self.session = session or requests.Session()
        self.session.verify = settings.verify_ssl
        self._lock = asyncio.Lock()
        self._closed = False

    async def emit(self, record: CompletedRecord, measurement: str) -> None:
        line = record_to_line(record, measurement)
        async with self._lock:
            await asyncio.to_thread(self._write, line)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.session.close()

    def _write(self, data: str) -> None:
        try:
            response = self.session.post(
                self._write_url,
                params=self._params,
                headers=self._headers,
                auth=self._auth,
                data=data.encode("utf-8"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise SinkError(f"InfluxDB write raised {type(exc).__name__}: {exc}") from exc

        if response.status_code < 300:
            return
        raise SinkError(
            "InfluxDB write failed (HTTP %s). headers=%s body=%s"
            % (response.status_code, dict(response.headers), self._extract_body(response))
        )

    @staticmethod
    def _extract_body(response: requests.Response, limit: int = 512) -> str:
        try:
            body = response.text or ""
        except Exception as exc:  # pragma: no cover - extremely raro
            return f"<unable to decode body: {exc}>"
        if len(body) <= limit:
            return body
        return f"{body[:limit]}... [truncated {len(body) - limit} chars]"


def record_to_line(record: CompletedRecord, measurement: str) -> str:
    """Convierte un registro en el formato de línea que espera InfluxDB."""

    tags = {"sensor": record.sensor, "room": record.room}
    fields = {
        "temperature": float(record.temperature),
        "humidity": float(record.humidity),
        "battery_voltage": float(record.battery_voltage),
        "battery_level": int(record.battery_level),
    }
    ts_ns = int(record.timestamp.timestamp()) * 1_000_000_000 + record.timestamp.microsecond * 1_000
    return to_line(measurement, tags, fields, ts_ns)


def _escape_key(value: object) -> str:
    """Escape measurement, tag and field keys for Influx line protocol."""

    return (
        str(value)
        .replace("\\", "\\\\")
        .replace(",", "\\,")
        .replace(" ", "\\ ")
        .replace("=", "\\=")
    )


def _escape_measurement(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field_value(value: object) -> str:
    """Format a field value according to the Influx line protocol."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return format(value, ".15g")

    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def to_line(meas: str, tags: Mapping[str, object], fields: Mapping[str, object], ts_ns: int) -> str:
    measurement = _escape_measurement(meas)
    tags_payload = ",".join(
        f"{_escape_key(k)}={_escape_key(v)}" for k, v in sorted(tags.items())
    )
    fields_payload = ",".join(
        f"{_escape_key(k)}={_format_field_value(v)}" for k, v in fields.items()
    )

    if tags_payload:
        prefix = f"{measurement},{tags_payload}"
    else:
        prefix = measurement

    return f"{prefix} {fields_payload} {ts_ns}"
