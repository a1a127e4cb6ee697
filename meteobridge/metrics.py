import json
import logging
import time
from collections import Counter, defaultdict
from typing import Callable, DefaultDict, Dict, Optional

COUNTERS = (
    "devices_discovered",
    "devices_removed",
    "advertisements_routed",
    "decode_errors",
    "voltage_samples",
    "meteo_samples",
    "unrecognized_samples",
    "records_emitted",
    "records_skipped_no_voltage",
    "sink_failures",
)


class IngestMetrics:
    """Counters for the advertisement -> record pipeline, dumped periodically as JSON.

    Counters incremented with a ``room`` are also kept per room, so the dump
    shows which sensor stopped producing records.
    """

    def __init__(
        self,
        log_interval_s: float = 300.0,
        logger: Optional[logging.Logger] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.log_interval_s = max(0.0, float(log_interval_s))
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._started = clock()
        self._last_dump = self._started
        self._totals: Counter = Counter({name: 0 for name in COUNTERS})
        self._at_last_dump: Counter = Counter(self._totals)
        self._per_room: DefaultDict[str, Counter] = defaultdict(Counter)

    def increment(self, name: str, count: int = 1, *, room: Optional[str] = None) -> None:
        if name not in self._totals:
            raise KeyError(f"contador desconocido: {name}")
        if count <= 0:
            return
        self._totals[name] += count
        if room is not None:
            self._per_room[room][name] += count
        self.maybe_log()

    def snapshot(self) -> Dict[str, int]:
        return dict(self._totals)

    def room_snapshot(self, room: str) -> Dict[str, int]:
        return dict(self._per_room.get(room, {}))

    def maybe_log(self, force: bool = False) -> None:
        now = self._clock()
        elapsed = now - self._last_dump
        if not force and (self.log_interval_s == 0.0 or elapsed < self.log_interval_s):
            return

        totals = dict(self._totals)
        payload = {
            "type": "ingest_metrics",
            "uptime_s": round(now - self._started, 3),
            "interval_s": round(elapsed, 3),
            "counters": totals,
            "delta": {name: totals[name] - self._at_last_dump[name] for name in COUNTERS},
            "rooms": {room: dict(counts) for room, counts in sorted(self._per_room.items())},
        }
        self._last_dump = now
        self._at_last_dump = Counter(totals)
        self._logger.info("ingest_metrics %s", json.dumps(payload, sort_keys=True))
