"""Command line entry point: listen to BLE advertisements and forward records to InfluxDB."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from bleak.exc import BleakError

from meteobridge.aggregator import SensorAggregator
from meteobridge.ble.scanner import AdvertisementSource, BleakAdvertisementSource
from meteobridge.classify import ClassifiedSample
from meteobridge.config import AppConfig, ConfigurationError, load_app_config, load_env_file
from meteobridge.config.store import DEFAULT_CONFIG_PATH
from meteobridge.dispatch import DispatchLoop
from meteobridge.mailbox import Mailbox
from meteobridge.metrics import IngestMetrics
from meteobridge.router import DeviceRouter
from meteobridge.sinks import RecordSink, build_sink

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meteobridge",
        description="Escucha anuncios BTHome de los sensores configurados y los envía a InfluxDB.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Archivo YAML de configuración (por defecto: %(default)s).",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Archivo .env con variables INFLUX_* que sobrescriben la configuración.",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        default=None,
        help="No escribe en InfluxDB; solo registra los registros en el log.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Registra cada muestra clasificada y cada registro emitido.",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO if verbose else logging.WARNING, format=LOG_FORMAT)
    else:
        logging.getLogger().setLevel(logging.INFO if verbose else logging.WARNING)


async def run_service(
    config: AppConfig,
    *,
    source: Optional[AdvertisementSource] = None,
    sink: Optional[RecordSink] = None,
    metrics: Optional[IngestMetrics] = None,
) -> None:
    """Start one worker per sensor and run the dispatch loop until the sources end."""

    metrics = metrics or IngestMetrics(log_interval_s=config.metrics.log_interval_s)
    sink = sink or build_sink(config)
    source = source or BleakAdvertisementSource(
        addresses=config.sensors,
        adapter=config.bluetooth.adapter,
        device_timeout_s=config.bluetooth.device_timeout_s,
        queue_size=config.mailbox_size,
    )

    mailboxes: Dict[str, Mailbox[ClassifiedSample]] = {}
    workers: List[asyncio.Task] = []
    for address, room in config.sensors.items():
        mailbox: Mailbox[ClassifiedSample] = Mailbox(config.mailbox_size)
        mailboxes[address] = mailbox
        aggregator = SensorAggregator(
            address,
            room,
            mailbox,
            sink,
            config.influx.measurement,
            metrics=metrics,
        )
        workers.append(asyncio.create_task(aggregator.run(), name=f"sensor-{address}"))

    router = DeviceRouter(mailboxes, metrics=metrics)
    loop = DispatchLoop(source, config.sensors, router, metrics=metrics)
    try:
        await loop.run()
    finally:
        for mailbox in mailboxes.values():
            await mailbox.close()
        results = await asyncio.gather(*workers, return_exceptions=True)
        for address, result in zip(mailboxes, results):
            if isinstance(result, Exception):
                logger.error("El worker del sensor %s terminó con error: %r", address, result)
        sink.close()
        metrics.maybe_log(force=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    env = {}
    try:
        if args.env_file is not None:
            env.update(load_env_file(args.env_file))
        env.update(os.environ)
        config = load_app_config(
            args.config,
            env=env,
            overrides={"dry_run": args.dry_run, "verbose": args.verbose},
        )
    except ConfigurationError as exc:
        configure_logging(verbose=False)
        logger.error("Configuración inválida: %s", exc)
        return 2

    configure_logging(config.verbose)
    try:
        asyncio.run(run_service(config))
    except KeyboardInterrupt:
        logger.warning("Servicio interrumpido por el usuario.")
    except BleakError as exc:
        logger.error("Error del adaptador Bluetooth: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
