"""
Command line entry point for the Redshift metrics collector.

Usage:
    redshift-metrics --sample-config           # Print an example settings.json
    redshift-metrics --once                    # One tick, JSON lines on stdout
    redshift-metrics --config settings.json    # Serve Prometheus metrics
"""

import argparse
import sys
import threading
from typing import Callable, Dict, Optional

from prometheus_client import start_http_server

from .config.settings import Settings, load_settings
from .errors import GatherError
from .monitoring.emitters import JsonLinesEmitter, PrometheusEmitter
from .plugin import INPUT_NAME, RedshiftInput, create_input
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

# Inputs this host knows how to build, keyed by config name
INPUT_FACTORIES: Dict[str, Callable[[Settings], RedshiftInput]] = {
    INPUT_NAME: create_input,
}


def run_once(redshift_input: RedshiftInput, stream=None) -> int:
    """Gather a single tick to stdout. Returns a process exit code."""
    emitter = JsonLinesEmitter(stream or sys.stdout)
    try:
        emitted = redshift_input.gather(emitter)
    except GatherError as e:
        logger.error(f"Collection finished with failures: {e}")
        return 1
    logger.info(f"Collected {sum(emitted.values())} records from {len(emitted)} queries")
    return 0


def serve(
    redshift_input: RedshiftInput,
    settings: Settings,
    stop_event: Optional[threading.Event] = None
) -> None:
    """Expose gauges over HTTP and gather on a fixed interval until stopped."""
    emitter = PrometheusEmitter()
    start_http_server(settings.exporter.port, addr=settings.exporter.host, registry=emitter.registry)
    logger.info(f"Serving metrics on {settings.exporter.host}:{settings.exporter.port}")

    stop_event = stop_event or threading.Event()
    interval = settings.collection.collection_interval_seconds

    while not stop_event.is_set():
        try:
            redshift_input.gather(emitter)
        except GatherError as e:
            # A failed tick is reported and the next one runs as scheduled
            logger.error(f"Collection tick failed: {e}")
        stop_event.wait(interval)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Redshift Metrics Collector')
    parser.add_argument('--config', default=None, help='Path to settings JSON file')
    parser.add_argument('--once', action='store_true', help='Collect once and print JSON lines')
    parser.add_argument('--log-level', default=None, help='Logging level')
    parser.add_argument('--sample-config', action='store_true', help='Print a sample configuration')

    args = parser.parse_args(argv)

    if args.sample_config:
        print(RedshiftInput.sample_config())
        return 0

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(log_level=args.log_level or settings.app.log_level, log_file=settings.app.log_file)

    try:
        redshift_input = INPUT_FACTORIES[INPUT_NAME](settings)
    except ValueError as e:
        logger.error(str(e))
        return 2

    if args.once:
        return run_once(redshift_input)

    try:
        serve(redshift_input, settings)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    return 0


if __name__ == '__main__':
    sys.exit(main())
