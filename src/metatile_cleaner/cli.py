"""
Command-line entry point.

Usage:
    metatile-cleaner --build-id abc123 --bucket my-tiles [--concurrency 32] [--max-zoom 13]

Exit codes:
    0  all tiles processed (per-key errors are reported, not fatal)
    1  a delete call failed as a whole; the run was aborted
    2  invalid or missing parameters
    3  the S3 session or client could not be created
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

import structlog

from .deletion.object_store import DryRunObjectStore, ObjectStore, S3ObjectStore
from .exceptions import ConfigurationError, FatalDeleteError, StoreError
from .monitoring.metrics import MetricsCollector
from .processing.cleanup_pipeline import CleanupPipeline
from .tile_generation.tile_enumerator import BoundingBox
from .utils.config import CleanerConfig
from .utils.logging_config import configure_logging


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG_ERROR = 2
EXIT_SETUP_ERROR = 3


def _bounds(value: str) -> BoundingBox:
    try:
        return BoundingBox.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _attach_bounds_value(argv: List[str]) -> List[str]:
    """Rewrite `--bounds -10,35,30,60` as `--bounds=-10,35,30,60`."""
    # argparse takes a value with a leading minus for an option name
    result: List[str] = []
    i = 0
    while i < len(argv):
        value = argv[i + 1] if i + 1 < len(argv) else ""
        if argv[i] == "--bounds" and value[:1] == "-" and value[1:2] in "0123456789.":
            result.append(f"--bounds={value}")
            i += 2
            continue
        result.append(argv[i])
        i += 1
    return result


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metatile-cleaner",
        description="Delete the metatiles of a build from an S3 bucket"
    )
    parser.add_argument('--build-id', help='The build ID to delete')
    parser.add_argument('--bucket', help='The name of the S3 bucket to delete metatiles from')
    parser.add_argument('--concurrency', type=int,
                        help='The number of delete workers (default: 32)')
    parser.add_argument('--max-zoom', type=int,
                        help='The maximum zoom to use when deleting metatiles (default: 13)')
    parser.add_argument('--min-zoom', type=int,
                        help='The minimum zoom to use when deleting metatiles (default: 0)')
    parser.add_argument('--bounds', type=_bounds,
                        help='Bounding box as west,south,east,north (default: whole world)')
    parser.add_argument('--inverted-y', action='store_true', default=None,
                        help='Number tile rows from the south (TMS)')
    parser.add_argument('--queue-size', type=int,
                        help='Maximum number of tiles buffered between producer and workers')
    parser.add_argument('--batch-size', type=int, dest='max_batch_size',
                        help='Keys per DeleteObjects request, at most 500 (default: 500)')
    parser.add_argument('--report-interval', type=float,
                        help='Seconds between progress lines (default: 1)')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Enumerate keys without deleting anything')
    parser.add_argument('--region', help='AWS region of the bucket')
    parser.add_argument('--endpoint-url', help='S3-compatible endpoint URL')
    parser.add_argument('--max-attempts', type=int,
                        help='Attempts per request in botocore standard retry mode (default: 5)')
    parser.add_argument('--prometheus-gateway', help='Prometheus pushgateway address')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--json-logs', action='store_true', help='Emit JSON log lines')

    if argv is None:
        argv = sys.argv[1:]

    return parser.parse_args(_attach_bounds_value(list(argv)))


def build_config(args: argparse.Namespace, environ=None) -> CleanerConfig:
    """Environment defaults overridden by command-line flags."""
    config = CleanerConfig.from_env(environ)

    for name in ('build_id', 'bucket', 'concurrency', 'max_zoom', 'min_zoom', 'bounds',
                 'inverted_y', 'queue_size', 'max_batch_size', 'report_interval', 'dry_run'):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)

    if args.region is not None:
        config.aws.region = args.region
    if args.endpoint_url is not None:
        config.aws.endpoint_url = args.endpoint_url
    if args.max_attempts is not None:
        config.aws.max_attempts = args.max_attempts
    if args.prometheus_gateway is not None:
        config.metrics.prometheus_gateway = args.prometheus_gateway

    return config


def create_store(config: CleanerConfig) -> ObjectStore:
    if config.dry_run:
        return DryRunObjectStore()

    return S3ObjectStore(
        region=config.aws.region,
        endpoint_url=config.aws.endpoint_url,
        max_attempts=config.aws.max_attempts,
        max_pool_connections=config.concurrency
    )


def _terminate(code: int) -> None:
    """Exit immediately without waiting for worker threads."""
    logging.shutdown()
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.json_logs)
    logger = structlog.get_logger(component="cli")

    try:
        config = build_config(args)
        config.validate()
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    try:
        store = create_store(config)
    except StoreError as e:
        logger.error("Couldn't create AWS session", error=str(e))
        return EXIT_SETUP_ERROR

    metrics = MetricsCollector(
        enable_prometheus=config.metrics.enable_prometheus,
        prometheus_gateway=config.metrics.prometheus_gateway,
        job_name=config.metrics.job_name,
        grouping_key={'build_id': config.build_id}
    )
    pipeline = CleanupPipeline(config, store, metrics=metrics)

    try:
        pipeline.run()
    except FatalDeleteError as e:
        logger.critical("Aborting run", error=str(e), **e.statistics)
        _terminate(EXIT_FATAL)
        return EXIT_FATAL

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
