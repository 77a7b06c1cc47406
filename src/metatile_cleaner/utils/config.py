"""
Configuration Management

Run parameters for the metatile cleaner. Defaults can be supplied through
environment variables and are overridden by command-line flags; validate()
must pass before any work starts.

Environment variables:
    METATILE_CLEANER_BUILD_ID, METATILE_CLEANER_BUCKET,
    METATILE_CLEANER_CONCURRENCY, METATILE_CLEANER_MIN_ZOOM,
    METATILE_CLEANER_MAX_ZOOM, METATILE_CLEANER_BOUNDS,
    METATILE_CLEANER_QUEUE_SIZE, AWS_REGION, AWS_ENDPOINT_URL_S3,
    PROMETHEUS_PUSHGATEWAY
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from ..exceptions import ConfigurationError
from ..tile_generation.tile_enumerator import BoundingBox


ENV_PREFIX = "METATILE_CLEANER_"

# Highest zoom whose tile indices still fit the key format comfortably
MAX_SUPPORTED_ZOOM = 30

# Largest number of keys a single delete request may carry
MAX_BATCH_SIZE = 500


@dataclass
class AWSConfig:
    """S3 client settings."""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    max_attempts: int = 5


@dataclass
class MetricsConfig:
    """Prometheus settings."""
    enable_prometheus: bool = True
    prometheus_gateway: Optional[str] = None
    job_name: str = "metatile_cleaner"


@dataclass
class CleanerConfig:
    """Parameters of one cleanup run."""
    build_id: str = ""
    bucket: str = ""
    concurrency: int = 32
    min_zoom: int = 0
    max_zoom: int = 13
    bounds: BoundingBox = field(default_factory=BoundingBox.world)
    inverted_y: bool = False
    queue_size: int = 10000
    max_batch_size: int = 500
    report_interval: float = 1.0
    dry_run: bool = False
    aws: AWSConfig = field(default_factory=AWSConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    @property
    def zooms(self) -> Tuple[int, ...]:
        return tuple(range(self.min_zoom, self.max_zoom + 1))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CleanerConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: If a variable holds an unparseable value
        """
        env = os.environ if environ is None else environ
        config = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        try:
            config.build_id = get("BUILD_ID") or config.build_id
            config.bucket = get("BUCKET") or config.bucket

            for name in ("concurrency", "min_zoom", "max_zoom", "queue_size"):
                value = get(name.upper())
                if value is not None:
                    setattr(config, name, int(value))

            bounds = get("BOUNDS")
            if bounds is not None:
                config.bounds = BoundingBox.parse(bounds)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

        config.aws.region = env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION")
        config.aws.endpoint_url = env.get("AWS_ENDPOINT_URL_S3") or None
        config.metrics.prometheus_gateway = env.get("PROMETHEUS_PUSHGATEWAY") or None

        return config

    def validate(self) -> None:
        """
        Check the configuration before a run.

        Raises:
            ConfigurationError: On the first invalid value found
        """
        if not self.build_id:
            raise ConfigurationError("Specify build-id")

        if not self.bucket:
            raise ConfigurationError("Specify bucket")

        if self.concurrency < 1:
            raise ConfigurationError(f"Concurrency must be at least 1, got {self.concurrency}")

        if self.min_zoom < 0:
            raise ConfigurationError(f"Minimum zoom must not be negative, got {self.min_zoom}")

        if self.max_zoom < self.min_zoom:
            raise ConfigurationError(
                f"Maximum zoom {self.max_zoom} is below minimum zoom {self.min_zoom}"
            )

        if self.max_zoom > MAX_SUPPORTED_ZOOM:
            raise ConfigurationError(
                f"Maximum zoom must not exceed {MAX_SUPPORTED_ZOOM}, got {self.max_zoom}"
            )

        if self.queue_size < 1:
            raise ConfigurationError(f"Queue size must be at least 1, got {self.queue_size}")

        if not 1 <= self.max_batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"Batch size must be between 1 and {MAX_BATCH_SIZE}, got {self.max_batch_size}"
            )

        if self.report_interval <= 0:
            raise ConfigurationError("Report interval must be positive")

        if self.aws.max_attempts < 1:
            raise ConfigurationError("AWS max attempts must be at least 1")

        try:
            self.bounds.validate()
        except ValueError as e:
            raise ConfigurationError(f"Invalid bounds: {e}") from e
