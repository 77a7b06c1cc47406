"""Configuration and logging helpers."""

from .config import AWSConfig, CleanerConfig, MetricsConfig
from .logging_config import configure_logging

__all__ = ["AWSConfig", "CleanerConfig", "MetricsConfig", "configure_logging"]
