"""
Monitoring Module

Run counters, Prometheus metrics and periodic progress reporting for the
cleanup pipeline.
"""

from .metrics import MetricsCollector, RunStatistics, StatisticsSnapshot
from .progress import ProgressReporter

__all__ = [
    "MetricsCollector",
    "RunStatistics",
    "StatisticsSnapshot",
    "ProgressReporter",
]
