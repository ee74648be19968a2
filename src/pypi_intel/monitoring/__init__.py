"""Request and cache metrics collection."""

from .metrics import FetchMetrics, MetricsCollector

__all__ = ["FetchMetrics", "MetricsCollector"]
