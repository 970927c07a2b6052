"""Cache metrics and health checks."""

from .health import HealthCheckResult, check_cache_health
from .metrics import CacheMetrics, MetricsRecorder

__all__ = ["CacheMetrics", "MetricsRecorder", "HealthCheckResult", "check_cache_health"]
