"""
メトリクス関連の公開API。
"""

from .recorder import MetricsRecorder
from .registry import MetricsRegistry, PrometheusMetricsRegistry, start_metrics_http_server

__all__ = [
    "MetricsRecorder",
    "MetricsRegistry",
    "PrometheusMetricsRegistry",
    "start_metrics_http_server",
]
