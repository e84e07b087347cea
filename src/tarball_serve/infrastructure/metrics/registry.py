"""
メトリクスレジストリの抽象と prometheus-client 実装。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from prometheus_client import (
    CollectorRegistry,
    Counter as PrometheusCounter,
    Gauge as PrometheusGauge,
    Histogram as PrometheusHistogram,
    start_http_server,
)


class Gauge(Protocol):
    def set(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        ...


class Counter(Protocol):
    def inc(self, value: float = 1.0, labels: Mapping[str, str] | None = None) -> None:
        ...


class Histogram(Protocol):
    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        ...


class MetricsRegistry(Protocol):
    def gauge(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Gauge:
        ...

    def counter(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Counter:
        ...

    def histogram(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Histogram:
        ...


class _LabelledMetric:
    """ラベル有無の分岐を吸収する prometheus メトリクスのラッパー。"""

    def __init__(self, metric: Any) -> None:
        self._metric = metric

    def _target(self, labels: Mapping[str, str] | None) -> Any:
        return self._metric.labels(**labels) if labels else self._metric

    def set(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        self._target(labels).set(value)

    def inc(self, value: float = 1.0, labels: Mapping[str, str] | None = None) -> None:
        self._target(labels).inc(value)

    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        self._target(labels).observe(value)


@dataclass
class PrometheusMetricsRegistry(MetricsRegistry):
    """
    prometheus-client を利用する MetricsRegistry 実装。
    同名・同ラベルのメトリクスは一度だけ登録する。
    """

    registry: CollectorRegistry
    histogram_buckets: Mapping[str, Sequence[float]] | None = None

    _metrics: dict[tuple[str, str, tuple[str, ...]], _LabelledMetric] = field(default_factory=dict, init=False)

    def gauge(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Gauge:
        return self._get_or_create("gauge", PrometheusGauge, name, documentation, labels)

    def counter(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Counter:
        return self._get_or_create("counter", PrometheusCounter, name, documentation, labels)

    def histogram(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Histogram:
        extra: dict[str, Any] = {}
        if self.histogram_buckets and self.histogram_buckets.get(name):
            extra["buckets"] = tuple(float(boundary) for boundary in self.histogram_buckets[name])
        return self._get_or_create("histogram", PrometheusHistogram, name, documentation, labels, **extra)

    def _get_or_create(
        self,
        kind: str,
        factory: Any,
        name: str,
        documentation: str,
        labels: tuple[str, ...] | None,
        **extra: Any,
    ) -> _LabelledMetric:
        label_names = tuple(sorted(labels)) if labels else ()
        key = (kind, name, label_names)
        metric = self._metrics.get(key)
        if metric is None:
            metric = _LabelledMetric(
                factory(name, documentation, labelnames=label_names, registry=self.registry, **extra)
            )
            self._metrics[key] = metric
        return metric


def start_metrics_http_server(
    registry: CollectorRegistry,
    *,
    host: str,
    port: int,
) -> object | None:
    """
    Prometheus `/metrics` エンドポイントを別ポートで公開する。
    port が 0 以下の場合はサーバを起動しない。
    """

    if port <= 0:
        return None
    return start_http_server(port, addr=host, registry=registry)
