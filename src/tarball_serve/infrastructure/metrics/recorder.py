"""
redirect サーバと publish CLI が記録するメトリクス。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .registry import Counter, Gauge, Histogram, MetricsRegistry


@dataclass
class _MetricHandles:
    redirects_total: Counter
    registry_refresh_total: Counter
    registry_refresh_duration_seconds: Histogram
    registry_channels: Gauge
    publish_total: Counter


class MetricsRecorder:
    """
    クラス属性にハンドルを保持するグローバルな記録口。

    `configure` 前、または `reset` 後の呼び出しはすべて無視される。
    """

    _handles: _MetricHandles | None = None
    _default_labels: Mapping[str, str] = {}

    @classmethod
    def configure(
        cls,
        registry: MetricsRegistry,
        *,
        default_labels: Mapping[str, str] | None = None,
    ) -> None:
        cls._default_labels = dict(default_labels or {})
        base = tuple(cls._default_labels)

        cls._handles = _MetricHandles(
            redirects_total=registry.counter(
                "tarball_serve_redirects",
                "Number of redirect requests by route and status code",
                labels=base + ("route", "status"),
            ),
            registry_refresh_total=registry.counter(
                "tarball_serve_registry_refresh",
                "Number of channel registry refresh cycles by outcome",
                labels=base + ("outcome",),
            ),
            registry_refresh_duration_seconds=registry.histogram(
                "tarball_serve_registry_refresh_duration_seconds",
                "Duration of channel registry refresh cycles in seconds",
                labels=base or None,
            ),
            registry_channels=registry.gauge(
                "tarball_serve_registry_channels",
                "Number of channels in the current snapshot",
                labels=base or None,
            ),
            publish_total=registry.counter(
                "tarball_serve_publish",
                "Number of publish operations by outcome",
                labels=base + ("outcome",),
            ),
        )

    @classmethod
    def _labels(cls, **extra: str) -> Mapping[str, str]:
        return {**cls._default_labels, **extra}

    @classmethod
    def increment_redirects(cls, route: str, status: int) -> None:
        if cls._handles is None:
            return
        cls._handles.redirects_total.inc(1.0, labels=cls._labels(route=route, status=str(status)))

    @classmethod
    def observe_registry_refresh(cls, outcome: str, duration_seconds: float, channel_count: int | None) -> None:
        """
        リフレッシュ 1 回分を記録する。

        `channel_count` は成功時のみ渡し、失敗時はゲージを直前の値のまま残す。
        """

        handles = cls._handles
        if handles is None:
            return
        handles.registry_refresh_total.inc(1.0, labels=cls._labels(outcome=outcome))
        handles.registry_refresh_duration_seconds.observe(duration_seconds, labels=cls._labels())
        if channel_count is not None:
            handles.registry_channels.set(float(channel_count), labels=cls._labels())

    @classmethod
    def increment_publish(cls, outcome: str) -> None:
        if cls._handles is None:
            return
        cls._handles.publish_total.inc(1.0, labels=cls._labels(outcome=outcome))

    @classmethod
    def reset(cls) -> None:
        cls._handles = None
        cls._default_labels = {}
