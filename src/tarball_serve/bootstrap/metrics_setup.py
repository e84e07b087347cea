"""
メトリクス初期化ロジック。

`metrics.provider` ごとに初期化処理を切り替える。redirect サーバとは別ポートで
エクスポータを公開し、`/channel` `/permanent` 以外の経路をサーバ側に増やさない。
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from prometheus_client import CollectorRegistry

from tarball_serve.application.observability import reset_observability, use_metrics_recorder
from tarball_serve.infrastructure.metrics import (
    MetricsRecorder,
    PrometheusMetricsRegistry,
    start_metrics_http_server,
)

from .container import InvalidConfigurationError, MetricsConfigurator

LOGGER = logging.getLogger("tarball_serve.bootstrap.metrics")


class MetricsConfiguratorRegistry(MetricsConfigurator):
    """provider 名で委譲先を選ぶ。"""

    def __init__(self, delegates: Mapping[str, MetricsConfigurator]) -> None:
        if not delegates:
            raise ValueError("メトリクス設定の委譲先が定義されていません。")
        self._delegates = dict(delegates)

    def configure(self, config: Mapping[str, Any]) -> None:
        provider = _provider(config)
        try:
            delegate = self._delegates[provider]
        except KeyError:
            known = ", ".join(sorted(self._delegates))
            raise InvalidConfigurationError(
                f"metrics.provider '{provider}' はサポートされていません (利用可能: {known})。"
            ) from None
        delegate.configure(config)


class _ProviderConfigurator(MetricsConfigurator):
    EXPECTED_PROVIDER = ""

    def configure(self, config: Mapping[str, Any]) -> None:
        provider = _provider(config)
        if provider != self.EXPECTED_PROVIDER:
            raise InvalidConfigurationError(
                f"provider '{provider}' は {type(self).__name__} では扱えません。"
            )
        options = config.get("options") or {}
        if not isinstance(options, Mapping):
            raise InvalidConfigurationError("metrics.options は Mapping である必要があります。")
        self._apply(options)

    def _apply(self, options: Mapping[str, Any]) -> None:
        raise NotImplementedError


class NoopMetricsConfigurator(_ProviderConfigurator):
    """テストやローカル開発向け。記録はすべて破棄される。"""

    EXPECTED_PROVIDER = "noop"

    def _apply(self, options: Mapping[str, Any]) -> None:  # noqa: ARG002
        MetricsRecorder.reset()
        reset_observability()


class PrometheusMetricsConfigurator(_ProviderConfigurator):
    """
    prometheus-client のレジストリを作成して MetricsRecorder に登録する。

    `serve_http` が False の場合はエクスポータを起動しない（publish など短命な CLI 用）。
    作成したレジストリは `registry` 属性から参照できる。
    """

    EXPECTED_PROVIDER = "prometheus"

    def __init__(self, *, serve_http: bool = True) -> None:
        self._serve_http = serve_http
        self.registry: CollectorRegistry | None = None

    def _apply(self, options: Mapping[str, Any]) -> None:
        registry = CollectorRegistry()
        MetricsRecorder.configure(
            PrometheusMetricsRegistry(
                registry=registry,
                histogram_buckets=_parse_histogram_buckets(options.get("histogram_buckets")),
            ),
            default_labels=_parse_default_labels(options.get("default_labels")),
        )
        use_metrics_recorder(MetricsRecorder)
        self.registry = registry

        if not self._serve_http:
            return
        host = str(options.get("host", "127.0.0.1"))
        port = _parse_port(options.get("port", 0))
        if start_metrics_http_server(registry, host=host, port=port) is not None:
            LOGGER.info("Prometheus exporter listening on %s:%d", host, port)


def _provider(config: Mapping[str, Any]) -> str:
    provider = config.get("provider")
    if not isinstance(provider, str) or not provider:
        raise InvalidConfigurationError("metrics.provider は空でない文字列である必要があります。")
    return provider


def _parse_port(raw: Any) -> int:
    try:
        port = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError(f"metrics.options.port は整数である必要があります: {raw!r}") from exc
    if not 0 <= port < 65536:
        raise InvalidConfigurationError(f"metrics.options.port が範囲外です: {port}")
    return port


def _parse_histogram_buckets(raw: Any) -> Mapping[str, list[float]] | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise InvalidConfigurationError("metrics.options.histogram_buckets は Mapping である必要があります。")
    try:
        return {str(name): sorted(float(bound) for bound in bounds) for name, bounds in raw.items() if bounds}
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError("histogram_buckets の境界値は数値の配列である必要があります。") from exc


def _parse_default_labels(raw: Any) -> Mapping[str, str]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise InvalidConfigurationError("metrics.options.default_labels は Mapping である必要があります。")
    return {str(key): str(value) for key, value in raw.items()}
