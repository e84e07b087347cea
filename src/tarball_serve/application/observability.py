"""
アプリケーション層から利用する観測性ユーティリティ。

Infrastructure 層で実際のメトリクス実装を登録するまでは
全て no-op として動作する。
"""

from __future__ import annotations

from typing import Protocol


class MetricsRecorderProtocol(Protocol):
    def increment_redirects(self, route: str, status: int) -> None: ...

    def observe_registry_refresh(self, outcome: str, duration_seconds: float, channel_count: int | None) -> None: ...

    def increment_publish(self, outcome: str) -> None: ...

    def reset(self) -> None: ...


class _NoopMetricsRecorder(MetricsRecorderProtocol):
    def increment_redirects(self, route: str, status: int) -> None:
        pass

    def observe_registry_refresh(self, outcome: str, duration_seconds: float, channel_count: int | None) -> None:
        pass

    def increment_publish(self, outcome: str) -> None:
        pass

    def reset(self) -> None:
        pass


metrics_recorder: MetricsRecorderProtocol = _NoopMetricsRecorder()


def use_metrics_recorder(recorder: MetricsRecorderProtocol) -> None:
    global metrics_recorder
    metrics_recorder = recorder


def get_metrics_recorder() -> MetricsRecorderProtocol:
    return metrics_recorder


def reset_observability() -> None:
    use_metrics_recorder(_NoopMetricsRecorder())
