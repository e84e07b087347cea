"""
チャネルカタログのスナップショットを保持し、ストレージから再読込するサービス。
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from tarball_serve.application.observability import get_metrics_recorder
from tarball_serve.domain import ChannelConfig, ChannelSnapshot
from tarball_serve.infrastructure.storage import ChannelRepository, StorageError

LOGGER = logging.getLogger("tarball_serve.registry")


class RegistryRefreshError(RuntimeError):
    """カタログまたはチャネル設定の取得・解析に失敗した。"""


class ChannelRegistry:
    """
    現在のスナップショットを単一参照として保持する。

    リフレッシュは置き換え用のスナップショットを完全に組み立ててから参照を
    差し替える。読み手はロックを取らず、常に古いか新しいかのどちらか一方の
    スナップショット全体を観測する。書き手はリフレッシュループのみ。
    """

    def __init__(
        self,
        *,
        repository: ChannelRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._snapshot: ChannelSnapshot | None = None

    @property
    def snapshot(self) -> ChannelSnapshot:
        """最後に成功したリフレッシュのスナップショット。未取得なら空。"""

        current = self._snapshot
        if current is None:
            return ChannelSnapshot()
        return current

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def refresh_once(self) -> ChannelSnapshot:
        """
        カタログと全チャネル設定を読み込み、成功した場合のみ差し替える。

        Raises:
            RegistryRefreshError: いずれかのオブジェクトが欠落・不正な場合。
                この場合、現在のスナップショットは変更されない。
        """

        started = time.monotonic()
        try:
            snapshot = self._load_snapshot()
        except RegistryRefreshError:
            get_metrics_recorder().observe_registry_refresh("failure", time.monotonic() - started, None)
            raise

        self._snapshot = snapshot
        get_metrics_recorder().observe_registry_refresh("success", time.monotonic() - started, len(snapshot))
        for name in snapshot:
            config = snapshot.channels[name]
            LOGGER.info("Channel %s points to: %s", name, config.permanent_key or "(nothing yet)")
        return snapshot

    def _load_snapshot(self) -> ChannelSnapshot:
        try:
            catalog = self._repository.load_catalog().value
        except StorageError as exc:
            raise RegistryRefreshError(f"Failed to load channels.json: {exc}") from exc

        LOGGER.debug("Loaded channel catalog: %s", sorted(catalog.channels))

        channels: dict[str, ChannelConfig] = {}
        for channel_name in sorted(catalog.channels):
            try:
                channels[channel_name] = self._repository.load_channel(channel_name).value
            except StorageError as exc:
                raise RegistryRefreshError(
                    f"Configured channel {channel_name!r} has no usable {channel_name}.json in the bucket: {exc}"
                ) from exc

        return ChannelSnapshot(channels=channels, loaded_at=self._clock())
