"""
チャネルレジストリの定期リフレッシュワーカー。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from tarball_serve.application.services import ChannelRegistry, RegistryRefreshError

LOGGER = logging.getLogger("tarball_serve.registry.worker")


@dataclass(frozen=True)
class RefreshWorkerConfig:
    """
    リフレッシュワーカーの設定。
    """

    interval_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds は正の値である必要があります。")


class RegistryRefreshWorker:
    """
    専用スレッドで `ChannelRegistry.refresh_once` を一定間隔で呼び出す。

    失敗したサイクルはログに残して次回に持ち越す。`trigger` で待機を打ち切り、
    即時にリフレッシュさせられる。停止はサイクルの合間でのみ行われる。
    """

    def __init__(self, *, registry: ChannelRegistry, config: RefreshWorkerConfig) -> None:
        self._registry = registry
        self._config = config
        self._stopping = threading.Event()
        self._wakeup = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        LOGGER.info("Starting registry refresh worker (interval=%.1fs)", self._config.interval_seconds)
        self._stopping.clear()
        self._thread = threading.Thread(target=self.run, name="registry-refresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        LOGGER.info("Stopping registry refresh worker")
        self._stopping.set()
        self._wakeup.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def trigger(self) -> None:
        """次の待機を打ち切って即時リフレッシュを要求する。"""

        self._wakeup.set()

    def run(self) -> None:
        while not self._stopping.is_set():
            self._wakeup.wait(self._config.interval_seconds)
            self._wakeup.clear()
            if self._stopping.is_set():
                break
            self.run_cycle()

    def run_cycle(self) -> bool:
        try:
            self._registry.refresh_once()
        except RegistryRefreshError as exc:
            LOGGER.error("Channel registry refresh failed, keeping previous snapshot: %s", exc)
            return False
        except Exception:  # pragma: no cover - 想定外の例外でもループは継続する
            LOGGER.exception("Unexpected error during channel registry refresh")
            return False
        return True
