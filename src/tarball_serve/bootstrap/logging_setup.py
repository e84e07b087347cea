"""
ロギング初期化ロジック。
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Mapping

from .container import InvalidConfigurationError, LoggingConfigurator

PACKAGE_LOGGER = "tarball_serve"


class DictConfigLoggingConfigurator(LoggingConfigurator):
    """
    `logging` セクションを ``logging.config.dictConfig`` に渡す。

    `level_override` は CLI の ``--log-level`` 用で、dictConfig 適用後に
    ``tarball_serve`` 配下のロガーにだけ反映する。
    """

    def __init__(self, *, level_override: str | None = None) -> None:
        self._level_override = level_override

    def configure(self, config: Mapping[str, Any]) -> None:
        try:
            logging.config.dictConfig(_plain(config))
        except (ValueError, TypeError, AttributeError) as exc:
            raise InvalidConfigurationError(f"logging 設定の適用に失敗しました: {exc}") from exc

        if self._level_override:
            logging.getLogger(PACKAGE_LOGGER).setLevel(_parse_level(self._level_override))


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise InvalidConfigurationError(f"不明なログレベルです: {name}")
    return level


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    return value
