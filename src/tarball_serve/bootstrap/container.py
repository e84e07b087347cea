"""
プロセス起動時の初期化を束ねるコンテナ。

`serve` と管理系 CLI の双方が同じ手順で設定・ロギング・メトリクスを
初期化できるように、各処理を差し替え可能なインターフェースとして受け取る。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

LOGGER = logging.getLogger("tarball_serve.bootstrap")

Overrides = Mapping[str, Mapping[str, Any]]


class ConfigLoader(Protocol):
    def load(self, overrides: Overrides | None = None) -> "ConfigBundle":
        ...


class LoggingConfigurator(Protocol):
    def configure(self, config: Mapping[str, Any]) -> None:
        ...


class MetricsConfigurator(Protocol):
    def configure(self, config: Mapping[str, Any]) -> None:
        ...


class BootstrapError(RuntimeError):
    """起動時の設定・初期化エラーの基底。CLI は終了コード 1 で終了する。"""


class MissingConfigurationError(BootstrapError):
    """必須の設定ファイル・セクション・値が見つからない。"""


class InvalidConfigurationError(BootstrapError):
    """設定値の型や内容が不正。"""


@dataclass(frozen=True)
class ConfigBundle:
    """
    マージ・検証済みの設定ツリー。

    `storage.bucket` のように YAML 側で null を既定値とするキーがあるため、
    `require_value` は None を未設定として扱う。
    """

    root: Mapping[str, Any]
    environment: str | None = None

    def require_section(self, section: str) -> Mapping[str, Any]:
        try:
            value = self.root[section]
        except KeyError:
            raise MissingConfigurationError(f"設定セクション '{section}' が存在しません。") from None
        if not isinstance(value, Mapping):
            raise InvalidConfigurationError(f"設定セクション '{section}' は Mapping である必要があります。")
        return value

    def require_value(self, section: str, key: str) -> Any:
        value = self.optional_value(section, key)
        if value is None:
            raise MissingConfigurationError(
                f"設定キー '{section}.{key}' が未設定です。YAML か CLI オプションで指定してください。"
            )
        return value

    def optional_value(self, section: str, key: str) -> Any:
        return self.require_section(section).get(key)


@dataclass(frozen=True)
class BootstrapContext:
    config: ConfigBundle

    @property
    def environment(self) -> str | None:
        return self.config.environment


@dataclass
class BootstrapContainer:
    """
    設定ロード → ロギング → メトリクスの順に初期化する。

    ロギングより前に失敗した場合はログ出力先が未確定のため、例外の送出のみ行う。
    """

    project_root: Path
    config_loader_factory: Callable[[Path], ConfigLoader]
    logging_configurator: LoggingConfigurator
    metrics_configurator: MetricsConfigurator

    def initialize(self, overrides: Overrides | None = None) -> BootstrapContext:
        config = self.config_loader_factory(self.project_root).load(overrides)

        self.logging_configurator.configure(config.require_section("logging"))
        self.metrics_configurator.configure(config.require_section("metrics"))

        LOGGER.debug("Bootstrapped environment %s from %s", config.environment, self.project_root)
        return BootstrapContext(config=config)
