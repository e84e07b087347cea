"""
設定 YAML 群を読み込み、検証済みの ConfigBundle を生成するローダ。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .container import (
    ConfigBundle,
    ConfigLoader,
    InvalidConfigurationError,
    MissingConfigurationError,
    Overrides,
)

ENVIRONMENT_VARIABLE = "SERVICE_ENV"


class LoggingConfigModel(BaseModel):
    """logging 設定の最小検証モデル。dictConfig にそのまま渡す。"""

    model_config = ConfigDict(extra="allow")

    version: int


class MetricsConfigModel(BaseModel):
    """metrics 設定の最小検証モデル。"""

    model_config = ConfigDict(extra="allow")

    provider: str


class StorageConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: Literal["s3", "filesystem"]
    bucket: str | None = None
    endpoint_url: str | None = None
    region: str | None = None
    force_path_style: bool
    presign_ttl_seconds: int = Field(gt=0)
    root: str | None = None
    public_url: str | None = None


class ServerConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str
    host: str
    port: int = Field(gt=0, lt=65536)
    archive_extensions: list[str]

    @field_validator("archive_extensions")
    @classmethod
    def _extensions_start_with_period(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("archive_extensions は 1 つ以上必要です。")
        for extension in value:
            if not extension.startswith("."):
                raise ValueError(f"拡張子は '.' で始まる必要があります: {extension!r}")
        return value


class AuthConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jwt_public_key_path: str | None = None
    leeway_seconds: float = Field(ge=0)


class RegistryConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    refresh_interval_seconds: float = Field(gt=0)


class AppConfigModel(BaseModel):
    """
    アプリケーション全体の設定バリデーション。

    logging と metrics は最低限の構造のみを検証し、その他のセクションは
    キーまで厳密に検証する。
    """

    model_config = ConfigDict(extra="allow")

    logging: LoggingConfigModel
    metrics: MetricsConfigModel
    storage: StorageConfigModel
    server: ServerConfigModel
    auth: AuthConfigModel
    registry: RegistryConfigModel


class YamlConfigLoader(ConfigLoader):
    """
    `configs/base/*.yaml` に `configs/envs/<env>/*.yaml` を重ね、最後に CLI の上書きを適用する。

    環境ディレクトリは空でもよいが、base に存在しないキーを追加することはできない。
    上書き値のうち None は「指定なし」として捨てる。
    """

    def __init__(self, project_root: Path, *, environment: str | None = None) -> None:
        self._configs_root = project_root.resolve() / "configs"
        self._environment = environment or os.getenv(ENVIRONMENT_VARIABLE)

    def load(self, overrides: Overrides | None = None) -> ConfigBundle:
        if not self._environment:
            raise MissingConfigurationError(
                f"--env か環境変数 {ENVIRONMENT_VARIABLE} で設定環境を指定してください。"
            )

        base = _read_tree(_existing_dir(self._configs_root / "base"), allow_empty=False)
        overlay = _read_tree(_existing_dir(self._configs_root / "envs" / self._environment), allow_empty=True)
        _validate_overlay_keys(base, overlay)

        merged = _deep_merge(base, overlay)
        if overrides:
            merged = _deep_merge(merged, _drop_none(overrides))

        try:
            validated = AppConfigModel.model_validate(merged)
        except ValidationError as exc:
            raise InvalidConfigurationError(f"設定値の検証に失敗しました ({self._environment}): {exc}") from exc
        return ConfigBundle(root=validated.model_dump(), environment=self._environment)


def _existing_dir(directory: Path) -> Path:
    if not directory.is_dir():
        raise MissingConfigurationError(f"設定ディレクトリが存在しません: {directory}")
    return directory


def _read_tree(directory: Path, *, allow_empty: bool) -> dict[str, Any]:
    paths = sorted(path for path in directory.rglob("*") if path.suffix in (".yaml", ".yml"))
    if not paths and not allow_empty:
        raise MissingConfigurationError(f"{directory} に YAML ファイルが存在しません。")

    merged: dict[str, Any] = {}
    for path in paths:
        merged = _deep_merge(merged, _read_yaml(path))
    return merged


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(f"YAML の解析に失敗しました: {path}") from exc
    if not isinstance(content, Mapping):
        raise InvalidConfigurationError(f"YAML のトップレベルは空でない Mapping である必要があります: {path}")
    return content


def _deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _drop_none(overrides: Overrides) -> dict[str, dict[str, Any]]:
    return {
        section: {key: value for key, value in values.items() if value is not None}
        for section, values in overrides.items()
    }


def _validate_overlay_keys(base: Mapping[str, Any], overlay: Mapping[str, Any], prefix: str = "") -> None:
    """環境差分は base で定義済みのキーだけを上書きできる。"""

    for key, value in overlay.items():
        dotted = f"{prefix}{key}"
        if key not in base:
            raise InvalidConfigurationError(
                f"'{dotted}' は configs/base に定義されていません。環境差分から新しいキーは追加できません。"
            )
        if not isinstance(value, Mapping):
            continue
        if not isinstance(base[key], Mapping):
            raise InvalidConfigurationError(f"'{dotted}' は base ではスカラー値のため Mapping で上書きできません。")
        # logging.loggers のように環境ごとに要素を足すセクションは対象外
        if dotted in _OPEN_SECTIONS:
            continue
        _validate_overlay_keys(base[key], value, f"{dotted}.")


_OPEN_SECTIONS = frozenset({"logging.loggers", "metrics.options.default_labels"})
