"""
チャネルとカタログのドメインエンティティ。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Iterator, Mapping

DEFAULT_FILE_EXTENSION = ".tar.xz"
CATALOG_OBJECT_KEY = "channels.json"


def channel_config_key(channel_name: str) -> str:
    """チャネル設定オブジェクトのキー `<name>.json` を返す。"""

    return f"{channel_name}.json"


@dataclass(frozen=True)
class ChannelConfig:
    """
    1 チャネル分の永続設定。

    `latest` は拡張子を含まないオブジェクトキーで、配信対象は
    `<latest><file_extension>` となる。
    """

    latest: str | None = None
    file_extension: str = DEFAULT_FILE_EXTENSION
    previous: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.file_extension or not self.file_extension.startswith("."):
            raise ValueError(f"file_extension は '.' で始まる必要があります: {self.file_extension!r}")
        if self.latest is not None and not self.latest:
            raise ValueError("latest は空文字列にできません。")

    @property
    def permanent_key(self) -> str | None:
        if self.latest is None:
            return None
        return f"{self.latest}{self.file_extension}"

    def advance(self, latest: str) -> "ChannelConfig":
        """`latest` を更新し、旧値を `previous` に積んだ新しい設定を返す。"""

        previous = self.previous
        if self.latest is not None:
            previous = previous + (self.latest,)
        return ChannelConfig(latest=latest, file_extension=self.file_extension, previous=previous)


@dataclass(frozen=True)
class Catalog:
    """`channels.json` に列挙されたチャネル名の集合。"""

    channels: frozenset[str] = frozenset()

    def __contains__(self, channel_name: object) -> bool:
        return channel_name in self.channels

    def with_channel(self, channel_name: str) -> "Catalog":
        return Catalog(channels=self.channels | {channel_name})


@dataclass(frozen=True)
class ChannelSnapshot:
    """
    1 回のリフレッシュで取得したカタログと全チャネル設定の組。

    生成後は変更されない。リフレッシュごとに新しいインスタンスで置き換える。
    """

    channels: Mapping[str, ChannelConfig] = field(default_factory=dict)
    loaded_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "channels", MappingProxyType(dict(self.channels)))

    def __len__(self) -> int:
        return len(self.channels)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.channels))

    def get(self, channel_name: str) -> ChannelConfig | None:
        return self.channels.get(channel_name)

    def match_file_name(self, file_name: str) -> tuple[str, ChannelConfig] | None:
        """
        `<name><ext>` 形式のファイル名からチャネルを特定する。

        チャネル名にピリオドを含められるため、すべての分割位置を試す。
        拡張子がチャネル設定と一致しない場合は None を返す。
        """

        for index, char in enumerate(file_name):
            if char != "." or index == 0:
                continue
            name, extension = file_name[:index], file_name[index:]
            config = self.channels.get(name)
            if config is not None and config.file_extension == extension:
                return name, config
        return None
