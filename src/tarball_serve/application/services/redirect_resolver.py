"""
`/channel/*` と `/permanent/*` のリクエストをリダイレクト先へ解決するサービス。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence
from urllib.parse import quote

from tarball_serve.infrastructure.storage import ObjectStorageClient

from .channel_registry import ChannelRegistry

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
CHANNEL_CACHE_CONTROL = "no-store"
DEFAULT_ARCHIVE_EXTENSIONS = (".tar.xz", ".tar.gz", ".tar.bz2", ".tar.zst", ".tar", ".zip", ".iso")
METADATA_EXTENSION = ".json"


class ChannelNotFoundError(LookupError):
    """チャネル名または拡張子が一致しない。"""


class PermanentKeyError(LookupError):
    """永続オブジェクトとして解釈できないパス。"""


@dataclass(frozen=True)
class RedirectTarget:
    """302 応答として返す Location と付随ヘッダ。"""

    location: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RedirectSettings:
    base_url: str
    presign_ttl_seconds: int = 600
    archive_extensions: Sequence[str] = DEFAULT_ARCHIVE_EXTENSIONS

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url は必須です。")
        if self.presign_ttl_seconds <= 0:
            raise ValueError("presign_ttl_seconds は正の値である必要があります。")
        for extension in self.archive_extensions:
            if not extension.startswith("."):
                raise ValueError(f"archive_extensions の要素は '.' で始まる必要があります: {extension!r}")


class RedirectResolver:
    """
    チャネル名や永続キーを、署名付き URL へのリダイレクトに変換する。

    オブジェクト本体には触れず、ストレージ側の署名付き URL 生成のみを行う。
    """

    def __init__(
        self,
        *,
        registry: ChannelRegistry,
        storage_client: ObjectStorageClient,
        settings: RedirectSettings,
    ) -> None:
        self._registry = registry
        self._storage = storage_client
        self._settings = settings
        self._archive_extensions = frozenset(settings.archive_extensions)

    def resolve_channel(self, file_name: str, *, method: str = "GET") -> RedirectTarget:
        match = self._registry.snapshot.match_file_name(file_name)
        if match is None:
            raise ChannelNotFoundError(f"There is no such channel: {file_name!r}")
        _, config = match
        object_key = config.permanent_key
        if object_key is None:
            raise ChannelNotFoundError(f"Channel {file_name!r} has nothing published yet")

        location = self._presign(object_key, method)
        return RedirectTarget(
            location=location,
            headers={
                "Link": f'<{self.permanent_url(object_key)}>; rel="immutable"',
                "Cache-Control": CHANNEL_CACHE_CONTROL,
            },
        )

    def resolve_permanent(self, path: str, *, method: str = "GET") -> RedirectTarget:
        object_key = self._validate_permanent_key(path)
        location = self._presign(object_key, method)
        return RedirectTarget(location=location, headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL})

    def permanent_url(self, object_key: str) -> str:
        return f"{self._settings.base_url.rstrip('/')}/permanent/{quote(object_key)}"

    def permanent_extensions(self) -> tuple[str, ...]:
        """
        `/permanent` で受け付ける拡張子。設定値に加え、スナップショット上のチャネルが使う拡張子も含む。

        メタデータ (`.json`) は常に除外する。長い順に並べ、".tar" が ".tar.xz" を奪わないようにする。
        """

        extensions = set(self._archive_extensions)
        extensions.update(config.file_extension for config in self._registry.snapshot.channels.values())
        extensions.discard(METADATA_EXTENSION)
        return tuple(sorted(extensions, key=lambda ext: (-len(ext), ext)))

    def _validate_permanent_key(self, path: str) -> str:
        for extension in self.permanent_extensions():
            if path.endswith(extension):
                stem = path[: -len(extension)]
                if stem and not stem.endswith("/") and not path.startswith("/"):
                    return path
                break
        raise PermanentKeyError(f"Not a permanent archive key: {path!r}")

    def _presign(self, object_key: str, method: str) -> str:
        return self._storage.presign(
            object_key,
            method=method,
            expires_in=self._settings.presign_ttl_seconds,
        )
