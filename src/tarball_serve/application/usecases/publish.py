"""
チャネルへ新しい永続アーカイブを追加する配布ユースケース。
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from tarball_serve.application.observability import get_metrics_recorder
from tarball_serve.domain import DEFAULT_FILE_EXTENSION, Catalog, ChannelConfig
from tarball_serve.infrastructure.storage import (
    ChannelRepository,
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    ObjectStorageClient,
    PreconditionFailedError,
    StorageError,
)

LOGGER = logging.getLogger("tarball_serve.publish")


class PublishError(RuntimeError):
    """配布処理の基底例外。"""


class UnknownChannelError(PublishError):
    """カタログに存在しないチャネルへの配布。"""


class InvalidArchiveNameError(PublishError):
    """ファイル名がチャネルの拡張子と一致しない。"""


class ArchiveAlreadyExistsError(PublishError):
    """同じキーの永続オブジェクトが既に存在する。"""

    def __init__(self, message: str, *, object_key: str) -> None:
        super().__init__(message)
        self.object_key = object_key


class ChannelUpdateConflictError(PublishError):
    """チャネル設定の更新が他の配布と競合した。アップロード済みのオブジェクトは残る。"""

    def __init__(self, message: str, *, object_key: str) -> None:
        super().__init__(message)
        self.object_key = object_key


@dataclass(frozen=True)
class PublishRequest:
    """
    配布ユースケースの入力。

    `file_path` のファイル名がそのまま永続オブジェクトのキーになる。
    """

    channel: str
    file_path: Path
    create: bool = False
    file_extension: str | None = None

    def __post_init__(self) -> None:
        if not self.channel:
            raise ValueError("channel は必須です。")
        if "/" in self.channel:
            raise ValueError("channel に '/' は使用できません。")


@dataclass(frozen=True)
class PublishResponse:
    channel: str
    object_key: str
    latest: str
    previous_latest: str | None
    sha256: str
    size_bytes: int
    created_channel: bool = False


class PublishUseCase(Protocol):
    def execute(self, request: PublishRequest) -> PublishResponse:
        ...


class ChannelPublishService(PublishUseCase):
    """
    永続オブジェクトのアップロードとチャネルポインタの更新を担う実装。

    1. オブジェクトを作成専用で書き込む（既存キーなら何も書かずに失敗）。
    2. 書き込み確定後にのみ `<channel>.json` を ETag 条件付きで更新する。
    3. 新規チャネルは設定を作成してからカタログに追加する。

    2 の前に中断しても旧ポインタは有効なまま残り、参照されない新オブジェクトが
    残るだけなので、再実行で回復できる。
    """

    def __init__(
        self,
        *,
        storage_client: ObjectStorageClient,
        repository: ChannelRepository | None = None,
    ) -> None:
        self._storage = storage_client
        self._repository = repository or ChannelRepository(storage_client=storage_client)

    def execute(self, request: PublishRequest) -> PublishResponse:
        try:
            response = self._publish(request)
        except ArchiveAlreadyExistsError:
            get_metrics_recorder().increment_publish("already_exists")
            raise
        except (PublishError, StorageError):
            get_metrics_recorder().increment_publish("failure")
            raise
        get_metrics_recorder().increment_publish("success")
        return response

    def _publish(self, request: PublishRequest) -> PublishResponse:
        catalog_version = self._load_catalog(create=request.create)
        catalog: Catalog = catalog_version[0]
        is_new_channel = request.channel not in catalog

        if is_new_channel and not request.create:
            raise UnknownChannelError(f"Channel {request.channel} does not exist!")

        current, etag = self._load_channel(request, is_new_channel)
        object_key, basename = _derive_object_key(request.file_path, current.file_extension)

        data = request.file_path.read_bytes()
        try:
            self._storage.put_if_absent(object_key, data)
        except ObjectAlreadyExistsError as exc:
            raise ArchiveAlreadyExistsError(
                f"Refusing to overwrite key: {object_key}", object_key=object_key
            ) from exc

        LOGGER.info(
            "Updating channel %s from %s to %s.",
            request.channel,
            current.permanent_key or "(nothing)",
            object_key,
        )
        updated = current.advance(basename)
        try:
            if etag is None:
                self._repository.create_channel(request.channel, updated)
            else:
                self._repository.save_channel(request.channel, updated, if_match=etag)
        except (PreconditionFailedError, ObjectAlreadyExistsError) as exc:
            raise ChannelUpdateConflictError(
                f"Channel {request.channel} was modified concurrently; {object_key} was uploaded but is not referenced.",
                object_key=object_key,
            ) from exc

        if is_new_channel:
            self._register_channel(request.channel, catalog_version)

        return PublishResponse(
            channel=request.channel,
            object_key=object_key,
            latest=basename,
            previous_latest=current.latest,
            sha256=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
            created_channel=is_new_channel,
        )

    def _load_catalog(self, *, create: bool) -> tuple[Catalog, str | None]:
        try:
            versioned = self._repository.load_catalog()
        except ObjectNotFoundError:
            if not create:
                raise
            return Catalog(), None
        return versioned.value, versioned.etag

    def _load_channel(self, request: PublishRequest, is_new_channel: bool) -> tuple[ChannelConfig, str | None]:
        if is_new_channel:
            try:
                versioned = self._repository.load_channel(request.channel)
            except ObjectNotFoundError:
                extension = request.file_extension or DEFAULT_FILE_EXTENSION
                return ChannelConfig(file_extension=extension), None
            return versioned.value, versioned.etag

        versioned = self._repository.load_channel(request.channel)
        return versioned.value, versioned.etag

    def _register_channel(self, channel: str, catalog_version: tuple[Catalog, str | None]) -> None:
        catalog, etag = catalog_version
        updated = catalog.with_channel(channel)
        try:
            if etag is None:
                self._repository.create_catalog(updated)
            else:
                self._repository.save_catalog(updated, if_match=etag)
        except (PreconditionFailedError, ObjectAlreadyExistsError):
            # カタログが並行更新された場合は読み直して 1 度だけ再試行する
            LOGGER.warning("channels.json changed concurrently, retrying registration of %s", channel)
            latest = self._repository.load_catalog()
            if channel not in latest.value:
                self._repository.save_catalog(latest.value.with_channel(channel), if_match=latest.etag)
        LOGGER.info("Registered new channel %s in channels.json", channel)


def _derive_object_key(file_path: Path, file_extension: str) -> tuple[str, str]:
    object_key = file_path.name
    if not object_key.endswith(file_extension):
        raise InvalidArchiveNameError(
            f"Invalid file ending. Only {file_extension} is supported: {file_path}"
        )
    basename = object_key[: -len(file_extension)]
    if not basename:
        raise InvalidArchiveNameError(f"No file name: {file_path}")
    return object_key, basename
