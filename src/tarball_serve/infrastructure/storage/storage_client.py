"""
オブジェクトストレージへの抽象クライアント。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class StorageError(RuntimeError):
    """ストレージ操作に関する例外。"""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class ObjectNotFoundError(StorageError):
    """指定キーのオブジェクトが存在しない。"""


class ObjectAlreadyExistsError(StorageError):
    """作成専用の書き込みで、キーが既に存在していた。"""


class PreconditionFailedError(StorageError):
    """ETag による条件付き書き込みが他の書き込みと競合した。"""


class StorageUnavailableError(StorageError):
    """ストレージに到達できない、または認証情報が拒否された。"""


@dataclass(frozen=True)
class StoredObject:
    key: str
    body: bytes
    etag: str | None = None


class ObjectStorageClient(Protocol):
    """
    オブジェクトストレージの基本操作を定義。

    `put_if_absent` はストレージ側の原子的な条件付き書き込みでなければならない。
    存在確認と書き込みを分けた実装は許されない。
    """

    @property
    def bucket(self) -> str:
        ...

    def get(self, key: str) -> StoredObject:
        ...

    def head_exists(self, key: str) -> bool:
        ...

    def put_if_absent(self, key: str, data: bytes) -> StoredObject:
        ...

    def put(self, key: str, data: bytes, *, if_match: str | None = None) -> StoredObject:
        ...

    def presign(self, key: str, *, method: str = "GET", expires_in: int) -> str:
        ...
