"""
ローカルファイルシステムを ObjectStorageClient として扱う実装。
"""

from __future__ import annotations

import hashlib
import os
import tempfile
import threading
import time
from pathlib import Path
from urllib.parse import quote, urlencode

from .storage_client import (
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    ObjectStorageClient,
    PreconditionFailedError,
    StorageError,
    StoredObject,
)


class LocalFileSystemStorageClient(ObjectStorageClient):
    """
    開発環境やユニットテストで利用するローカルストレージクライアント。

    `root` 直下をバケットとみなす。作成専用の書き込みは一時ファイルからの
    ハードリンクで行うため、同一キーへの競合はちょうど 1 つだけが成功する。
    ETag 条件付き書き込みはプロセス内ロックでのみ直列化される。
    """

    def __init__(self, root: Path, *, public_base_url: str, clock=time.time) -> None:
        self._root = Path(root).resolve()
        self._public_base_url = public_base_url.rstrip("/")
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def bucket(self) -> str:
        return self._root.name

    def get(self, key: str) -> StoredObject:
        resolved = self._resolve(key)
        try:
            body = resolved.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"ファイルが存在しません: {resolved}", key=key) from exc
        return StoredObject(key=key, body=body, etag=_etag(body))

    def head_exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def put_if_absent(self, key: str, data: bytes) -> StoredObject:
        resolved = self._resolve(key)
        staged = self._stage(resolved, data)
        try:
            os.link(staged, resolved)
        except FileExistsError as exc:
            raise ObjectAlreadyExistsError(f"Refusing to overwrite key: {key}", key=key) from exc
        finally:
            staged.unlink()
        return StoredObject(key=key, body=data, etag=_etag(data))

    def put(self, key: str, data: bytes, *, if_match: str | None = None) -> StoredObject:
        resolved = self._resolve(key)
        with self._lock:
            if if_match is not None:
                try:
                    current = _etag(resolved.read_bytes())
                except FileNotFoundError as exc:
                    raise PreconditionFailedError(f"条件付き書き込みの対象が存在しません: {key}", key=key) from exc
                if current != if_match:
                    raise PreconditionFailedError(f"ETag が一致しません: {key}", key=key)
            staged = self._stage(resolved, data)
            os.replace(staged, resolved)
        return StoredObject(key=key, body=data, etag=_etag(data))

    def presign(self, key: str, *, method: str = "GET", expires_in: int) -> str:
        self._resolve(key)
        expires_at = int(self._clock()) + int(expires_in)
        query = urlencode({"X-Method": method.upper(), "X-Expires": expires_at})
        return f"{self._public_base_url}/{quote(key)}?{query}"

    def _resolve(self, key: str) -> Path:
        if not key or key.startswith("/"):
            raise StorageError(f"不正なオブジェクトキーです: {key!r}", key=key)
        resolved = (self._root / key).resolve()
        if self._root not in resolved.parents:
            raise StorageError(f"バケット外を指すキーです: {key!r}", key=key)
        return resolved

    def _stage(self, destination: Path, data: bytes) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=destination.parent, prefix=".staging-")
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        return Path(name)


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'
