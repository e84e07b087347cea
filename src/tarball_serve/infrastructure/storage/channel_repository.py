"""
バケット内の `channels.json` と `<channel>.json` を読み書きするコンポーネント。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping

from jsonschema import Draft202012Validator, ValidationError

from tarball_serve.domain import (
    CATALOG_OBJECT_KEY,
    DEFAULT_FILE_EXTENSION,
    Catalog,
    ChannelConfig,
    channel_config_key,
)

from .storage_client import ObjectStorageClient, StorageError, StoredObject


class MalformedObjectError(StorageError):
    """カタログまたはチャネル設定の JSON が不正。"""


@dataclass(frozen=True)
class Versioned:
    """読み込んだ値と、条件付き書き込みに使う ETag の組。"""

    value: Any
    etag: str | None


class ChannelRepository:
    """
    チャネルメタデータの永続化を担う。

    読み込みは常にストレージから行い、キャッシュは持たない。
    """

    def __init__(self, *, storage_client: ObjectStorageClient) -> None:
        self._storage = storage_client

    def load_catalog(self) -> Versioned:
        stored = self._storage.get(CATALOG_OBJECT_KEY)
        return Versioned(value=parse_catalog(stored), etag=stored.etag)

    def load_channel(self, channel_name: str) -> Versioned:
        stored = self._storage.get(channel_config_key(channel_name))
        return Versioned(value=parse_channel_config(stored), etag=stored.etag)

    def create_channel(self, channel_name: str, config: ChannelConfig) -> StoredObject:
        return self._storage.put_if_absent(channel_config_key(channel_name), dump_channel_config(config))

    def save_channel(self, channel_name: str, config: ChannelConfig, *, if_match: str | None) -> StoredObject:
        return self._storage.put(channel_config_key(channel_name), dump_channel_config(config), if_match=if_match)

    def create_catalog(self, catalog: Catalog) -> StoredObject:
        return self._storage.put_if_absent(CATALOG_OBJECT_KEY, dump_catalog(catalog))

    def save_catalog(self, catalog: Catalog, *, if_match: str | None) -> StoredObject:
        return self._storage.put(CATALOG_OBJECT_KEY, dump_catalog(catalog), if_match=if_match)


CATALOG_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "required": ["channels"],
    "properties": {
        "channels": {
            "type": "array",
            "items": {"type": "string", "minLength": 1, "pattern": "^[^/]+$"},
        },
    },
}

CHANNEL_CONFIG_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "latest": {"type": ["string", "null"], "minLength": 1},
        "file_extension": {"type": "string", "pattern": "^\\.[^/]+$"},
        "previous": {"type": "array", "items": {"type": "string", "minLength": 1}},
    },
}

_CATALOG_VALIDATOR = Draft202012Validator(CATALOG_SCHEMA)
_CHANNEL_CONFIG_VALIDATOR = Draft202012Validator(CHANNEL_CONFIG_SCHEMA)


def parse_catalog(stored: StoredObject) -> Catalog:
    payload = _load_json(stored, _CATALOG_VALIDATOR)
    return Catalog(channels=frozenset(payload["channels"]))


def parse_channel_config(stored: StoredObject) -> ChannelConfig:
    payload = _load_json(stored, _CHANNEL_CONFIG_VALIDATOR)
    return ChannelConfig(
        latest=payload.get("latest"),
        file_extension=payload.get("file_extension", DEFAULT_FILE_EXTENSION),
        previous=tuple(payload.get("previous", ())),
    )


def dump_catalog(catalog: Catalog) -> bytes:
    return _dump_json({"channels": sorted(catalog.channels)})


def dump_channel_config(config: ChannelConfig) -> bytes:
    return _dump_json(
        {
            "latest": config.latest,
            "file_extension": config.file_extension,
            "previous": list(config.previous),
        }
    )


def _load_json(stored: StoredObject, validator: Draft202012Validator) -> Mapping[str, Any]:
    try:
        payload = json.loads(stored.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedObjectError(f"{stored.key} の JSON 解析に失敗しました: {exc}", key=stored.key) from exc
    try:
        validator.validate(payload)
    except ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "(root)"
        raise MalformedObjectError(
            f"{stored.key} の内容が不正です ({location}): {exc.message}", key=stored.key
        ) from exc
    return payload


def _dump_json(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
