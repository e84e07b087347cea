from __future__ import annotations

import json
from pathlib import Path

import pytest

from tarball_serve.domain import ChannelConfig
from tarball_serve.infrastructure.storage import (
    ChannelRepository,
    LocalFileSystemStorageClient,
    MalformedObjectError,
    ObjectNotFoundError,
)


@pytest.fixture()
def storage(tmp_path: Path) -> LocalFileSystemStorageClient:
    return LocalFileSystemStorageClient(tmp_path / "bucket", public_base_url="http://objects.test")


def test_load_catalog_and_channel(storage: LocalFileSystemStorageClient) -> None:
    storage.put("channels.json", json.dumps({"channels": ["rel", "iso"]}).encode())
    storage.put("rel.json", json.dumps({"latest": "v1"}).encode())
    storage.put("iso.json", json.dumps({"latest": "i1", "file_extension": ".iso", "previous": ["i0"]}).encode())
    repository = ChannelRepository(storage_client=storage)

    catalog = repository.load_catalog()
    rel = repository.load_channel("rel").value
    iso = repository.load_channel("iso").value

    assert catalog.value.channels == frozenset({"rel", "iso"})
    assert catalog.etag is not None
    assert rel == ChannelConfig(latest="v1")
    assert iso.permanent_key == "i1.iso"
    assert iso.previous == ("i0",)


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"[]",
        json.dumps({"channels": "rel"}).encode(),
        json.dumps({"channels": ["rel", 3]}).encode(),
        json.dumps({"channels": ["nested/rel"]}).encode(),
    ],
)
def test_malformed_catalog_is_rejected(storage: LocalFileSystemStorageClient, payload: bytes) -> None:
    storage.put("channels.json", payload)

    with pytest.raises(MalformedObjectError):
        ChannelRepository(storage_client=storage).load_catalog()


@pytest.mark.parametrize(
    "payload",
    [
        {"latest": 1},
        {"latest": "v1", "file_extension": "tar.xz"},
        {"latest": "v1", "previous": "v0"},
    ],
)
def test_malformed_channel_config_is_rejected(storage: LocalFileSystemStorageClient, payload: dict) -> None:
    storage.put("rel.json", json.dumps(payload).encode())

    with pytest.raises(MalformedObjectError):
        ChannelRepository(storage_client=storage).load_channel("rel")


def test_missing_channel_config_raises_not_found(storage: LocalFileSystemStorageClient) -> None:
    with pytest.raises(ObjectNotFoundError):
        ChannelRepository(storage_client=storage).load_channel("rel")


def test_save_channel_writes_all_fields(storage: LocalFileSystemStorageClient) -> None:
    repository = ChannelRepository(storage_client=storage)

    repository.create_channel("rel", ChannelConfig(latest="v2", file_extension=".tar.gz", previous=("v1",)))

    written = json.loads(storage.get("rel.json").body)
    assert written == {"latest": "v2", "file_extension": ".tar.gz", "previous": ["v1"]}
