from __future__ import annotations

import base64
import json
import time
from pathlib import Path
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from tarball_serve.application.services import ChannelRegistry, RedirectResolver, RedirectSettings
from tarball_serve.infrastructure.auth import RsaJwtVerifier
from tarball_serve.infrastructure.storage import (
    ChannelRepository,
    LocalFileSystemStorageClient,
    StorageUnavailableError,
)
from tarball_serve.interfaces.api import create_api_app
from tarball_serve.interfaces.api.deps import APIContainer, ApiDependencies, configure_dependencies

BASE_URL = "https://tarballs.example.test"


@pytest.fixture(autouse=True)
def _reset_container():
    APIContainer.reset()
    yield
    APIContainer.reset()


@pytest.fixture()
def storage(tmp_path: Path) -> LocalFileSystemStorageClient:
    client = LocalFileSystemStorageClient(tmp_path / "bucket", public_base_url="http://objects.test")
    client.put("channels.json", json.dumps({"channels": ["rel", "empty"]}).encode())
    client.put("rel.json", json.dumps({"latest": "v1"}).encode())
    client.put("empty.json", json.dumps({}).encode())
    client.put_if_absent("v1.tar.xz", b"version one")
    return client


@pytest.fixture(scope="module")
def key_pair() -> tuple[bytes, bytes]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def _client(storage, *, token_verifier=None) -> TestClient:
    registry = ChannelRegistry(repository=ChannelRepository(storage_client=storage))
    registry.refresh_once()
    resolver = RedirectResolver(
        registry=registry,
        storage_client=storage,
        settings=RedirectSettings(base_url=BASE_URL),
    )
    configure_dependencies(ApiDependencies(registry=registry, resolver=resolver, token_verifier=token_verifier))
    return TestClient(create_api_app())


def _basic(token: str) -> dict[str, str]:
    return {"Authorization": "Basic " + base64.b64encode(f"nix:{token}".encode()).decode()}


def test_channel_redirects_to_latest_with_link_header(storage) -> None:
    client = _client(storage)

    response = client.get("/channel/rel.tar.xz", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("http://objects.test/v1.tar.xz?")
    assert "X-Method=GET" in response.headers["location"]
    assert response.headers["link"] == f'<{BASE_URL}/permanent/v1.tar.xz>; rel="immutable"'
    assert response.headers["cache-control"] == "no-store"


def test_head_request_mirrors_get_headers(storage) -> None:
    client = _client(storage)

    get_response = client.get("/channel/rel.tar.xz", follow_redirects=False)
    head_response = client.head("/channel/rel.tar.xz", follow_redirects=False)

    assert head_response.status_code == 302
    assert head_response.headers["link"] == get_response.headers["link"]
    assert "X-Method=HEAD" in head_response.headers["location"]
    assert head_response.content == b""


def test_permanent_redirect_is_immutable(storage) -> None:
    client = _client(storage)

    response = client.get("/permanent/v1.tar.xz", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("http://objects.test/v1.tar.xz?")
    assert "immutable" in response.headers["cache-control"]
    assert "link" not in response.headers


def test_link_target_of_custom_extension_channel_redirects(storage) -> None:
    storage.put("channels.json", json.dumps({"channels": ["rel", "empty", "img"]}).encode())
    storage.put("img.json", json.dumps({"latest": "disk-v1", "file_extension": ".img"}).encode())
    storage.put_if_absent("disk-v1.img", b"disk image")
    client = _client(storage)

    channel_response = client.get("/channel/img.img", follow_redirects=False)
    link = channel_response.headers["link"]
    permanent_path = link[link.index("<") + 1 : link.index(">")].removeprefix(BASE_URL)
    permanent_response = client.get(permanent_path, follow_redirects=False)

    assert channel_response.status_code == 302
    assert permanent_path == "/permanent/disk-v1.img"
    assert permanent_response.status_code == 302
    assert permanent_response.headers["location"].startswith("http://objects.test/disk-v1.img?")


@pytest.mark.parametrize(
    "path",
    [
        "/channel/beta.tar.xz",
        "/channel/rel.tar.gz",
        "/channel/rel.json",
        "/channel/empty.tar.xz",
        "/permanent/channels.json",
        "/permanent/rel.json",
        "/channels.json",
        "/",
    ],
)
def test_unknown_paths_return_not_found(storage, path: str) -> None:
    client = _client(storage)

    response = client.get(path, follow_redirects=False)

    assert response.status_code == 404


def test_head_not_found_has_empty_body(storage) -> None:
    client = _client(storage)

    response = client.head("/channel/beta.tar.xz")

    assert response.status_code == 404
    assert response.content == b""


def test_missing_token_is_rejected_when_auth_enabled(storage, key_pair) -> None:
    _, public_pem = key_pair
    client = _client(storage, token_verifier=RsaJwtVerifier(public_pem))

    response = client.get("/channel/rel.tar.xz", follow_redirects=False)

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == 'Basic realm="tarball-serve"'


def test_expired_token_is_rejected(storage, key_pair) -> None:
    private_pem, public_pem = key_pair
    client = _client(storage, token_verifier=RsaJwtVerifier(public_pem))
    token = jwt.encode({"exp": int(time.time()) - 60}, private_pem, algorithm="RS256")

    response = client.get("/permanent/v1.tar.xz", headers=_basic(token), follow_redirects=False)

    assert response.status_code == 401


def test_valid_token_is_accepted(storage, key_pair) -> None:
    private_pem, public_pem = key_pair
    client = _client(storage, token_verifier=RsaJwtVerifier(public_pem))
    token = jwt.encode({"sub": "ci", "exp": int(time.time()) + 300}, private_pem, algorithm="RS256")

    response = client.get("/channel/rel.tar.xz", headers=_basic(token), follow_redirects=False)

    assert response.status_code == 302


def test_auth_is_checked_before_route_lookup(storage, key_pair) -> None:
    _, public_pem = key_pair
    client = _client(storage, token_verifier=RsaJwtVerifier(public_pem))

    response = client.get("/channel/beta.tar.xz", follow_redirects=False)

    assert response.status_code == 401


@pytest.mark.parametrize("path", ["/channel/rel.tar.xz", "/permanent/v1.tar.xz"])
def test_unauthenticated_request_never_reaches_object_store(storage, key_pair, path: str) -> None:
    _, public_pem = key_pair
    registry = ChannelRegistry(repository=ChannelRepository(storage_client=storage))
    registry.refresh_once()
    guarded = MagicMock(spec=LocalFileSystemStorageClient)
    resolver = RedirectResolver(registry=registry, storage_client=guarded, settings=RedirectSettings(base_url=BASE_URL))
    configure_dependencies(
        ApiDependencies(registry=registry, resolver=resolver, token_verifier=RsaJwtVerifier(public_pem))
    )
    client = TestClient(create_api_app())

    response = client.get(path, follow_redirects=False)

    assert response.status_code == 401
    guarded.presign.assert_not_called()
    guarded.get.assert_not_called()
    guarded.head_exists.assert_not_called()


def test_storage_failure_maps_to_service_unavailable(storage) -> None:
    registry = ChannelRegistry(repository=ChannelRepository(storage_client=storage))
    registry.refresh_once()
    failing = MagicMock(spec=LocalFileSystemStorageClient)
    failing.presign.side_effect = StorageUnavailableError("endpoint unreachable")
    resolver = RedirectResolver(registry=registry, storage_client=failing, settings=RedirectSettings(base_url=BASE_URL))
    configure_dependencies(ApiDependencies(registry=registry, resolver=resolver))
    client = TestClient(create_api_app())

    response = client.get("/permanent/v1.tar.xz", follow_redirects=False)

    assert response.status_code == 503
    assert response.json()["detail"] == "Upstream storage unavailable"


def test_other_methods_are_not_allowed(storage) -> None:
    client = _client(storage)

    response = client.post("/channel/rel.tar.xz")

    assert response.status_code == 405
