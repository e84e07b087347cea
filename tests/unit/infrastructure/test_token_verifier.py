from __future__ import annotations

import base64
import time

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from tarball_serve.infrastructure.auth import RsaJwtVerifier, TokenVerificationError, extract_basic_password


def _generate_key_pair() -> tuple[bytes, bytes]:
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


@pytest.fixture(scope="module")
def key_pair() -> tuple[bytes, bytes]:
    return _generate_key_pair()


def _basic(password: str, username: str = "nix") -> str:
    return "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()


def test_valid_token_is_accepted(key_pair) -> None:
    private_pem, public_pem = key_pair
    token = jwt.encode({"sub": "ci", "exp": int(time.time()) + 300}, private_pem, algorithm="RS256")

    verified = RsaJwtVerifier(public_pem).verify_authorization(_basic(token))

    assert verified.claims["sub"] == "ci"


def test_expired_token_is_rejected(key_pair) -> None:
    private_pem, public_pem = key_pair
    token = jwt.encode({"exp": int(time.time()) - 10}, private_pem, algorithm="RS256")

    with pytest.raises(TokenVerificationError):
        RsaJwtVerifier(public_pem).verify_authorization(_basic(token))


def test_token_without_expiry_is_rejected(key_pair) -> None:
    private_pem, public_pem = key_pair
    token = jwt.encode({"sub": "ci"}, private_pem, algorithm="RS256")

    with pytest.raises(TokenVerificationError):
        RsaJwtVerifier(public_pem).verify_authorization(_basic(token))


def test_token_signed_by_other_key_is_rejected(key_pair) -> None:
    _, public_pem = key_pair
    other_private, _ = _generate_key_pair()
    token = jwt.encode({"exp": int(time.time()) + 300}, other_private, algorithm="RS256")

    with pytest.raises(TokenVerificationError):
        RsaJwtVerifier(public_pem).verify_authorization(_basic(token))


def test_hmac_token_is_rejected(key_pair) -> None:
    _, public_pem = key_pair
    token = jwt.encode({"exp": int(time.time()) + 300}, "shared-secret-value-long-enough-for-hs256", algorithm="HS256")

    with pytest.raises(TokenVerificationError):
        RsaJwtVerifier(public_pem).verify_authorization(_basic(token))


def test_injected_clock_controls_expiry(key_pair) -> None:
    private_pem, public_pem = key_pair
    token = jwt.encode({"exp": 2_000}, private_pem, algorithm="RS256")

    assert RsaJwtVerifier(public_pem, clock=lambda: 1_000.0).verify_token(token).claims["exp"] == 2_000
    with pytest.raises(TokenVerificationError):
        RsaJwtVerifier(public_pem, clock=lambda: 3_000.0).verify_token(token)


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "Bearer abc",
        "Basic",
        "Basic !!!not-base64!!!",
        "Basic " + base64.b64encode(b"user-only").decode(),
        "Basic " + base64.b64encode(b"user:").decode(),
    ],
)
def test_malformed_authorization_headers_are_rejected(header) -> None:
    with pytest.raises(TokenVerificationError):
        extract_basic_password(header)


def test_password_may_contain_colons() -> None:
    assert extract_basic_password(_basic("a:b:c")) == "a:b:c"
