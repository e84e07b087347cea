"""
Basic 認証のパスワード欄で渡される JWT の検証。
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

import jwt

ALLOWED_ALGORITHMS = ("RS256",)


class TokenVerificationError(RuntimeError):
    """資格情報が欠落・不正・期限切れのいずれか。"""


@dataclass(frozen=True)
class VerifiedToken:
    claims: Mapping[str, Any]


class TokenVerifier(Protocol):
    def verify_authorization(self, authorization: str | None) -> VerifiedToken:
        ...


class RsaJwtVerifier(TokenVerifier):
    """
    設定された RSA 公開鍵で JWT を検証する。

    状態は公開鍵のみで、リクエストごとに独立して検証する。
    署名アルゴリズムは RS256 に限定し、`exp` クレームを必須とする。
    """

    def __init__(self, public_key_pem: str | bytes, *, leeway_seconds: float = 0.0, clock: Callable[[], float] | None = None) -> None:
        if not public_key_pem:
            raise ValueError("public_key_pem は必須です。")
        self._public_key = public_key_pem
        self._leeway = leeway_seconds
        self._clock = clock

    @classmethod
    def from_pem_file(cls, path: Path, **kwargs: Any) -> "RsaJwtVerifier":
        return cls(Path(path).read_bytes(), **kwargs)

    def verify_authorization(self, authorization: str | None) -> VerifiedToken:
        token = extract_basic_password(authorization)
        return self.verify_token(token)

    def verify_token(self, token: str) -> VerifiedToken:
        options: dict[str, Any] = {"require": ["exp"], "verify_aud": False}
        try:
            if self._clock is None:
                claims = jwt.decode(
                    token,
                    key=self._public_key,
                    algorithms=list(ALLOWED_ALGORITHMS),
                    options=options,
                    leeway=self._leeway,
                )
            else:
                claims = jwt.decode(
                    token,
                    key=self._public_key,
                    algorithms=list(ALLOWED_ALGORITHMS),
                    options={**options, "verify_exp": False},
                )
                _check_expiry(claims, now=self._clock(), leeway=self._leeway)
        except jwt.PyJWTError as exc:
            raise TokenVerificationError(f"Invalid token: {exc}") from exc
        return VerifiedToken(claims=claims)


def extract_basic_password(authorization: str | None) -> str:
    """`Authorization: Basic ...` ヘッダからパスワード欄を取り出す。"""

    if not authorization:
        raise TokenVerificationError("Authorization header is missing")
    scheme, _, encoded = authorization.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        raise TokenVerificationError("Authorization header is not HTTP Basic")
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise TokenVerificationError("Authorization header is malformed") from exc
    _, separator, password = decoded.partition(":")
    if not separator or not password:
        raise TokenVerificationError("Token is missing from the password field")
    return password


def _check_expiry(claims: Mapping[str, Any], *, now: float, leeway: float) -> None:
    try:
        expires_at = float(claims["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("exp claim is invalid") from exc
    if expires_at <= now - leeway:
        raise jwt.ExpiredSignatureError("Signature has expired")
