"""
認証関連の公開API。
"""

from .token_verifier import (
    ALLOWED_ALGORITHMS,
    RsaJwtVerifier,
    TokenVerificationError,
    TokenVerifier,
    VerifiedToken,
    extract_basic_password,
)

__all__ = [
    "ALLOWED_ALGORITHMS",
    "RsaJwtVerifier",
    "TokenVerificationError",
    "TokenVerifier",
    "VerifiedToken",
    "extract_basic_password",
]
