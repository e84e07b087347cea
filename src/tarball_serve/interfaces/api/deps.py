"""
FastAPI 用の依存性定義。
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header

from tarball_serve.application.services import ChannelRegistry, RedirectResolver
from tarball_serve.infrastructure.auth import TokenVerifier
from tarball_serve.interfaces.workers import RegistryRefreshWorker


@dataclass
class ApiDependencies:
    """
    API レイヤーが利用する依存関係。

    `token_verifier` が None の場合は認証を行わない。
    """

    registry: ChannelRegistry
    resolver: RedirectResolver
    token_verifier: TokenVerifier | None = None
    refresh_worker: RegistryRefreshWorker | None = None


class APIContainer:
    """
    依存性をグローバルに保持する簡易 DI コンテナ。
    """

    _deps: ApiDependencies | None = None

    @classmethod
    def configure(cls, deps: ApiDependencies) -> None:
        cls._deps = deps

    @classmethod
    def resolve(cls) -> ApiDependencies:
        if cls._deps is None:
            raise RuntimeError("API 依存性が未設定です。configure_dependencies を実行してください。")
        return cls._deps

    @classmethod
    def reset(cls) -> None:
        cls._deps = None


def configure_dependencies(deps: ApiDependencies) -> None:
    APIContainer.configure(deps)


def require_token(authorization: str | None = Header(default=None)) -> None:
    """
    公開鍵が設定されている場合のみ Basic 認証のパスワード欄の JWT を検証する。

    検証失敗時は TokenVerificationError を送出し、ハンドラ本体は実行されない。
    """

    verifier = APIContainer.resolve().token_verifier
    if verifier is None:
        return
    verifier.verify_authorization(authorization)
