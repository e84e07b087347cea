"""
FastAPI アプリケーションのルート設定。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from tarball_serve.application.observability import get_metrics_recorder
from tarball_serve.application.services import ChannelNotFoundError, PermanentKeyError, RedirectTarget
from tarball_serve.infrastructure.auth import TokenVerificationError
from tarball_serve.infrastructure.storage import StorageError
from tarball_serve.interfaces.api.deps import APIContainer, require_token

LOGGER = logging.getLogger("tarball_serve.api")

AUTH_REALM = "tarball-serve"


def create_api_app() -> FastAPI:
    app = FastAPI(
        title="tarball-serve",
        lifespan=_lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(_create_router())
    _register_exception_handlers(app)
    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: ARG001
    deps = APIContainer.resolve()
    if not deps.registry.is_loaded:
        # 初回リフレッシュに失敗した場合は配信できるデータがないため起動を中止する
        deps.registry.refresh_once()
    if deps.refresh_worker is not None:
        deps.refresh_worker.start()
    try:
        yield
    finally:
        if deps.refresh_worker is not None:
            deps.refresh_worker.stop()


def _create_router() -> APIRouter:
    router = APIRouter(dependencies=[Depends(require_token)])

    @router.api_route("/channel/{file_name}", methods=["GET", "HEAD"])
    def channel_redirect(file_name: str, request: Request) -> Response:
        deps = APIContainer.resolve()
        target = deps.resolver.resolve_channel(file_name, method=request.method)
        return _redirect("channel", target)

    @router.api_route("/permanent/{object_key:path}", methods=["GET", "HEAD"])
    def permanent_redirect(object_key: str, request: Request) -> Response:
        deps = APIContainer.resolve()
        target = deps.resolver.resolve_permanent(object_key, method=request.method)
        return _redirect("permanent", target)

    return router


def _redirect(route: str, target: RedirectTarget) -> Response:
    get_metrics_recorder().increment_redirects(route, 302)
    return Response(status_code=302, headers={"Location": target.location, **target.headers})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChannelNotFoundError)
    @app.exception_handler(PermanentKeyError)
    async def _not_found(request: Request, exc: LookupError) -> Response:
        LOGGER.debug("No redirect for %s: %s", request.url.path, exc)
        return _error_response(request, 404, "Not Found")

    @app.exception_handler(TokenVerificationError)
    async def _unauthorized(request: Request, exc: TokenVerificationError) -> Response:
        LOGGER.info("Rejected request for %s: %s", request.url.path, exc)
        return _error_response(
            request,
            401,
            "Unauthorized",
            headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
        )

    @app.exception_handler(StorageError)
    async def _upstream_unavailable(request: Request, exc: StorageError) -> Response:
        LOGGER.error("Storage failure while handling %s: %s", request.url.path, exc)
        return _error_response(request, 503, "Upstream storage unavailable")


def _error_response(request: Request, status_code: int, detail: str, headers: dict[str, str] | None = None) -> Response:
    get_metrics_recorder().increment_redirects(_route_label(request), status_code)
    if request.method == "HEAD":
        return Response(status_code=status_code, headers=headers)
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


def _route_label(request: Request) -> str:
    path = request.url.path
    if path.startswith("/channel/"):
        return "channel"
    if path.startswith("/permanent/"):
        return "permanent"
    return "other"
