"""
Typer ベースの CLI。
"""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Callable, TypeVar

import typer
import uvicorn

from tarball_serve.application.services import RegistryRefreshError
from tarball_serve.application.usecases import (
    ArchiveAlreadyExistsError,
    ChannelLookupError,
    ChannelUpdateConflictError,
    PublishError,
    PublishRequest,
)
from tarball_serve.bootstrap import BootstrapContext, BootstrapError, ConfigBundle, Overrides
from tarball_serve.infrastructure.storage import StorageError
from tarball_serve.interfaces.api import configure_dependencies, create_api_app
from tarball_serve.interfaces.workers import RegistryRefreshWorker
from tarball_serve.runtime import (
    bootstrap,
    build_channel_query_service,
    build_publish_service,
    build_server_components,
)

LOGGER = logging.getLogger("tarball_serve.cli")

EXIT_FAILURE = 1
EXIT_ALREADY_EXISTS = 3
EXIT_CONFLICT = 4

T = TypeVar("T")

_ENV_OPTION = typer.Option("dev", "--env", envvar="SERVICE_ENV", help="設定環境 (configs/envs/<env>)")
_LOG_LEVEL_OPTION = typer.Option(None, "--log-level", help="tarball_serve ロガーのレベルを上書き")
_ENDPOINT_OPTION = typer.Option(None, "--endpoint-url", help="S3 エンドポイント URL")


def create_cli() -> typer.Typer:
    app = typer.Typer(help="S3 バケットを lockable tarball プロトコルで配信する。", no_args_is_help=True)
    app.command("serve")(serve)
    app.command("publish")(publish)
    app.command("list-channels")(list_channels)
    app.command("show-channel")(show_channel)
    return app


def serve(
    *,
    env: str = _ENV_OPTION,
    bucket: str | None = typer.Option(None, "--bucket", help="配信する S3 バケット名"),
    base_url: str | None = typer.Option(None, "--base-url", help="Link ヘッダに使う公開 URL"),
    jwt_pem: Path | None = typer.Option(None, "--jwt-pem", help="JWT 検証用 RSA 公開鍵 (PEM)"),
    host: str | None = typer.Option(None, "--host", help="待ち受けアドレス"),
    port: int | None = typer.Option(None, "--port", help="待ち受けポート"),
    endpoint_url: str | None = _ENDPOINT_OPTION,
    log_level: str | None = _LOG_LEVEL_OPTION,
) -> None:
    """
    リダイレクトサーバを起動する。初回のカタログ読込に失敗した場合は起動しない。
    """

    context = _bootstrap_or_exit(
        env=env,
        log_level=log_level,
        overrides={
            "storage": {"bucket": bucket, "endpoint_url": endpoint_url},
            "server": {"base_url": base_url, "host": host, "port": port},
            "auth": {"jwt_public_key_path": str(jwt_pem) if jwt_pem else None},
        },
    )
    components = _build_or_exit(build_server_components, context.config)
    deps = components.dependencies

    try:
        deps.registry.refresh_once()
    except RegistryRefreshError as exc:
        typer.secho(f"Initial channel registry refresh failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc

    configure_dependencies(deps)
    if deps.refresh_worker is not None:
        _install_reload_signal(deps.refresh_worker)

    LOGGER.info(
        "Serving bucket %s on %s:%d (auth %s)",
        context.config.optional_value("storage", "bucket"),
        components.host,
        components.port,
        "enabled" if deps.token_verifier is not None else "disabled",
    )
    uvicorn.run(create_api_app(), host=components.host, port=components.port, log_config=None)


def publish(
    bucket: str = typer.Argument(..., help="アップロード先のバケット"),
    channel: str = typer.Argument(..., help="更新するチャネル"),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="アップロードするファイル"),
    *,
    create: bool = typer.Option(False, "--create", help="チャネルが存在しない場合は作成する"),
    file_extension: str | None = typer.Option(
        None, "--file-extension", help="新規チャネルの拡張子 (既定 .tar.xz)"
    ),
    env: str = _ENV_OPTION,
    endpoint_url: str | None = _ENDPOINT_OPTION,
    log_level: str | None = _LOG_LEVEL_OPTION,
) -> None:
    """
    ファイルを永続オブジェクトとしてアップロードし、チャネルの latest を進める。
    """

    context = _bootstrap_or_exit(
        env=env,
        log_level=log_level,
        overrides={"storage": {"bucket": bucket, "endpoint_url": endpoint_url}},
        serve_metrics=False,
    )
    service = _build_or_exit(build_publish_service, context.config)

    try:
        request = PublishRequest(channel=channel, file_path=file, create=create, file_extension=file_extension)
        response = service.execute(request)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ArchiveAlreadyExistsError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_ALREADY_EXISTS) from exc
    except ChannelUpdateConflictError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_CONFLICT) from exc
    except (PublishError, StorageError, OSError) as exc:
        typer.secho(f"Publish failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc

    typer.secho(
        f"Updating channel {response.channel} from {response.previous_latest or '(nothing)'} to {response.latest}.\n"
        f"Uploaded {response.object_key} ({response.size_bytes} bytes, sha256={response.sha256})",
        fg=typer.colors.GREEN,
    )


def list_channels(
    bucket: str = typer.Argument(..., help="参照するバケット"),
    *,
    env: str = _ENV_OPTION,
    endpoint_url: str | None = _ENDPOINT_OPTION,
    log_level: str | None = _LOG_LEVEL_OPTION,
) -> None:
    """バケットの channels.json に登録されたチャネルを表示する。"""

    context = _bootstrap_or_exit(
        env=env,
        log_level=log_level,
        overrides={"storage": {"bucket": bucket, "endpoint_url": endpoint_url}},
        serve_metrics=False,
    )
    query = _build_or_exit(build_channel_query_service, context.config)
    try:
        names = query.list_channels()
    except StorageError as exc:
        typer.secho(f"Failed to read channels.json: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc
    for name in names:
        typer.echo(name)


def show_channel(
    bucket: str = typer.Argument(..., help="参照するバケット"),
    channel: str = typer.Argument(..., help="表示するチャネル"),
    *,
    env: str = _ENV_OPTION,
    endpoint_url: str | None = _ENDPOINT_OPTION,
    log_level: str | None = _LOG_LEVEL_OPTION,
) -> None:
    """チャネルの latest・拡張子・過去の版を表示する。"""

    context = _bootstrap_or_exit(
        env=env,
        log_level=log_level,
        overrides={"storage": {"bucket": bucket, "endpoint_url": endpoint_url}},
        serve_metrics=False,
    )
    query = _build_or_exit(build_channel_query_service, context.config)
    try:
        details = query.show_channel(channel)
    except ChannelLookupError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc
    except StorageError as exc:
        typer.secho(f"Failed to read channel metadata: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc

    config = details.config
    typer.echo(f"channel: {details.name}")
    typer.echo(f"latest: {config.permanent_key or '(nothing yet)'}")
    typer.echo(f"file_extension: {config.file_extension}")
    for previous in config.previous:
        typer.echo(f"previous: {previous}{config.file_extension}")


def main() -> None:
    create_cli()()


def _bootstrap_or_exit(
    *,
    env: str,
    log_level: str | None,
    overrides: Overrides,
    serve_metrics: bool = True,
) -> BootstrapContext:
    try:
        return bootstrap(environment=env, overrides=overrides, log_level=log_level, serve_metrics=serve_metrics)
    except BootstrapError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


def _build_or_exit(builder: Callable[[ConfigBundle], T], config: ConfigBundle) -> T:
    try:
        return builder(config)
    except BootstrapError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


def _install_reload_signal(worker: RegistryRefreshWorker) -> None:
    if not hasattr(signal, "SIGHUP"):
        return

    def _handle(signum, frame) -> None:  # noqa: ARG001
        LOGGER.info("Received SIGHUP, refreshing channel registry")
        worker.trigger()

    signal.signal(signal.SIGHUP, _handle)


if __name__ == "__main__":
    main()
