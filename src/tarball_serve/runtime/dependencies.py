"""
ランタイム依存関係のビルダー。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tarball_serve.application.services import ChannelRegistry, RedirectResolver, RedirectSettings
from tarball_serve.application.usecases import ChannelPublishService, ChannelQueryService
from tarball_serve.bootstrap import (
    BootstrapContainer,
    BootstrapContext,
    ConfigBundle,
    DictConfigLoggingConfigurator,
    InvalidConfigurationError,
    MetricsConfiguratorRegistry,
    NoopMetricsConfigurator,
    Overrides,
    PrometheusMetricsConfigurator,
    YamlConfigLoader,
)
from tarball_serve.infrastructure.auth import RsaJwtVerifier
from tarball_serve.infrastructure.storage import (
    ChannelRepository,
    LocalFileSystemStorageClient,
    ObjectStorageClient,
    S3StorageClient,
)
from tarball_serve.interfaces.api import ApiDependencies
from tarball_serve.interfaces.workers import RefreshWorkerConfig, RegistryRefreshWorker

CONFIG_ROOT_VARIABLE = "TARBALL_SERVE_CONFIG_ROOT"


@dataclass(frozen=True)
class ServerComponents:
    dependencies: ApiDependencies
    host: str
    port: int


def _project_root() -> Path:
    configured = os.getenv(CONFIG_ROOT_VARIABLE)
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parents[3]


def bootstrap(
    *,
    environment: str | None = None,
    overrides: Overrides | None = None,
    log_level: str | None = None,
    serve_metrics: bool = True,
    project_root: Path | None = None,
) -> BootstrapContext:
    container = BootstrapContainer(
        project_root=project_root or _project_root(),
        config_loader_factory=lambda root: YamlConfigLoader(root, environment=environment),
        logging_configurator=DictConfigLoggingConfigurator(level_override=log_level),
        metrics_configurator=MetricsConfiguratorRegistry(
            {
                NoopMetricsConfigurator.EXPECTED_PROVIDER: NoopMetricsConfigurator(),
                PrometheusMetricsConfigurator.EXPECTED_PROVIDER: PrometheusMetricsConfigurator(serve_http=serve_metrics),
            }
        ),
    )
    return container.initialize(overrides)


def build_storage_client(config: ConfigBundle) -> ObjectStorageClient:
    backend = config.require_value("storage", "backend")
    if backend == "s3":
        return S3StorageClient(
            bucket_name=config.require_value("storage", "bucket"),
            region=config.optional_value("storage", "region"),
            endpoint_url=config.optional_value("storage", "endpoint_url"),
            force_path_style=bool(config.require_value("storage", "force_path_style")),
        )
    if backend == "filesystem":
        root = Path(config.require_value("storage", "root"))
        bucket = config.optional_value("storage", "bucket")
        return LocalFileSystemStorageClient(
            root / bucket if bucket else root,
            public_base_url=config.require_value("storage", "public_url"),
        )
    raise InvalidConfigurationError(f"storage.backend '{backend}' はサポートされていません。")


def build_token_verifier(config: ConfigBundle) -> RsaJwtVerifier | None:
    key_path = config.optional_value("auth", "jwt_public_key_path")
    if not key_path:
        return None
    try:
        return RsaJwtVerifier.from_pem_file(
            Path(key_path),
            leeway_seconds=float(config.require_value("auth", "leeway_seconds")),
        )
    except OSError as exc:
        raise InvalidConfigurationError(f"JWT 公開鍵を読み込めません: {key_path}") from exc


def build_server_components(config: ConfigBundle) -> ServerComponents:
    storage_client = build_storage_client(config)
    registry = ChannelRegistry(repository=ChannelRepository(storage_client=storage_client))
    resolver = RedirectResolver(
        registry=registry,
        storage_client=storage_client,
        settings=RedirectSettings(
            base_url=config.require_value("server", "base_url"),
            presign_ttl_seconds=int(config.require_value("storage", "presign_ttl_seconds")),
            archive_extensions=tuple(config.require_value("server", "archive_extensions")),
        ),
    )
    worker = RegistryRefreshWorker(
        registry=registry,
        config=RefreshWorkerConfig(
            interval_seconds=float(config.require_value("registry", "refresh_interval_seconds")),
        ),
    )
    dependencies = ApiDependencies(
        registry=registry,
        resolver=resolver,
        token_verifier=build_token_verifier(config),
        refresh_worker=worker,
    )
    return ServerComponents(
        dependencies=dependencies,
        host=config.require_value("server", "host"),
        port=int(config.require_value("server", "port")),
    )


def build_publish_service(config: ConfigBundle) -> ChannelPublishService:
    return ChannelPublishService(storage_client=build_storage_client(config))


def build_channel_query_service(config: ConfigBundle) -> ChannelQueryService:
    return ChannelQueryService(repository=ChannelRepository(storage_client=build_storage_client(config)))
