"""
インフラストラクチャ層の公開API。
"""

from .auth import RsaJwtVerifier, TokenVerificationError, TokenVerifier
from .metrics import MetricsRecorder, PrometheusMetricsRegistry
from .storage import (
    ChannelRepository,
    LocalFileSystemStorageClient,
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    ObjectStorageClient,
    PreconditionFailedError,
    S3StorageClient,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    "RsaJwtVerifier",
    "TokenVerificationError",
    "TokenVerifier",
    "MetricsRecorder",
    "PrometheusMetricsRegistry",
    "ChannelRepository",
    "LocalFileSystemStorageClient",
    "ObjectAlreadyExistsError",
    "ObjectNotFoundError",
    "ObjectStorageClient",
    "PreconditionFailedError",
    "S3StorageClient",
    "StorageError",
    "StorageUnavailableError",
]
