"""
ストレージアクセス層の公開API。
"""

from .channel_repository import ChannelRepository, MalformedObjectError, Versioned
from .filesystem import LocalFileSystemStorageClient
from .s3 import S3StorageClient
from .storage_client import (
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    ObjectStorageClient,
    PreconditionFailedError,
    StorageError,
    StorageUnavailableError,
    StoredObject,
)

__all__ = [
    "ChannelRepository",
    "MalformedObjectError",
    "Versioned",
    "LocalFileSystemStorageClient",
    "S3StorageClient",
    "ObjectStorageClient",
    "ObjectAlreadyExistsError",
    "ObjectNotFoundError",
    "PreconditionFailedError",
    "StorageError",
    "StorageUnavailableError",
    "StoredObject",
]
