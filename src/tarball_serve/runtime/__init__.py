"""
runtime パッケージ公開 API。
"""

from .dependencies import (
    ServerComponents,
    bootstrap,
    build_channel_query_service,
    build_publish_service,
    build_server_components,
    build_storage_client,
    build_token_verifier,
)

__all__ = [
    "ServerComponents",
    "bootstrap",
    "build_channel_query_service",
    "build_publish_service",
    "build_server_components",
    "build_storage_client",
    "build_token_verifier",
]
