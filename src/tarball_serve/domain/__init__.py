"""
ドメイン層のパッケージ初期化。
"""

from .models import (
    CATALOG_OBJECT_KEY,
    DEFAULT_FILE_EXTENSION,
    Catalog,
    ChannelConfig,
    ChannelSnapshot,
    channel_config_key,
)

__all__ = [
    "CATALOG_OBJECT_KEY",
    "DEFAULT_FILE_EXTENSION",
    "Catalog",
    "ChannelConfig",
    "ChannelSnapshot",
    "channel_config_key",
]
