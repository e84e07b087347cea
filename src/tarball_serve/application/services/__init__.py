from .channel_registry import ChannelRegistry, RegistryRefreshError
from .redirect_resolver import (
    CHANNEL_CACHE_CONTROL,
    DEFAULT_ARCHIVE_EXTENSIONS,
    IMMUTABLE_CACHE_CONTROL,
    ChannelNotFoundError,
    PermanentKeyError,
    RedirectResolver,
    RedirectSettings,
    RedirectTarget,
)

__all__ = [
    "ChannelRegistry",
    "RegistryRefreshError",
    "CHANNEL_CACHE_CONTROL",
    "DEFAULT_ARCHIVE_EXTENSIONS",
    "IMMUTABLE_CACHE_CONTROL",
    "ChannelNotFoundError",
    "PermanentKeyError",
    "RedirectResolver",
    "RedirectSettings",
    "RedirectTarget",
]
