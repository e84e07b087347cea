"""
アプリケーション層の公開API。
"""

from .services import ChannelRegistry, RedirectResolver, RedirectSettings, RegistryRefreshError
from .usecases import ChannelPublishService, ChannelQueryService, PublishRequest, PublishResponse

__all__ = [
    "ChannelRegistry",
    "RedirectResolver",
    "RedirectSettings",
    "RegistryRefreshError",
    "ChannelPublishService",
    "ChannelQueryService",
    "PublishRequest",
    "PublishResponse",
]
