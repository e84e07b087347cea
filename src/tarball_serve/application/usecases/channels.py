"""
チャネル一覧と詳細を参照するユースケース。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from tarball_serve.domain import ChannelConfig
from tarball_serve.infrastructure.storage import ChannelRepository, ObjectNotFoundError


class ChannelLookupError(LookupError):
    """要求されたチャネルがカタログに存在しない。"""


@dataclass(frozen=True)
class ChannelDetails:
    name: str
    config: ChannelConfig


class ChannelQueryService:
    """バケット上のメタデータを直接読む。サーバのスナップショットは経由しない。"""

    def __init__(self, *, repository: ChannelRepository) -> None:
        self._repository = repository

    def list_channels(self) -> Sequence[str]:
        return sorted(self._repository.load_catalog().value.channels)

    def show_channel(self, channel_name: str) -> ChannelDetails:
        if channel_name not in self._repository.load_catalog().value:
            raise ChannelLookupError(f"Channel {channel_name} does not exist!")
        try:
            config = self._repository.load_channel(channel_name).value
        except ObjectNotFoundError as exc:
            raise ChannelLookupError(f"Channel {channel_name} has no {channel_name}.json in the bucket") from exc
        return ChannelDetails(name=channel_name, config=config)
