from .channels import ChannelDetails, ChannelLookupError, ChannelQueryService
from .publish import (
    ArchiveAlreadyExistsError,
    ChannelPublishService,
    ChannelUpdateConflictError,
    InvalidArchiveNameError,
    PublishError,
    PublishRequest,
    PublishResponse,
    PublishUseCase,
    UnknownChannelError,
)

__all__ = [
    "ChannelDetails",
    "ChannelLookupError",
    "ChannelQueryService",
    "ArchiveAlreadyExistsError",
    "ChannelPublishService",
    "ChannelUpdateConflictError",
    "InvalidArchiveNameError",
    "PublishError",
    "PublishRequest",
    "PublishResponse",
    "PublishUseCase",
    "UnknownChannelError",
]
