from wxdump.core.dto.media import (
    BlockFileOffset,
    CacheEntry,
    EmojiDescriptor,
    MediaFormat,
    MediaKind,
    MediaRequest,
    MediaResult,
)

# Message rows handed over by the schema walk
from wxdump.core.dto.message import (
    MessageRecord,
    MessageType,
    avatar_request,
    media_kind_for_type,
    request_for_message,
)

__all__ = [
    # Media
    "BlockFileOffset",
    "CacheEntry",
    "EmojiDescriptor",
    "MediaFormat",
    "MediaKind",
    "MediaRequest",
    "MediaResult",

    # Messages
    "MessageRecord",
    "MessageType",
    "avatar_request",
    "media_kind_for_type",
    "request_for_message",
]
