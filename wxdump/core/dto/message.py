from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from wxdump.core.dto.media import MediaKind, MediaRequest


class MessageType:
    """Message type codes as stored in the ``message.type`` column."""
    TEXT = 1
    IMAGE = 3
    VOICE = 34
    NAMECARD = 42
    VIDEO_FILE = 43
    EMOJI = 47
    LOCATION = 48
    LINK = 49
    VOIP = 50
    WX_VIDEO = 62
    SYSTEM = 10000
    CUSTOM_EMOJI = 1048625
    RED_ENVELOPE = 436207665
    MONEY_TRANSFER = 419430449
    LOCATION_SHARING = -1879048186
    REPLY = 822083633
    FILE = 1090519089
    QQMUSIC = 1040187441
    APP_MSG = 16777265


MEDIA_KIND_BY_TYPE: Dict[int, MediaKind] = {
    MessageType.IMAGE: MediaKind.CHAT_IMAGE,
    MessageType.QQMUSIC: MediaKind.CHAT_IMAGE,  # album art
    MessageType.VOICE: MediaKind.VOICE,
    MessageType.EMOJI: MediaKind.EMOJI,
    MessageType.CUSTOM_EMOJI: MediaKind.EMOJI,
    MessageType.VIDEO_FILE: MediaKind.VIDEO,
}


def media_kind_for_type(type_code: int) -> Optional[MediaKind]:
    return MEDIA_KIND_BY_TYPE.get(type_code)


@dataclass(frozen=True)
class MessageRecord:
    """
    Row-level fields handed over by the schema walk.

    Only the columns media resolution needs; everything else stays with the
    renderer.
    """
    msg_svr_id: int
    type: int
    img_path: Optional[str]
    talker: str = ""
    emoji_md5: Optional[str] = None   # parsed from the message XML when present


def strip_image_path(img_path: Optional[str]) -> Optional[str]:
    """``THUMBNAIL_DIRPATH://th_abcd`` -> ``abcd``."""
    if not img_path:
        return None
    name = img_path.split("_")[-1]
    return name or None


def request_for_message(
    msg: MessageRecord,
    big_image_paths: Optional[Mapping[str, str]] = None,
) -> Optional[MediaRequest]:
    """Build the media lookup for a message, or None for non-media messages."""
    kind = media_kind_for_type(msg.type)
    if kind is None:
        return None

    if kind is MediaKind.CHAT_IMAGE:
        name = strip_image_path(msg.img_path)
        if not name:
            return None
        aux = []
        big = (big_image_paths or {}).get(str(msg.msg_svr_id))
        if big:
            aux.append(big)
        return MediaRequest(kind, name, tuple(aux))

    if kind is MediaKind.EMOJI:
        key = msg.emoji_md5 or msg.img_path
        if not key:
            return None
        return MediaRequest(kind, key)

    if not msg.img_path:
        return None
    return MediaRequest(kind, msg.img_path)


def avatar_request(username: str) -> MediaRequest:
    return MediaRequest(MediaKind.AVATAR, username)
