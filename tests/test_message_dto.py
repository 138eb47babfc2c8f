import pytest

from wxdump.core.dto import (
    BlockFileOffset,
    MediaFormat,
    MediaKind,
    MediaRequest,
    MediaResult,
    MessageRecord,
    MessageType,
    avatar_request,
    request_for_message,
)
from wxdump.core.dto.message import strip_image_path


def test_strip_image_path() -> None:
    assert strip_image_path("THUMBNAIL_DIRPATH://th_882a576c") == "882a576c"
    assert strip_image_path("882a576c") == "882a576c"
    assert strip_image_path(None) is None
    assert strip_image_path("trailing_") is None


def test_image_request_carries_big_image_path() -> None:
    msg = MessageRecord(msg_svr_id=42, type=MessageType.IMAGE, img_path="THUMBNAIL_DIRPATH://th_abcd")
    req = request_for_message(msg, {"42": "ffee1234.jpg"})
    assert req == MediaRequest(MediaKind.CHAT_IMAGE, "abcd", ("ffee1234.jpg",))


def test_emoji_prefers_parsed_digest() -> None:
    msg = MessageRecord(1, MessageType.EMOJI, img_path="fallback", emoji_md5="d41d8cd9")
    assert request_for_message(msg).primary_key == "d41d8cd9"


def test_voice_and_video_use_stored_path() -> None:
    voice = request_for_message(MessageRecord(1, MessageType.VOICE, img_path="1234abcd"))
    video = request_for_message(MessageRecord(2, MessageType.VIDEO_FILE, img_path="2504181043"))
    assert (voice.kind, voice.primary_key) == (MediaKind.VOICE, "1234abcd")
    assert (video.kind, video.primary_key) == (MediaKind.VIDEO, "2504181043")


def test_non_media_messages() -> None:
    assert request_for_message(MessageRecord(1, MessageType.TEXT, img_path=None)) is None
    assert request_for_message(MessageRecord(1, MessageType.VOICE, img_path=None)) is None


def test_request_is_immutable() -> None:
    req = MediaRequest(MediaKind.AVATAR, "wxid_a", ["x", "y"])
    assert req.auxiliary_paths == ("x", "y")
    with pytest.raises(AttributeError):
        req.primary_key = "other"
    assert avatar_request("wxid_a").kind is MediaKind.AVATAR


def test_block_offset_split() -> None:
    off = BlockFileOffset.decode((3 << 32) | 1000)
    assert (off.shard_index, off.byte_position) == (3, 1000)
    assert off.encode() == (3 << 32) | 1000
    with pytest.raises(ValueError):
        BlockFileOffset.decode(-1)


def test_media_result() -> None:
    miss = MediaResult.not_found()
    assert not miss.found
    assert miss.b64() == ""

    hit = MediaResult(payload=b"\xff\xd8", format=MediaFormat.JPEG)
    assert hit.found
    assert hit.b64() == "/9g="
    assert MediaFormat.parse("bogus") is MediaFormat.UNKNOWN
    assert MediaFormat.parse(None) is None
