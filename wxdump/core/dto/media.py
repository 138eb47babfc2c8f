import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class MediaKind(str, Enum):
    AVATAR = "avatar"
    CHAT_IMAGE = "chat_image"
    VOICE = "voice"
    EMOJI = "emoji"
    VIDEO = "video"


class MediaFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    WEBP = "webp"
    MP3 = "mp3"
    MP4 = "mp4"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["MediaFormat"]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class MediaRequest:
    kind: MediaKind
    primary_key: str                        # username / content digest / opaque path
    auxiliary_paths: Tuple[str, ...] = ()   # ordered extra candidates

    def __post_init__(self):
        if not isinstance(self.auxiliary_paths, tuple):
            object.__setattr__(self, "auxiliary_paths", tuple(self.auxiliary_paths))


@dataclass(frozen=True, slots=True)
class MediaResult:
    payload: Optional[bytes] = None
    format: Optional[MediaFormat] = None
    duration_ms: Optional[int] = None
    source_path: Optional[str] = field(default=None, compare=False)

    @classmethod
    def not_found(cls) -> "MediaResult":
        return cls()

    @property
    def found(self) -> bool:
        return self.payload is not None and self.format is not None

    def b64(self) -> str:
        """Payload as base64 text, empty string when absent."""
        if self.payload is None:
            return ""
        return base64.b64encode(self.payload).decode("ascii")


@dataclass(frozen=True, slots=True)
class BlockFileOffset:
    shard_index: int      # u32
    byte_position: int    # low 32 bits of the encoded offset

    @classmethod
    def decode(cls, value: int) -> "BlockFileOffset":
        value = int(value)
        if value < 0:
            raise ValueError(f"Negative block offset: {value}")
        return cls(shard_index=value >> 32, byte_position=value & 0xFFFFFFFF)

    def encode(self) -> int:
        return (self.shard_index << 32) | self.byte_position


@dataclass(frozen=True, slots=True)
class CacheEntry:
    digest: str
    payload: bytes
    format: MediaFormat


@dataclass(frozen=True, slots=True)
class EmojiDescriptor:
    catalog: str
    name: str
    cdn_url: Optional[str] = None
    encrypted_url: Optional[str] = None
    aes_key_hex: Optional[str] = None
