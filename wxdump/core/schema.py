"""
Boundary to the decrypted message database.

The schema walk that produces these maps lives outside this package; the
resolver only consumes the lookups below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol

from wxdump.core.dto.media import EmojiDescriptor


class SchemaSource(Protocol):
    def avatar_urls(self) -> Mapping[str, str]:
        """username -> avatar download URL"""
        ...

    def emoji_descriptors(self) -> Mapping[str, EmojiDescriptor]:
        """emoji digest -> download descriptor"""
        ...

    def emoji_groups(self) -> Mapping[str, str]:
        """emoji digest -> subdirectory under ``emoji/``"""
        ...

    def big_image_paths(self) -> Mapping[str, str]:
        """server message id -> full-size image path"""
        ...

    def emoji_encryption_key(self) -> Optional[str]:
        """32-char hex digest the local emoji key derives from, if known."""
        ...


@dataclass
class StaticSchema:
    """In-memory ``SchemaSource``."""

    avatars: Dict[str, str] = field(default_factory=dict)
    emojis: Dict[str, EmojiDescriptor] = field(default_factory=dict)
    groups: Dict[str, str] = field(default_factory=dict)
    big_images: Dict[str, str] = field(default_factory=dict)
    encryption_key: Optional[str] = None

    def avatar_urls(self) -> Mapping[str, str]:
        return self.avatars

    def emoji_descriptors(self) -> Mapping[str, EmojiDescriptor]:
        return self.emojis

    def emoji_groups(self) -> Mapping[str, str]:
        return self.groups

    def big_image_paths(self) -> Mapping[str, str]:
        return self.big_images

    def emoji_encryption_key(self) -> Optional[str]:
        return self.encryption_key
