from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

IMG_DIRNAME = "image2"
LEGACY_IMG_DIRNAME = "image"
VOICE_DIRNAME = "voice2"
EMOJI_DIRNAME = "emoji"
VIDEO_DIRNAME = "video"
AVATAR_DIRNAME = "avatar"
SFS_DIRNAME = "sfs"


class ResourceConfig:
    """
    Centralized resource directory configuration.

    Provides a single source of truth for every media area under the
    resource root. Nothing is created here; the tree is an offline copy and
    is only read, except for avatars persisted after a download.
    """

    REQUIRED = ("", IMG_DIRNAME, EMOJI_DIRNAME, VOICE_DIRNAME)

    def __init__(self, root: Path, *, avatar_index: Optional[Path] = None):
        """
        Args:
            root: Resource root (the per-account ``MicroMsg/<id>`` directory)
            avatar_index: sqlite file holding the ``Index_avatar`` table, if any
        """
        self.root = Path(root)
        self.avatar_index = Path(avatar_index) if avatar_index else None

    def check(self) -> None:
        """
        Raises:
            FileNotFoundError: a required directory is missing.
        """
        for subdir in self.REQUIRED:
            path = self.root / subdir if subdir else self.root
            if not path.is_dir():
                raise FileNotFoundError(f"No such directory: {path}")

    @property
    def image(self) -> Path:
        """Chat images (current layout)"""
        return self.root / IMG_DIRNAME

    @property
    def legacy_image(self) -> Path:
        """Chat images (old layout)"""
        return self.root / LEGACY_IMG_DIRNAME

    @property
    def voice(self) -> Path:
        return self.root / VOICE_DIRNAME

    @property
    def emoji(self) -> Path:
        return self.root / EMOJI_DIRNAME

    @property
    def video(self) -> Path:
        return self.root / VIDEO_DIRNAME

    @property
    def avatar(self) -> Path:
        return self.root / AVATAR_DIRNAME

    @property
    def sfs(self) -> Path:
        """Avatar block store shards"""
        return self.root / SFS_DIRNAME
