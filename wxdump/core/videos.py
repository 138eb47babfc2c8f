from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from wxdump.core.dto.media import MediaFormat, MediaResult
from wxdump.core.wcf_paths import WcfPathResolver

if TYPE_CHECKING:
    from wxdump.core.resources import ResourceConfig

logger = logging.getLogger(__name__)

_FORMAT_BY_SUFFIX = {
    ".mp4": MediaFormat.MP4,
    ".jpg": MediaFormat.JPEG,
}


class VideoResolver:
    """Videos are not transcoded; the file or its thumbnail is returned as is."""

    def __init__(self, resources: ResourceConfig, wcf: Optional[WcfPathResolver] = None):
        self.resources = resources
        self.wcf = wcf or WcfPathResolver(resources.root)

    def candidates(self, video_id: str) -> List[Path]:
        if WcfPathResolver.is_virtual(video_id):
            return self.wcf.alternative_paths(video_id)
        return [
            self.resources.video / f"{video_id}.mp4",
            self.resources.video / f"{video_id}.jpg",
        ]

    def find(self, video_id: str) -> Optional[Path]:
        for path in self.candidates(video_id):
            if path.is_file():
                return path
        return None

    def resolve(self, video_id: str) -> MediaResult:
        if not video_id:
            return MediaResult.not_found()
        path = self.find(video_id)
        if path is None:
            logger.info(f"Video {video_id} not found")
            return MediaResult.not_found()
        try:
            payload = path.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read video {path}: {e}")
            return MediaResult.not_found()
        fmt = _FORMAT_BY_SUFFIX.get(path.suffix.lower(), MediaFormat.UNKNOWN)
        return MediaResult(payload=payload, format=fmt, source_path=str(path))
