from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from wxdump.core.dto.media import MediaFormat, MediaResult
from wxdump.core.errors import CodecUnavailable, DecodeFailed
from wxdump.core.tiers import TierResolver
from wxdump.media.codec_gateway import CodecGateway
from wxdump.media.content import is_wxgf_file, sniff_file
from wxdump.media.processor import ImageProcessor
from wxdump.utils.file_utils import list_matching, shard_dir

if TYPE_CHECKING:
    from wxdump.core.resources import ResourceConfig

logger = logging.getLogger(__name__)

THUMB_PREFIX = "th_"


def is_thumbnail_name(path: str | Path) -> bool:
    name = str(path)
    return Path(name).name.startswith(THUMB_PREFIX) and not name.endswith("hd")


@dataclass(frozen=True)
class ImageFiles:
    big: Optional[Path] = None
    thumbnail: Optional[Path] = None


def select_image_files(candidates: Sequence[tuple[Path, int]]) -> ImageFiles:
    """
    Pick the full-size image and the thumbnail among ``(path, size)`` pairs.

    The largest file is the full-size image; the smallest file named like a
    thumbnail is the thumbnail. A single candidate is one or the other by
    its name.
    """
    if not candidates:
        return ImageFiles()

    ordered = sorted(candidates, key=lambda c: c[1])
    if len(ordered) == 1:
        only = ordered[0][0]
        if is_thumbnail_name(only):
            return ImageFiles(thumbnail=only)
        return ImageFiles(big=only)

    thumbnail = next((p for p, _ in ordered if is_thumbnail_name(p)), None)
    return ImageFiles(big=ordered[-1][0], thumbnail=thumbnail)


class ChatImageResolver(TierResolver):
    """Chat images under ``image2/`` (and the older ``image/`` tree), as JPEG."""

    def __init__(self, resources: ResourceConfig, processor: ImageProcessor, gateway: CodecGateway):
        super().__init__()
        self.resources = resources
        self.processor = processor
        self.gateway = gateway

    def resolve(self, names: Iterable[Optional[str]]) -> MediaResult:
        names = [n for n in names if n]
        if not names:
            return MediaResult.not_found()

        files = self.find_files(names)
        if files.big is None and files.thumbnail is None:
            logger.info(f"No image files found for {names[0]}")
            return MediaResult.not_found()
        if files.thumbnail is None:
            logger.debug(f"Found big image but not thumbnail: {names[0]}")

        for path in (files.big, files.thumbnail):
            if path is None:
                continue
            payload = self._jpeg_bytes(path)
            if payload is not None:
                return MediaResult(payload=payload, format=MediaFormat.JPEG, source_path=str(path))
        return MediaResult.not_found()

    def find_files(self, names: Sequence[str]) -> ImageFiles:
        cands: List[tuple[Path, int]] = []
        for name in names:
            for base in (self.resources.image, self.resources.legacy_image):
                directory = shard_dir(base, name)
                if not directory.is_dir():
                    continue
                for entry in list_matching(directory, [name]):
                    if not entry.is_file():
                        continue
                    size = entry.stat().st_size
                    if size > 0:
                        cands.append((entry, size))
        return select_image_files(cands)

    def _jpeg_bytes(self, path: Path) -> Optional[bytes]:
        try:
            fmt = sniff_file(path)
            # true jpeg, simplest case
            if path.name.endswith("jpg") and fmt is MediaFormat.JPEG:
                return path.read_bytes()

            if is_wxgf_file(path):
                start = time.monotonic()
                data = self.gateway.decode_with_cache(path)
                elapsed = time.monotonic() - start
                if elapsed > 0.01:
                    logger.info(f"Decoded {path} in {elapsed:.2f} seconds")
            else:
                data = path.read_bytes()

            return self.processor.to_jpeg(data)
        except CodecUnavailable as e:
            self.warn_unavailable(
                e, "Cannot decode wxgf images; configure a codec server if these images are needed."
            )
        except DecodeFailed as e:
            logger.error(f"Failed to decode image file {path}: {e}")
        except OSError as e:
            logger.error(f"Error processing image file {path}: {e}")
        return None
