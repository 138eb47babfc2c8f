from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, List, Mapping, Optional

from PyQt6.QtGui import QImage

from wxdump.core.dto.media import MediaFormat, MediaResult
from wxdump.core.errors import DecodeFailed, FetchFailed, MediaError, NotFound
from wxdump.core.fetcher import MediaFetcher
from wxdump.core.tiers import TierResolver
from wxdump.media.blob_store import AvatarIndex, BlockStoreReader, sort_by_priority
from wxdump.media.content import text_digest
from wxdump.media.processor import ImageProcessor
from wxdump.utils.file_utils import atomic_write_bytes, list_matching, shard_dir

if TYPE_CHECKING:
    from wxdump.core.resources import ResourceConfig

logger = logging.getLogger(__name__)


class AvatarResolver(TierResolver):
    """
    Contact avatars, returned as JPEG.

    Tiers:
      1. block store (``sfs/avatar.block.*`` via ``Index_avatar``)
      2. ``avatar/<d[0:2]>/<d[2:4]>/`` directory scan
      3. download from the contact's avatar URL, persisted into tier 2
    """

    def __init__(
        self,
        resources: ResourceConfig,
        processor: ImageProcessor,
        *,
        fetcher: Optional[MediaFetcher] = None,
        avatar_urls: Optional[Mapping[str, str]] = None,
    ):
        super().__init__()
        self.resources = resources
        self.processor = processor
        self.fetcher = fetcher
        self.avatar_urls = avatar_urls or {}

        self._blocks = BlockStoreReader(resources.sfs)
        self._index = AvatarIndex(resources.avatar_index) if resources.avatar_index else None
        self._use_blocks = self._index is not None and self._index.exists() and self._blocks.has_shards()
        if self._index is not None and not self._use_blocks:
            logger.info(f"Avatar block store not usable under {resources.sfs}")

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def resolve(self, username: str) -> MediaResult:
        if not username:
            return MediaResult.not_found()
        avatar_id = text_digest(username)

        img = self._from_block_store(avatar_id)
        if img is None:
            img = self._from_directory(avatar_id)
        if img is None:
            img = self._download(username, avatar_id)
        if img is None:
            logger.warning(f"Avatar file for {username} not found.")
            return MediaResult.not_found()

        try:
            payload = self.processor.encode_jpeg(img)
        except DecodeFailed as e:
            logger.error(f"Failed to compress avatar of {username} to JPEG: {e}")
            return MediaResult.not_found()
        return MediaResult(payload=payload, format=MediaFormat.JPEG)

    def avatar_dir(self, avatar_id: str) -> Path:
        return shard_dir(self.resources.avatar, avatar_id)

    # ------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------

    def _from_block_store(self, avatar_id: str) -> Optional[QImage]:
        if not self._use_blocks:
            return None
        try:
            candidates = self._index.search(avatar_id)
        except sqlite3.Error as e:
            logger.error(f"Avatar index lookup failed for {avatar_id}: {e}")
            return None

        for cand in sort_by_priority(candidates, key=lambda c: c.filename):
            try:
                return self.processor.load(self._blocks.read_candidate(cand))
            except (NotFound, DecodeFailed) as e:
                logger.debug(f"Cannot read avatar block {cand.filename}: {e}")
        return None

    def _from_directory(self, avatar_id: str) -> Optional[QImage]:
        for cand in self._directory_candidates(avatar_id):
            try:
                return self.processor.load_file(cand)
            except (OSError, DecodeFailed) as e:
                logger.error(f"Error reading avatar from {cand}: {e}")
        return None

    def _directory_candidates(self, avatar_id: str) -> List[Path]:
        found: List[Path] = []
        for entry in list_matching(self.avatar_dir(avatar_id), [avatar_id]):
            if entry.is_dir():
                found.extend(p for p in sorted(entry.iterdir(), key=lambda p: p.name) if p.is_file())
            elif entry.is_file():
                found.append(entry)
        return sort_by_priority(found, key=lambda p: p.name)

    def _download(self, username: str, avatar_id: str) -> Optional[QImage]:
        url = self.avatar_urls.get(username)
        if not url or self.fetcher is None:
            return None

        logger.info(f"Requesting avatar of {username} from {url} ...")
        try:
            img = self.processor.load(self.fetcher.fetch_plain(url))
        except (FetchFailed, DecodeFailed) as e:
            logger.error(f"Failed to fetch avatar of {username}: {e}")
            return None

        self._persist(avatar_id, img)
        return img

    def _persist(self, avatar_id: str, img: QImage) -> None:
        target = self.avatar_dir(avatar_id) / f"{avatar_id}.png"
        try:
            atomic_write_bytes(target, self.processor.encode_png(img))
        except (OSError, MediaError) as e:
            logger.warning(f"Could not save avatar to {target}: {e}")

