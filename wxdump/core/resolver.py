"""
Per-message media resolution.

``ResourceResolver.resolve`` is the single entry point: it dispatches on the
request kind, runs that kind's tiers in order and returns the first success.
A miss is a ``MediaResult.not_found()``; errors never escape.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Optional

from wxdump.core.avatars import AvatarResolver
from wxdump.core.cache import MediaCache
from wxdump.core.dto.media import MediaKind, MediaRequest, MediaResult
from wxdump.core.emoji import EmojiResolver
from wxdump.core.errors import MediaError, NotFound, Unavailable
from wxdump.core.fetcher import MediaFetcher
from wxdump.core.images import ChatImageResolver
from wxdump.core.resources import ResourceConfig
from wxdump.core.schema import SchemaSource, StaticSchema
from wxdump.core.tiers import TierResolver
from wxdump.core.videos import VideoResolver
from wxdump.core.wcf_paths import WcfPathResolver
from wxdump.media.codec_gateway import CodecGateway
from wxdump.media.content import text_digest
from wxdump.media.processor import ImageProcessor
from wxdump.media.voice import VoiceTranscoder
from wxdump.utils.file_utils import shard_dir

logger = logging.getLogger(__name__)

DEFAULT_VOICE_WORKERS = 3


class ResourceResolver(TierResolver):
    """
    Resolves media for message records.

    Thread-safe: every tier is read-only except the media cache, which
    guards itself. Voice decoding can be started ahead of time with
    ``prefetch_voices``; ``resolve`` then waits for the prefetched result.
    """

    def __init__(
        self,
        resources: ResourceConfig,
        cache: MediaCache,
        *,
        schema: Optional[SchemaSource] = None,
        gateway: Optional[CodecGateway] = None,
        fetcher: Optional[MediaFetcher] = None,
        processor: Optional[ImageProcessor] = None,
        voice: Optional[VoiceTranscoder] = None,
        voice_workers: int = DEFAULT_VOICE_WORKERS,
    ):
        super().__init__()
        self.resources = resources
        self.cache = cache
        self.schema = schema or StaticSchema()
        self.gateway = gateway or CodecGateway()
        self.fetcher = fetcher
        self.processor = processor or ImageProcessor()
        self.voice = voice or VoiceTranscoder()
        self.wcf = WcfPathResolver(resources.root)

        self.avatars = AvatarResolver(
            resources,
            self.processor,
            fetcher=fetcher,
            avatar_urls=self.schema.avatar_urls(),
        )
        self.images = ChatImageResolver(resources, self.processor, self.gateway)
        self.emoji = EmojiResolver(
            resources,
            cache,
            self.gateway,
            fetcher=fetcher,
            descriptors=self.schema.emoji_descriptors(),
            groups=self.schema.emoji_groups(),
            encryption_key=self.schema.emoji_encryption_key(),
        )
        self.videos = VideoResolver(resources, self.wcf)

        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(voice_workers)),
            thread_name_prefix="wxdump-voice",
        )
        self._voice_futures: Dict[str, Future] = {}
        self._voice_lock = threading.Lock()

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def resolve(self, request: MediaRequest) -> MediaResult:
        match request.kind:
            case MediaKind.AVATAR:
                return self.avatars.resolve(request.primary_key)
            case MediaKind.CHAT_IMAGE:
                return self.images.resolve([request.primary_key, *request.auxiliary_paths])
            case MediaKind.VOICE:
                return self.resolve_voice(request.primary_key)
            case MediaKind.EMOJI:
                return self.emoji.resolve(request.primary_key)
            case MediaKind.VIDEO:
                return self.videos.resolve(request.primary_key)
        logger.error(f"Unsupported media kind: {request.kind!r}")
        return MediaResult.not_found()

    def voice_path(self, key: str) -> Path:
        if WcfPathResolver.is_virtual(key):
            real = self.wcf.resolve(key)
            if real is not None:
                return real
        name = text_digest(key)
        return shard_dir(self.resources.voice, name) / f"msg_{key}.amr"

    def resolve_voice(self, key: str) -> MediaResult:
        if not key:
            return MediaResult.not_found()
        with self._voice_lock:
            future = self._voice_futures.get(key)
        if future is not None:
            return future.result()
        return self._decode_voice(key)

    def prefetch_voices(self, keys: Iterable[str]) -> int:
        """Queue background decoding for voice keys. Returns how many were queued."""
        queued = 0
        with self._voice_lock:
            for key in keys:
                if not key or key in self._voice_futures:
                    continue
                self._voice_futures[key] = self._executor.submit(self._decode_voice, key)
                queued += 1
        if queued:
            logger.info(f"Queued {queued} voice messages for decoding")
        return queued

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.gateway.close()

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _decode_voice(self, key: str) -> MediaResult:
        path = self.voice_path(key)
        try:
            return self.voice.transcode_result(path)
        except NotFound:
            logger.error(f"Cannot find voice file {key}, {path}")
        except Unavailable as e:
            self.warn_unavailable(e, "Voice messages cannot be converted.")
        except MediaError as e:
            logger.error(f"Error parsing audio file {path}: {e}")
        except OSError as e:
            logger.error(f"Error reading audio file {path}: {e}")
        return MediaResult.not_found()
