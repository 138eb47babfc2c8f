from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from wxdump.core.cache import MediaCache
from wxdump.core.fetcher import MediaFetcher
from wxdump.core.http_client import create_http_client_from_settings
from wxdump.core.resolver import ResourceResolver
from wxdump.core.resources import ResourceConfig
from wxdump.core.schema import SchemaSource
from wxdump.core.settings import SettingsStore
from wxdump.media.codec_gateway import create_codec_gateway
from wxdump.media.processor import ImageProcessor
from wxdump.media.voice import FFmpegTranscoder, SilkDecoder, VoiceTranscoder

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = Path.home() / ".wxdump"


def _subprocess_kwargs() -> dict:
    """Get platform-specific subprocess kwargs to hide console windows on Windows."""
    kwargs = {}
    if sys.platform == 'win32':
        kwargs['creationflags'] = subprocess.CREATE_NO_WINDOW
    return kwargs


class CoreContext:
    """
    Shared dependencies (settings + HTTP + cache + decoders + resolver).

    Use a single instance per export run; ``close()`` flushes the media
    cache and stops the voice pool and the codec connection.
    """

    def __init__(
        self,
        resources: ResourceConfig,
        *,
        schema: Optional[SchemaSource] = None,
        settings: Optional[SettingsStore] = None,
        cache_path: Optional[Path] = None,
        check_resources: bool = True,
    ):
        self.resources = resources
        if check_resources:
            self.resources.check()

        self.settings = settings or SettingsStore(DEFAULT_BASE_DIR / "settings.db")
        if self.settings.conn is None:
            self.settings.connect()

        self._http_client = create_http_client_from_settings(self.settings)
        self.fetcher = MediaFetcher(self._http_client)

        self.cache = MediaCache(
            cache_path or (DEFAULT_BASE_DIR / "media.cache"),
            flush_threshold=self.settings.get_int("emoji_cache_flush_threshold", 15),
        )
        self.cache.load()

        codec_server = self.settings.get_config("codec_server", "")
        self.gateway = create_codec_gateway(codec_server)
        if not self.gateway.has_backend:
            logger.info("No wxgf codec server configured; wxgf media will be skipped")

        self.processor = ImageProcessor(self.settings.get_int("jpeg_quality", 50))
        self.voice = VoiceTranscoder(
            FFmpegTranscoder(
                self.settings.get_config("ffmpeg_path", "ffmpeg"),
                self.settings.get_config("ffprobe_path", "ffprobe"),
            ),
            SilkDecoder(self.settings.get_config("silk_decoder_path", "silk_decoder")),
        )

        self.resolver = ResourceResolver(
            resources,
            self.cache,
            schema=schema,
            gateway=self.gateway,
            fetcher=self.fetcher,
            processor=self.processor,
            voice=self.voice,
            voice_workers=self.settings.get_int("voice_workers", 3),
        )

        self.start()

    def start(self) -> None:
        self._check_ffmpeg_availability()

    def _check_ffmpeg_availability(self) -> None:
        """Check if ffmpeg and ffprobe are available for voice conversion."""
        for key, default, purpose in (
            ("ffmpeg_path", "ffmpeg", "Voice messages cannot be converted to mp3."),
            ("ffprobe_path", "ffprobe", "Voice durations will fall back to decoder output."),
        ):
            binary = shutil.which(self.settings.get_config(key, default))
            if not binary:
                logger.warning(
                    f"{default} not found. {purpose} "
                    "Install ffmpeg: https://ffmpeg.org/download.html"
                )
                continue
            try:
                result = subprocess.run(
                    [binary, "-version"],
                    capture_output=True,
                    text=True,
                    timeout=5,
                    **_subprocess_kwargs(),
                )
                if result.returncode == 0:
                    version_line = result.stdout.split("\n")[0]
                    logger.info(f"{default} found: {version_line}")
                else:
                    logger.warning(f"{default} found but returned error: {result.stderr}")
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning(f"{default} found but failed to execute: {e}")

    def close(self) -> None:
        try:
            self.resolver.close()
            self.cache.close()
        finally:
            self._http_client.close()
            self.settings.close()
