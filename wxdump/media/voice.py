"""
Voice message transcoding.

Voice clips are stored either as AMR (standard container) or in the SILK
speech codec. Both end up as mono MP3:

- AMR:  ffmpeg -> mp3
- SILK: silk_decoder -> raw s16le PCM (24 kHz) -> ffmpeg -> mp3

Duration comes from probing the final MP3. The SILK decoder's own report of
the clip length is only used when probing is not possible.
"""

from __future__ import annotations

import logging
import math
import re
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from wxdump.core.dto.media import MediaFormat, MediaResult
from wxdump.core.errors import NotFound, TranscodeFailed, Unavailable, UnsupportedFormat
from wxdump.media.content import read_header

logger = logging.getLogger(__name__)

SNIFF_LEN = 10

OUTPUT_SAMPLE_RATE = 16000
OUTPUT_CHANNELS = 1
PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1
PCM_FORMAT = "s16le"

_SILK_LENGTH_RE = re.compile(r"File length\s*:\s*([0-9.]+)\s*ms")


def _subprocess_kwargs() -> dict:
    """Get platform-specific subprocess kwargs to hide console windows on Windows."""
    kwargs = {}
    if sys.platform == 'win32':
        kwargs['creationflags'] = subprocess.CREATE_NO_WINDOW
    return kwargs


class VoiceContainer(str, Enum):
    AMR = "amr"
    SILK = "silk"


def sniff_voice(header: bytes) -> VoiceContainer:
    """
    Raises:
        UnsupportedFormat: neither marker is present.
    """
    head = bytes(header[:SNIFF_LEN])
    if b"AMR" in head:
        return VoiceContainer.AMR
    if b"SILK" in head:
        return VoiceContainer.SILK
    raise UnsupportedFormat(f"Audio file format cannot be recognized: {head!r}")


# ------------------------------------------------------------
# Capabilities
# ------------------------------------------------------------

class SpeechDecoder(Protocol):
    def decode_to_pcm(self, source: Path, target: Path) -> str:
        """Decode to headerless PCM at ``PCM_SAMPLE_RATE``; return decoder stdout."""
        ...


class AudioTranscoder(Protocol):
    def to_mp3(self, source: Path, target: Path, *, input_format: Optional[str] = None,
               input_rate: Optional[int] = None, input_channels: Optional[int] = None) -> None:
        ...

    def probe_duration_ms(self, source: Path) -> Optional[int]:
        ...


class SilkDecoder:
    """Runs the external ``silk_decoder <in> <out>`` binary."""

    def __init__(self, binary: Optional[str] = None):
        self._binary = binary or "silk_decoder"

    def available(self) -> bool:
        return shutil.which(self._binary) is not None or Path(self._binary).is_file()

    def decode_to_pcm(self, source: Path, target: Path) -> str:
        if not self.available():
            raise Unavailable(f"Silk decoder not found: {self._binary}")
        try:
            proc = subprocess.run(
                [self._binary, str(source), str(target)],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                **_subprocess_kwargs(),
            )
        except subprocess.CalledProcessError as e:
            raise TranscodeFailed(
                f"Silk decoding failed for {source}: {(e.stderr or b'').decode(errors='ignore')}"
            )
        return proc.stdout.decode(errors="ignore")


class FFmpegTranscoder:
    """ffmpeg / ffprobe from PATH or explicit locations."""

    def __init__(self, ffmpeg: Optional[str] = None, ffprobe: Optional[str] = None):
        self._ffmpeg = ffmpeg or "ffmpeg"
        self._ffprobe = ffprobe or "ffprobe"

    def ffmpeg_available(self) -> bool:
        return shutil.which(self._ffmpeg) is not None

    def ffprobe_available(self) -> bool:
        return shutil.which(self._ffprobe) is not None

    def to_mp3(self, source: Path, target: Path, *, input_format: Optional[str] = None,
               input_rate: Optional[int] = None, input_channels: Optional[int] = None) -> None:
        if not self.ffmpeg_available():
            raise Unavailable("ffmpeg not found on PATH")

        cmd = [self._ffmpeg, "-loglevel", "error"]
        if input_format:
            cmd.extend(["-f", input_format])
        if input_rate:
            cmd.extend(["-ar", str(input_rate)])
        if input_channels:
            cmd.extend(["-ac", str(input_channels)])
        cmd.extend([
            "-i", str(source),
            "-acodec", "libmp3lame",
            "-ar", str(OUTPUT_SAMPLE_RATE),
            "-ac", str(OUTPUT_CHANNELS),
            "-y",
            str(target),
        ])
        try:
            subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                **_subprocess_kwargs(),
            )
        except subprocess.CalledProcessError as e:
            raise TranscodeFailed(
                f"ffmpeg failed for {source}: {e.stderr.decode(errors='ignore')}"
            )

    def probe_duration_ms(self, source: Path) -> Optional[int]:
        if not self.ffprobe_available():
            return None
        cmd = [
            self._ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(source),
        ]
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                text=True,
                **_subprocess_kwargs(),
            )
        except subprocess.CalledProcessError:
            return None
        try:
            value = float(proc.stdout.strip())
        except (TypeError, ValueError):
            return None
        if value <= 0:
            return None
        return int(round(value * 1000))


def parse_silk_duration_ms(output: str) -> Optional[int]:
    match = _SILK_LENGTH_RE.search(output or "")
    if not match:
        return None
    return int(math.ceil(float(match.group(1))))


# ------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class VoiceClip:
    mp3: bytes
    duration_ms: int
    container: VoiceContainer


class VoiceTranscoder:
    """Sniff, decode and transcode one voice file inside a private temp dir."""

    def __init__(
        self,
        transcoder: Optional[AudioTranscoder] = None,
        speech_decoder: Optional[SpeechDecoder] = None,
        *,
        temp_root: Optional[Path] = None,
    ):
        self._transcoder = transcoder or FFmpegTranscoder()
        self._speech = speech_decoder or SilkDecoder()
        self._temp_root = Path(temp_root) if temp_root else None

    def transcode(self, source: str | Path) -> VoiceClip:
        """
        Raises:
            NotFound: source file missing.
            UnsupportedFormat: unknown container header.
            Unavailable / TranscodeFailed: external tool problems.
        """
        source = Path(source)
        if not source.is_file():
            raise NotFound(f"Voice file not found: {source}")

        container = sniff_voice(read_header(source, SNIFF_LEN))
        base = source.name[:-4] if source.name.endswith(".amr") else source.name

        with tempfile.TemporaryDirectory(prefix="wxdump_audio_", dir=self._temp_root) as tmp:
            tmp_dir = Path(tmp)
            mp3_path = tmp_dir / f"{base}.mp3"
            reported_ms: Optional[int] = None

            if container is VoiceContainer.AMR:
                self._transcoder.to_mp3(source, mp3_path)
            else:
                raw_path = tmp_dir / f"{base}.raw"
                output = self._speech.decode_to_pcm(source, raw_path)
                reported_ms = parse_silk_duration_ms(output)
                self._transcoder.to_mp3(
                    raw_path,
                    mp3_path,
                    input_format=PCM_FORMAT,
                    input_rate=PCM_SAMPLE_RATE,
                    input_channels=PCM_CHANNELS,
                )

            if not mp3_path.is_file():
                raise TranscodeFailed(f"Transcoder produced no output for {source}")

            duration = self._transcoder.probe_duration_ms(mp3_path)
            if duration is None:
                duration = reported_ms
            if duration is None:
                logger.warning(f"Could not determine duration of {source}")
                duration = 0

            return VoiceClip(mp3=mp3_path.read_bytes(), duration_ms=duration, container=container)

    def transcode_result(self, source: str | Path) -> MediaResult:
        clip = self.transcode(source)
        return MediaResult(
            payload=clip.mp3,
            format=MediaFormat.MP3,
            duration_ms=clip.duration_ms,
            source_path=str(source),
        )
