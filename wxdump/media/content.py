from __future__ import annotations

import hashlib
from pathlib import Path

from wxdump.core.dto.media import MediaFormat

# Proprietary image container magic
WXGF_MAGIC = b"wxgf"

_HEADER_LEN = 12


def digest(data: bytes) -> str:
    """Lowercase hex MD5 of ``data``."""
    return hashlib.md5(data).hexdigest()


def text_digest(text: str) -> str:
    return digest(text.encode("utf-8"))


def file_digest(path: str | Path) -> str:
    h = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 128), b""):
            h.update(chunk)
    return h.hexdigest()


def read_header(path: str | Path, length: int = _HEADER_LEN) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read(length)
    except OSError:
        return b""


def sniff_format(header: bytes) -> MediaFormat:
    """
    Detect an image container from its leading bytes.

    Only the fixed magic prefixes are consulted; anything unmatched is
    ``MediaFormat.UNKNOWN``. Never raises.
    """
    if not header or len(header) < 2:
        return MediaFormat.UNKNOWN
    if header[:2] == b"\xff\xd8":
        return MediaFormat.JPEG
    if header[:4] == b"\x89PNG":
        return MediaFormat.PNG
    if header[:3] == b"GIF":
        return MediaFormat.GIF
    if len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return MediaFormat.WEBP
    return MediaFormat.UNKNOWN


def sniff_file(path: str | Path) -> MediaFormat:
    return sniff_format(read_header(path))


def is_image(header: bytes) -> bool:
    return sniff_format(header) is not MediaFormat.UNKNOWN


def is_wxgf(data: bytes) -> bool:
    return len(data) >= 4 and data[:4] == WXGF_MAGIC


def is_wxgf_file(path: str | Path) -> bool:
    return is_wxgf(read_header(path, 4))
