from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QBuffer, QByteArray, QIODevice
from PyQt6.QtGui import QImage

from wxdump.core.dto.media import MediaFormat
from wxdump.core.errors import DecodeFailed
from wxdump.media.content import sniff_format

logger = logging.getLogger(__name__)

RAW_AVATAR_SIZE = 96
RAW_AVATAR_BPP = 4
RAW_AVATAR_EXT = ".bm"

DEFAULT_JPEG_QUALITY = 50


class ImageProcessor:
    """
    Pure image decoding utility.

    Responsibilities:
    - Decode standard containers and the raw avatar pixel format
    - Re-encode to JPEG

    Non-responsibilities:
    - Locating files
    - Caching
    - Threading
    """

    def __init__(self, jpeg_quality: int = DEFAULT_JPEG_QUALITY):
        self._jpeg_quality = max(1, min(100, int(jpeg_quality)))

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def load(self, data: bytes) -> QImage:
        img = QImage.fromData(data)
        if img.isNull():
            raise DecodeFailed(f"Failed to decode image ({len(data)} bytes)")
        return img

    def load_file(self, path: str | Path) -> QImage:
        path = Path(path)
        if path.suffix.lower() == RAW_AVATAR_EXT:
            return self.load_raw_avatar(path.read_bytes())
        return self.load(path.read_bytes())

    def load_raw_avatar(self, data: bytes) -> QImage:
        """
        96x96, 4 bytes per pixel (R, G, B, unused). Missing trailing pixels
        are left black.
        """
        expected = RAW_AVATAR_SIZE * RAW_AVATAR_SIZE * RAW_AVATAR_BPP
        if len(data) < expected:
            data = bytes(data) + b"\x00" * (expected - len(data))
        rgb = bytearray(RAW_AVATAR_SIZE * RAW_AVATAR_SIZE * 3)
        rgb[0::3] = data[0:expected:4]
        rgb[1::3] = data[1:expected:4]
        rgb[2::3] = data[2:expected:4]
        img = QImage(
            bytes(rgb),
            RAW_AVATAR_SIZE,
            RAW_AVATAR_SIZE,
            RAW_AVATAR_SIZE * 3,
            QImage.Format.Format_RGB888,
        )
        # detach from the Python buffer
        return img.copy()

    def encode_jpeg(self, img: QImage, quality: Optional[int] = None) -> bytes:
        if img.isNull():
            raise DecodeFailed("Cannot encode a null image")
        q = self._jpeg_quality if quality is None else quality
        # JPEG has no alpha channel
        if img.hasAlphaChannel():
            img = img.convertToFormat(QImage.Format.Format_RGB32)
        return self._save(img, "JPEG", q)

    def encode_png(self, img: QImage) -> bytes:
        return self._save(img, "PNG", -1)

    def to_jpeg(self, data: bytes) -> bytes:
        """Return ``data`` as JPEG, re-encoding anything that is not already JPEG."""
        if sniff_format(data[:12]) is MediaFormat.JPEG:
            return bytes(data)
        return self.encode_jpeg(self.load(data))

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    @staticmethod
    def _save(img: QImage, fmt: str, quality: int) -> bytes:
        array = QByteArray()
        buf = QBuffer(array)
        buf.open(QIODevice.OpenModeFlag.WriteOnly)
        try:
            ok = img.save(buf, fmt, quality)
        finally:
            buf.close()
        if not ok:
            raise DecodeFailed(f"Failed to encode image as {fmt}")
        return bytes(array.data())
