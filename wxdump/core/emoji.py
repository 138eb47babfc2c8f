"""
Emoji lookup.

Tiers, first success wins:

1. persistent media cache by digest
2. exact file ``emoji/<group>/<digest>``: a plain image whose digest matches,
   or the file decrypted with the local emoji key (accepted on digest match,
   or through the codec gateway when it is or decrypts to a ``wxgf`` container)
3. network download described by the schema (CDN, then encrypted URL)
4. any file in the group directory whose name starts with the digest and
   that sniffs as an image; unverified

Only verified network results are written to the cache. A CDN download whose
digest does not match is returned when the encrypted download fails too, but
it is never cached.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from wxdump.core.cache import MediaCache
from wxdump.core.dto.media import EmojiDescriptor, MediaFormat, MediaResult
from wxdump.core.errors import CodecUnavailable, DecodeFailed, IntegrityMismatch, Unavailable
from wxdump.core.fetcher import MediaFetcher
from wxdump.core.tiers import TierResolver
from wxdump.media.codec_gateway import CodecGateway
from wxdump.media.content import digest, file_digest, is_wxgf, is_wxgf_file, sniff_file, sniff_format

if TYPE_CHECKING:
    from wxdump.core.resources import ResourceConfig

logger = logging.getLogger(__name__)

ENCRYPTED_HEAD_LEN = 1024


def emoji_aes_key(key_digest: str) -> bytes:
    """The ASCII of the first half of the key digest is the AES key."""
    if len(key_digest) != 32:
        raise ValueError(f"Emoji key digest must be 32 characters long, got {len(key_digest)}")
    return key_digest[:16].encode("ascii")


def decrypt_local_emoji(data: bytes, aes_key: bytes) -> bytes:
    """
    Only the first 1024 bytes are encrypted (AES-ECB, no padding).

    Raises:
        DecodeFailed: the encrypted head is not a whole number of blocks.
    """
    head, tail = data[:ENCRYPTED_HEAD_LEN], data[ENCRYPTED_HEAD_LEN:]
    try:
        decryptor = Cipher(algorithms.AES(aes_key), modes.ECB()).decryptor()
        plain = decryptor.update(head) + decryptor.finalize()
    except ValueError as e:
        raise DecodeFailed(f"Cannot decrypt emoji: {e}")
    return plain + tail


class EmojiResolver(TierResolver):
    def __init__(
        self,
        resources: ResourceConfig,
        cache: MediaCache,
        gateway: CodecGateway,
        *,
        fetcher: Optional[MediaFetcher] = None,
        descriptors: Optional[Mapping[str, EmojiDescriptor]] = None,
        groups: Optional[Mapping[str, str]] = None,
        encryption_key: Optional[str] = None,
    ):
        super().__init__()
        self.resources = resources
        self.cache = cache
        self.gateway = gateway
        self.fetcher = fetcher
        self.descriptors = descriptors or {}
        self.groups = groups or {}
        self._aes_key: Optional[bytes] = None
        if encryption_key:
            try:
                self._aes_key = emoji_aes_key(encryption_key)
            except ValueError as e:
                logger.error(f"Ignoring emoji encryption key: {e}")

    def group_dir(self, emoji_digest: str) -> Path:
        return self.resources.emoji / self.groups.get(emoji_digest, "")

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def resolve(self, emoji_digest: str) -> MediaResult:
        if not emoji_digest:
            return MediaResult.not_found()

        entry = self.cache.get(emoji_digest)
        if entry is not None:
            return MediaResult(payload=entry.payload, format=entry.format)

        directory = self.group_dir(emoji_digest)
        result = self._from_resource(directory, emoji_digest)
        if result.found:
            return result

        descriptor = self.descriptors.get(emoji_digest)
        if descriptor is not None:
            result = self._from_network(emoji_digest, descriptor)
            if result.found:
                return result

        result = self._fallback(directory, emoji_digest)
        if result.found:
            logger.info(f"Using fallback for emoji {emoji_digest}")
            return result

        where = f"group='{self.groups.get(emoji_digest, '')}'" if descriptor is not None else "not in database"
        logger.warning(f"Cannot find emoji {emoji_digest}: {where}")
        return MediaResult.not_found()

    # ------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------

    def _from_resource(self, directory: Path, emoji_digest: str) -> MediaResult:
        path = directory / emoji_digest
        if not path.is_file():
            return MediaResult.not_found()
        try:
            return self._read_exact(path, emoji_digest)
        except CodecUnavailable as e:
            self.warn_unavailable(e, "Cannot decode wxgf emojis.")
        except Unavailable as e:
            self.warn_unavailable(e)
        except (DecodeFailed, IntegrityMismatch, OSError) as e:
            logger.error(f"Error processing emoji candidate {path}: {e}")
        return MediaResult.not_found()

    def _read_exact(self, path: Path, emoji_digest: str) -> MediaResult:
        fmt = sniff_file(path)
        if fmt is not MediaFormat.UNKNOWN and file_digest(path) == emoji_digest:
            return MediaResult(payload=path.read_bytes(), format=fmt, source_path=str(path))

        if is_wxgf_file(path):
            content = self.gateway.decode_with_cache(path)
            return self._decoded_result(path, content)

        if self._aes_key is None:
            raise Unavailable("No emoji encryption key available")
        content = decrypt_local_emoji(path.read_bytes(), self._aes_key)

        actual = digest(content)
        if actual != emoji_digest:
            if not is_wxgf(content):
                raise IntegrityMismatch(emoji_digest, actual)
            content = self.gateway.decode_with_cache(path, content)
        return self._decoded_result(path, content)

    @staticmethod
    def _decoded_result(path: Path, content: bytes) -> MediaResult:
        fmt = sniff_format(content[:12])
        if fmt is MediaFormat.UNKNOWN:
            raise DecodeFailed(f"Decrypted emoji {path} is not an image")
        return MediaResult(payload=content, format=fmt, source_path=str(path))

    def _from_network(self, emoji_digest: str, descriptor: EmojiDescriptor) -> MediaResult:
        if self.fetcher is None:
            return MediaResult.not_found()
        outcome = self.fetcher.fetch_emoji(emoji_digest, descriptor)
        if outcome is None or not outcome.payload:
            return MediaResult.not_found()
        if outcome.verified:
            self.cache.put(emoji_digest, outcome.payload, outcome.format)
        else:
            logger.warning(f"Emoji {emoji_digest} downloaded with mismatched digest; not caching")
        return MediaResult(payload=outcome.payload, format=outcome.format)

    def _fallback(self, directory: Path, emoji_digest: str) -> MediaResult:
        if not directory.is_dir():
            return MediaResult.not_found()
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.error(f"Error listing directory {directory}: {e}")
            return MediaResult.not_found()

        for cand in entries:
            if not cand.name.startswith(emoji_digest) or not cand.is_file():
                continue
            # fallback files are not encrypted
            fmt = sniff_file(cand)
            if fmt is MediaFormat.UNKNOWN:
                continue
            try:
                return MediaResult(payload=cand.read_bytes(), format=fmt, source_path=str(cand))
            except OSError as e:
                logger.error(f"Error reading emoji candidate {cand}: {e}")
        return MediaResult.not_found()
