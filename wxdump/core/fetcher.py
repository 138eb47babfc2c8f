from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import requests
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from wxdump.core.dto.media import EmojiDescriptor, MediaFormat
from wxdump.core.errors import FetchFailed, IntegrityMismatch
from wxdump.core.http_client import HttpClient
from wxdump.media.content import digest, sniff_format

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    payload: bytes
    format: MediaFormat
    verified: bool


def decrypt_cbc_key_iv(data: bytes, aes_key_hex: str) -> bytes:
    """
    AES-CBC with the key doubling as IV. No padding is stripped.

    Raises:
        FetchFailed: bad key or ciphertext not a whole number of blocks.
    """
    try:
        key = bytes.fromhex(aes_key_hex)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(key)).decryptor()
        return decryptor.update(data) + decryptor.finalize()
    except ValueError as e:
        raise FetchFailed(f"Cannot decrypt download: {e}")


class MediaFetcher:
    """
    Plain and encrypted HTTP downloads with digest verification.

    Uses the shared requests session from ``HttpClient`` so the fixed client
    identity and proxy settings apply to every download.
    """

    def __init__(self, http_client: Optional[HttpClient] = None, session: Optional[requests.Session] = None):
        self._http_client = http_client or HttpClient()
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._http_client.get_sync_session()
        return self._session

    # ------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------

    def fetch_plain(self, url: str) -> bytes:
        """
        Raises:
            FetchFailed: connection error, non-2xx status, or empty body.
        """
        try:
            resp = self.session.get(
                url,
                timeout=self._http_client.config.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            raise FetchFailed(f"Failed to download {url}: {e}")

        logger.debug(f"download {url} -> {resp.status_code}")
        if not resp.ok:
            raise FetchFailed(f"Failed to download {url}: HTTP {resp.status_code}")
        content = resp.content
        if not content:
            raise FetchFailed(f"Empty response from {url}")
        return content

    def fetch_encrypted(self, url: str, aes_key_hex: str) -> bytes:
        return decrypt_cbc_key_iv(self.fetch_plain(url), aes_key_hex)

    # ------------------------------------------------------------
    # Emoji
    # ------------------------------------------------------------

    def fetch_emoji(self, expected_digest: str, descriptor: EmojiDescriptor) -> Optional[FetchOutcome]:
        """
        CDN download first, then the encrypted download.

        The CDN body is verified against ``expected_digest``. A decrypted body
        is trusted as is. When the encrypted tier fails a mismatched CDN body
        that still sniffs as an image is returned, flagged ``verified=False``.

        Returns None when neither URL produced anything.
        """
        unverified: Optional[FetchOutcome] = None

        if descriptor.cdn_url:
            logger.info(f"Requesting emoji {expected_digest} from {descriptor.cdn_url} ...")
            try:
                content, fmt = self._fetch_verified(descriptor.cdn_url, expected_digest)
                return FetchOutcome(content, fmt, verified=True)
            except IntegrityMismatch as e:
                logger.debug(f"CDN emoji {expected_digest} rejected: {e}")
                fmt = sniff_format(e.content[:12]) if e.content else MediaFormat.UNKNOWN
                if fmt is not MediaFormat.UNKNOWN:
                    unverified = FetchOutcome(e.content, fmt, verified=False)
            except FetchFailed as e:
                logger.debug(f"Error processing cdn url {descriptor.cdn_url}: {e}")

        if descriptor.encrypted_url and descriptor.aes_key_hex:
            logger.info(f"Requesting encrypted emoji {expected_digest} from {descriptor.encrypted_url} ...")
            try:
                content = self.fetch_encrypted(descriptor.encrypted_url, descriptor.aes_key_hex)
                return FetchOutcome(content, sniff_format(content[:12]), verified=True)
            except FetchFailed as e:
                logger.error(f"Error processing encrypted url {descriptor.encrypted_url}: {e}")

        return unverified

    def _fetch_verified(self, url: str, expected_digest: str) -> Tuple[bytes, MediaFormat]:
        content = self.fetch_plain(url)
        actual = digest(content)
        if actual != expected_digest:
            raise IntegrityMismatch(expected_digest, actual, content=content)
        return content, sniff_format(content[:12])
