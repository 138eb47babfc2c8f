"""
Gateway to the external decoder for the proprietary ``wxgf`` image container.

The transform itself is never implemented here. Decoding is delegated to a
backend: either an in-process callable or a remote service reached over a
websocket. Results are memoized next to the source file so repeated lookups
of the same path never hit the backend again.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Protocol

import aiohttp

from wxdump.core.errors import CodecUnavailable, DecodeFailed, MediaError
from wxdump.media.content import WXGF_MAGIC, is_wxgf

logger = logging.getLogger(__name__)

FAILURE_SENTINEL = b"FAILED"
MEMO_SUFFIX = ".dec"


class CodecBackend(Protocol):
    def decode(self, data: bytes) -> Optional[bytes]:
        """Return decoded bytes, or None when the decoder reports failure."""
        ...

    def close(self) -> None:
        ...


class CallableCodecBackend:
    """Wraps an in-process decode function (e.g. a native library binding)."""

    def __init__(self, func: Callable[[bytes], Optional[bytes]]):
        self._func = func

    def decode(self, data: bytes) -> Optional[bytes]:
        result = self._func(data)
        if result is None or result == FAILURE_SENTINEL:
            return None
        return bytes(result)

    def close(self) -> None:
        pass


class WebSocketCodecBackend:
    """
    Remote decoder spoken to over a websocket.

    The service is not assumed to interleave requests, so callers must not
    overlap calls; ``CodecGateway`` holds a lock around every decode. The
    backend drives aiohttp on its own private event loop so it can be used
    from plain worker threads.
    """

    def __init__(
        self,
        url: str,
        *,
        response_timeout: float = 30.0,
        connect_timeout: float = 10.0,
        max_attempts: int = 2,
    ):
        if "://" not in url:
            url = "ws://" + url
        self.url = url
        self.response_timeout = response_timeout
        self.connect_timeout = connect_timeout
        self.max_attempts = max(1, int(max_attempts))
        self._loop = asyncio.new_event_loop()
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def decode(self, data: bytes) -> Optional[bytes]:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            try:
                response = self._loop.run_until_complete(self._roundtrip(data))
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Decode attempt {attempt + 1} against {self.url} failed: {e}. Reconnecting..."
                )
                self._loop.run_until_complete(self._disconnect())
                continue
            if response == FAILURE_SENTINEL:
                return None
            return response
        raise DecodeFailed(f"Failed to decode after {self.max_attempts} attempts: {last_error}")

    def close(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.run_until_complete(self._disconnect(close_session=True))
        self._loop.close()

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"Connecting to {self.url} ...")
        self._ws = await self._session.ws_connect(self.url, max_msg_size=0)
        return self._ws

    async def _roundtrip(self, data: bytes) -> bytes:
        ws = self._ws
        if ws is None or ws.closed:
            ws = await self._connect()
        await ws.send_bytes(data)
        msg = await ws.receive(timeout=self.response_timeout)
        if msg.type == aiohttp.WSMsgType.BINARY:
            return bytes(msg.data)
        if msg.type == aiohttp.WSMsgType.TEXT:
            return msg.data.encode("utf-8")
        raise DecodeFailed(f"Unexpected websocket message type: {msg.type!r}")

    async def _disconnect(self, close_session: bool = False) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing websocket: {e}")
        if close_session and self._session is not None:
            await self._session.close()
            self._session = None


class CodecGateway:
    """
    Decode ``wxgf`` containers with memoization by source path.

    ``decode_with_cache`` raises ``CodecUnavailable`` when no backend is
    configured and ``DecodeFailed`` for a per-file decode error.
    """

    def __init__(self, backend: Optional[CodecBackend] = None, *, memo_suffix: str = MEMO_SUFFIX):
        self._backend = backend
        self._memo_suffix = memo_suffix
        self._lock = threading.Lock()

    @property
    def has_backend(self) -> bool:
        return self._backend is not None

    @staticmethod
    def memo_path(source_path: str | Path, suffix: str = MEMO_SUFFIX) -> Path:
        return Path(source_path).with_suffix(suffix)

    def decode(self, data: bytes) -> bytes:
        if not is_wxgf(data):
            head = bytes(data[:20]).hex()
            raise DecodeFailed(f"Invalid {WXGF_MAGIC.decode()} header: {head}")
        if self._backend is None:
            raise CodecUnavailable("No wxgf decoder configured")
        with self._lock:
            try:
                result = self._backend.decode(bytes(data))
            except MediaError:
                raise
            except Exception as e:
                raise DecodeFailed(f"Decoder raised: {e}") from e
        if not result:
            raise DecodeFailed("Decoder reported failure")
        return result

    def decode_with_cache(self, source_path: str | Path, inline_bytes: Optional[bytes] = None) -> bytes:
        memo = self.memo_path(source_path, self._memo_suffix)
        if memo.is_file():
            return memo.read_bytes()

        if self._backend is None:
            raise CodecUnavailable("No wxgf decoder configured")

        data = inline_bytes if inline_bytes is not None else Path(source_path).read_bytes()
        result = self.decode(data)
        try:
            memo.write_bytes(result)
        except OSError as e:
            logger.warning(f"Could not memoize decoded {source_path}: {e}")
        return result

    def close(self) -> None:
        if self._backend is not None:
            self._backend.close()


def create_codec_gateway(server: Optional[str]) -> CodecGateway:
    if not server:
        return CodecGateway()
    return CodecGateway(WebSocketCodecBackend(server))
