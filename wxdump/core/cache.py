from __future__ import annotations

import base64
import gzip
import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from wxdump.core.dto.media import CacheEntry, MediaFormat

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_THRESHOLD = 15


class MediaCache:
    """
    Persistent digest -> payload cache:
      - one flat gzipped JSON map {digest: [base64 payload, format]}
      - loaded wholesale, overwritten wholesale
      - atomic writes
      - flushed every ``flush_threshold`` new entries and at shutdown
    """

    def __init__(self, path: Path, *, flush_threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self.path = Path(path)
        self.flush_threshold = max(1, int(flush_threshold))
        self._store: Dict[str, Tuple[bytes, str]] = {}
        self._last_flush_size = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    def load(self) -> int:
        """Load the map file. A missing or corrupt file yields an empty cache."""
        store: Dict[str, Tuple[bytes, str]] = {}
        if self.path.exists():
            try:
                with gzip.open(self.path, "rt", encoding="utf-8") as f:
                    raw = json.load(f)
                for key, value in raw.items():
                    payload_b64, fmt = value
                    store[str(key)] = (base64.b64decode(payload_b64), str(fmt))
            except Exception as e:
                logger.error(f"Media cache at {self.path} is unreadable, starting empty: {e}")
                store = {}

        with self._lock:
            self._store = store
            self._last_flush_size = len(store)
        logger.info(f"Loaded {len(store)} cached media entries from {self.path}")
        return len(store)

    def flush(self) -> bool:
        """Write the map if it grew since the last flush. Returns True when written."""
        with self._lock:
            if len(self._store) <= self._last_flush_size:
                return False
            self._write_locked()
            return True

    def close(self) -> None:
        self.flush()

    def _write_locked(self) -> None:
        data = {
            key: [base64.b64encode(payload).decode("ascii"), fmt]
            for key, (payload, fmt) in self._store.items()
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        with gzip.open(tmp_path, "wt", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=True, separators=(",", ":"))

        # atomic replace
        os.replace(tmp_path, self.path)
        self._last_flush_size = len(self._store)
        logger.debug(f"Flushed {len(self._store)} media cache entries to {self.path}")

    # ------------------------------------------------------------
    # Access
    # ------------------------------------------------------------

    def get(self, digest: str) -> Optional[CacheEntry]:
        with self._lock:
            item = self._store.get(digest)
        if item is None:
            return None
        payload, fmt = item
        return CacheEntry(digest=digest, payload=payload, format=MediaFormat.parse(fmt))

    def put(self, digest: str, payload: bytes, fmt: MediaFormat | str) -> None:
        fmt_value = fmt.value if isinstance(fmt, MediaFormat) else str(fmt)
        with self._lock:
            self._store[digest] = (bytes(payload), fmt_value)
            if len(self._store) >= self._last_flush_size + self.flush_threshold:
                try:
                    self._write_locked()
                except OSError as e:
                    logger.error(f"Failed to flush media cache to {self.path}: {e}")

    def __contains__(self, digest: str) -> bool:
        with self._lock:
            return digest in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
