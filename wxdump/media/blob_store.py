"""
Avatar block store.

The ``sfs`` directory holds append-only shard files ``avatar.block.00000``,
``avatar.block.00001``, ... Each record is a 16-byte header, a filename field
(``len(name) + 1`` bytes) and the payload. A plain sqlite index
(``Index_avatar``) maps stored filenames to an encoded 64-bit offset and the
payload size. The high 32 bits of the offset select the shard, the low 32
bits locate the record inside it.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TypeVar

from wxdump.core.dto.media import BlockFileOffset
from wxdump.core.errors import NotFound

logger = logging.getLogger(__name__)

RECORD_HEADER_SIZE = 16
SHARD_PREFIX = "avatar.block."

HD_MARKER = "_hd"
HD_PRIORITY = 10
DEFAULT_PRIORITY = 1

T = TypeVar("T")


def shard_filename(shard_index: int) -> str:
    return f"{SHARD_PREFIX}{shard_index:05d}"


def filename_priority(name: str) -> int:
    if HD_MARKER in name and name.endswith(".png"):
        return HD_PRIORITY
    return DEFAULT_PRIORITY


def sort_by_priority(items: Iterable[T], key=lambda x: x) -> List[T]:
    """Highest priority first; ``sorted`` is stable so ties keep input order."""
    return sorted(items, key=lambda item: filename_priority(key(item)), reverse=True)


def payload_start(stored_filename: str, encoded_offset: int) -> int:
    low = BlockFileOffset.decode(encoded_offset).byte_position
    return low + RECORD_HEADER_SIZE + len(stored_filename) + 1


@dataclass(frozen=True, slots=True)
class BlockCandidate:
    filename: str
    offset: int
    size: int


class BlockStoreReader:
    """Reads fixed-size payloads out of the sharded avatar block files."""

    def __init__(self, sfs_dir: Path):
        self.sfs_dir = Path(sfs_dir)

    def has_shards(self) -> bool:
        if not self.sfs_dir.is_dir():
            return False
        return any(p.name.startswith("avatar") for p in self.sfs_dir.iterdir())

    def shard_path(self, encoded_offset: int) -> Path:
        return self.sfs_dir / shard_filename(BlockFileOffset.decode(encoded_offset).shard_index)

    def read(self, stored_filename: str, encoded_offset: int, size: int) -> bytes:
        """
        Return exactly ``size`` payload bytes for a record.

        Raises:
            NotFound: shard file missing or the record runs past EOF.
        """
        if size < 0:
            raise NotFound(f"Invalid record size {size} for {stored_filename}")
        path = self.shard_path(encoded_offset)
        if not path.is_file():
            raise NotFound(f"Block shard missing: {path}")

        start = payload_start(stored_filename, encoded_offset)
        with open(path, "rb") as f:
            f.seek(start)
            data = f.read(size)
        if len(data) != size:
            raise NotFound(
                f"Block record for {stored_filename} truncated: "
                f"wanted {size} bytes at {start}, got {len(data)}"
            )
        return data

    def read_candidate(self, cand: BlockCandidate) -> bytes:
        return self.read(cand.filename, cand.offset, cand.size)

    def read_first(self, candidates: Sequence[BlockCandidate]) -> Optional[bytes]:
        for cand in sort_by_priority(candidates, key=lambda c: c.filename):
            try:
                return self.read_candidate(cand)
            except NotFound as e:
                logger.debug(f"Skipping block candidate {cand.filename}: {e}")
        return None


class AvatarIndex:
    """Lookup over the block store's own ``Index_avatar`` table."""

    TABLE = "Index_avatar"

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def exists(self) -> bool:
        return self.db_path.is_file()

    def search(self, avatar_id: str) -> List[BlockCandidate]:
        if not self.exists():
            return []
        conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT FileName, Offset, Size FROM {self.TABLE} WHERE instr(FileName, ?) > 0",
                (avatar_id,),
            )
            return [
                BlockCandidate(filename=str(name), offset=int(offset), size=int(size))
                for name, offset, size in cursor.fetchall()
            ]
        finally:
            conn.close()
