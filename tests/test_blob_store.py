import sqlite3
from pathlib import Path

import pytest

from wxdump.core.dto.media import BlockFileOffset
from wxdump.core.errors import NotFound
from wxdump.media.blob_store import (
    RECORD_HEADER_SIZE,
    AvatarIndex,
    BlockCandidate,
    BlockStoreReader,
    filename_priority,
    payload_start,
    shard_filename,
    sort_by_priority,
)


def write_record(shard: Path, filename: str, payload: bytes) -> int:
    """Append one record and return its low-32 position."""
    shard.parent.mkdir(parents=True, exist_ok=True)
    with open(shard, "ab") as f:
        pos = f.tell()
        f.write(b"\xAA" * RECORD_HEADER_SIZE)
        f.write(filename.encode("ascii") + b"\x00")
        f.write(payload)
    return pos


def test_shard_filename_is_zero_padded() -> None:
    assert shard_filename(0) == "avatar.block.00000"
    assert shard_filename(12) == "avatar.block.00012"


def test_offset_decoding() -> None:
    off = BlockFileOffset.decode((3 << 32) | 1234)
    assert off.shard_index == 3
    assert off.byte_position == 1234
    assert off.encode() == (3 << 32) | 1234


def test_payload_start_accounts_for_header_and_name() -> None:
    assert payload_start("abc.png", (1 << 32) | 100) == 100 + 16 + len("abc.png") + 1


def test_read_returns_exact_bytes(tmp_path: Path) -> None:
    sfs = tmp_path / "sfs"
    write_record(sfs / shard_filename(1), "first.png", b"x" * 50)
    pos = write_record(sfs / shard_filename(1), "second_hd.png", b"PAYLOAD-BYTES")

    reader = BlockStoreReader(sfs)
    data = reader.read("second_hd.png", (1 << 32) | pos, len(b"PAYLOAD-BYTES"))
    assert data == b"PAYLOAD-BYTES"


def test_read_missing_shard_raises(tmp_path: Path) -> None:
    reader = BlockStoreReader(tmp_path / "sfs")
    with pytest.raises(NotFound):
        reader.read("a.png", 5 << 32, 10)


def test_read_past_eof_raises(tmp_path: Path) -> None:
    sfs = tmp_path / "sfs"
    pos = write_record(sfs / shard_filename(0), "a.png", b"short")
    reader = BlockStoreReader(sfs)
    with pytest.raises(NotFound):
        reader.read("a.png", pos, 100)


def test_priority_prefers_hd_png() -> None:
    assert filename_priority("a_hd.png") == 10
    assert filename_priority("a_hd.jpg") == 1
    assert filename_priority("a.png") == 1
    assert sort_by_priority(["a.jpg", "a_hd.png"]) == ["a_hd.png", "a.jpg"]


def test_priority_sort_is_stable() -> None:
    names = ["b.jpg", "a.jpg", "c_hd.png", "d.bm"]
    assert sort_by_priority(names) == ["c_hd.png", "b.jpg", "a.jpg", "d.bm"]


def test_read_first_skips_broken_candidates(tmp_path: Path) -> None:
    sfs = tmp_path / "sfs"
    pos = write_record(sfs / shard_filename(0), "u.jpg", b"jpeg-bytes")
    reader = BlockStoreReader(sfs)
    candidates = [
        BlockCandidate("u.jpg", pos, len(b"jpeg-bytes")),
        BlockCandidate("u_hd.png", 9 << 32, 10),  # shard 9 does not exist
    ]
    assert reader.read_first(candidates) == b"jpeg-bytes"


def test_avatar_index_search(tmp_path: Path) -> None:
    db = tmp_path / "avatar.index"
    conn = sqlite3.connect(db)
    conn.execute("CREATE TABLE Index_avatar (FileName TEXT, Offset INTEGER, Size INTEGER)")
    conn.executemany(
        "INSERT INTO Index_avatar VALUES (?, ?, ?)",
        [
            ("avatar/ab/cd/abcdef.png", 1 << 32, 10),
            ("avatar/ab/cd/abcdef_hd.png", 2 << 32, 20),
            ("avatar/12/34/123456.png", 0, 5),
        ],
    )
    conn.commit()
    conn.close()

    found = AvatarIndex(db).search("abcdef")
    assert {c.filename for c in found} == {"avatar/ab/cd/abcdef.png", "avatar/ab/cd/abcdef_hd.png"}
    assert AvatarIndex(tmp_path / "missing.db").search("abcdef") == []
