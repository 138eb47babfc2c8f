import os
from pathlib import Path
from typing import Iterable, List


def shard_dir(base: Path, key: str) -> Path:
    """
    Two-level fan-out directory for a hex key.

    Args:
        base: Area root (e.g. ``<root>/image2``)
        key: Hex digest or name; its first two and next two chars pick the shard

    Returns:
        ``base / key[0:2] / key[2:4]``
    """
    return Path(base) / key[0:2] / key[2:4]


def list_matching(directory: Path, needles: Iterable[str]) -> List[Path]:
    """
    Entries in ``directory`` whose name contains any of ``needles``.

    Returns an empty list when the directory does not exist. Order follows
    ``sorted`` on the name so results are deterministic across platforms.
    """
    directory = Path(directory)
    needles = [n for n in needles if n]
    if not needles or not directory.is_dir():
        return []
    return [
        entry for entry in sorted(directory.iterdir(), key=lambda p: p.name)
        if any(n in entry.name for n in needles)
    ]


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and move it into place."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".part")
    with open(tmp_path, "wb") as f:
        f.write(data)
    os.replace(tmp_path, path)
