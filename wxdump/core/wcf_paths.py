"""
``wcf://`` virtual paths used by the file index database.

A virtual path names an area and a path inside it, e.g.
``wcf://image2/88/2a/th_882a...`` or ``wcf://video/2504181043492841.mp4``.
Each area maps onto a directory under the resource root.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

WCF_SCHEME = "wcf://"

_WCF_RE = re.compile(r"^wcf://([^/]+)/(.*)$")


@dataclass(frozen=True)
class WcfFileInfo:
    wcf_path: str
    real_path: Path
    file_name: str
    size: int
    last_modified: float
    is_directory: bool


class WcfPathResolver:
    """Maps ``wcf://<area>/<rest>`` onto the resource root."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self._areas: Dict[str, Callable[[str], Path]] = {
            "attachment": lambda rest: self.base_path / "attachment" / rest,
            "openapi": lambda rest: self.base_path / "openapi" / rest,
            "video": lambda rest: self.base_path / "video" / rest,
            "image2": lambda rest: self.base_path / "image2" / rest,
            "image": lambda rest: self.base_path / "image" / rest,
            "voice": self._voice_path,
            "voice2": lambda rest: self.base_path / "voice2" / rest,
            "emoji": lambda rest: self.base_path / "emoji" / rest,
            "sfs": lambda rest: self.base_path / "sfs" / rest,
        }

    @staticmethod
    def is_virtual(path: Optional[str]) -> bool:
        return bool(path) and path.startswith(WCF_SCHEME)

    def resolve(self, wcf_path: Optional[str]) -> Optional[Path]:
        """Real path for a virtual one, or None when it cannot be mapped."""
        if not self.is_virtual(wcf_path):
            return None

        match = _WCF_RE.match(wcf_path)
        if not match:
            logger.warning(f"Invalid wcf path format: {wcf_path}")
            return None

        area, rest = match.group(1), match.group(2)
        resolver = self._areas.get(area)
        if resolver is None:
            logger.warning(f"Unknown wcf area: {area}")
            return None

        real = resolver(rest)
        logger.debug(f"Resolved: {wcf_path} -> {real}")
        return real

    def alternative_paths(self, wcf_path: str) -> List[Path]:
        """Main path first, then places the same file is known to end up."""
        main = self.resolve(wcf_path)
        if main is None:
            return []

        rest = wcf_path[len(WCF_SCHEME):]
        if rest.startswith("image2/"):
            return [main, self.base_path / "image" / rest[len("image2/"):]]
        if rest.startswith("video/") and rest.endswith(".mp4"):
            # thumbnail
            return [main, main.with_suffix(".jpg")]
        return [main]

    def file_exists(self, wcf_path: str) -> bool:
        real = self.resolve(wcf_path)
        return real is not None and real.is_file()

    def file_info(self, wcf_path: str) -> Optional[WcfFileInfo]:
        real = self.resolve(wcf_path)
        if real is None or not real.exists():
            return None
        stat = real.stat()
        return WcfFileInfo(
            wcf_path=wcf_path,
            real_path=real,
            file_name=real.name,
            size=stat.st_size,
            last_modified=stat.st_mtime,
            is_directory=real.is_dir(),
        )

    def _voice_path(self, file_name: str) -> Path:
        # voice files live sharded under voice2 with a msg_ prefix
        if len(file_name) < 4:
            return self.base_path / "voice2" / file_name
        return self.base_path / "voice2" / file_name[0:2] / file_name[2:4] / f"msg_{file_name}"
