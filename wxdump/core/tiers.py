from __future__ import annotations

import logging
import threading
from typing import Set

from wxdump.core.errors import Unavailable


class TierResolver:
    """
    Shared plumbing for the per-kind resolvers.

    A missing external dependency is reported once per resolver instance
    instead of once per message.
    """

    def __init__(self):
        self._warned: Set[str] = set()
        self._warn_lock = threading.Lock()

    def warn_unavailable(self, err: Unavailable, hint: str = "") -> None:
        key = type(err).__name__ + ":" + str(err)
        with self._warn_lock:
            if key in self._warned:
                return
            self._warned.add(key)
        message = f"{err}. {hint}" if hint else str(err)
        logging.getLogger(type(self).__module__).warning(message)
