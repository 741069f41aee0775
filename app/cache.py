"""
Read-through cache for the guest book listing.

One instance is created per application (see the lifespan in main.py)
and handed to operations through a dependency. Results are keyed by the
viewer's user id because the ``liked`` flag differs per viewer; any
mutation drops every key at once via ``invalidate()``.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, Optional, TypeVar

from app.metrics import record_cache_lookup

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GuestBookCache:
    """
    Memoizes listing results until the next invalidation.

    A generation counter is bumped on every invalidation. A result loaded
    while an invalidation happened is returned to its caller but not
    stored, so a write is never shadowed by a read that started before it.

    Results are keyed per viewer and there is no size cap or expiry: the map
    holds one listing for every distinct viewer seen since the last
    invalidation. Only a mutation (or a restart) empties it.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._entries: Dict[Optional[Hashable], object] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get_or_load(self, key: Optional[Hashable], loader: Callable[[], T]) -> T:
        """
        Return the cached value for key, calling loader on a miss.

        Args:
            key: Viewer identity (None for anonymous viewers)
            loader: Zero-argument callable producing the fresh value
        """
        if not self.enabled:
            return loader()

        with self._lock:
            if key in self._entries:
                record_cache_lookup("hit")
                logger.debug(f"Guest book cache hit for viewer={key}")
                return self._entries[key]
            generation = self._generation

        record_cache_lookup("miss")
        logger.debug(f"Guest book cache miss for viewer={key}")
        value = loader()

        with self._lock:
            if generation == self._generation:
                self._entries[key] = value
        return value

    def invalidate(self) -> None:
        """Drop every cached listing."""
        if not self.enabled:
            return

        with self._lock:
            self._generation += 1
            dropped = len(self._entries)
            self._entries.clear()
        logger.debug(f"Guest book cache invalidated ({dropped} entries dropped)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
