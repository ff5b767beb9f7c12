"""Process-local cache of the latest aggregate per key.

The poster writes here after each successful recomputation; anything that
displays or consumes aggregates reads from here. Entries never expire on read:
callers judge staleness from ``computed_at`` (or ``age()``).
"""

import logging
import threading
import time

from .Observation import AggregateEntry

logger = logging.getLogger(__name__)


class AggregateCache:
    """Thread-safe single-writer, multi-reader aggregate store.

    Writes are serialized by a lock; reads are plain dict lookups and never
    wait on a writer. An entry is only replaced by one computed at the same
    time or later.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AggregateEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> AggregateEntry | None:
        """Get the latest aggregate for a key.

        :param key: Observation key.
        :returns: The cached entry, or None if never computed.
        """
        return self._entries.get(key)

    def put(self, key: str, entry: AggregateEntry) -> bool:
        """Replace the aggregate for a key.

        :param key: Observation key.
        :param entry: Newly computed entry.
        :returns: True if stored, False if an entry with a later
            ``computed_at`` is already cached.
        """
        with self._lock:
            current = self._entries.get(key)
            if current is not None and entry.computed_at < current.computed_at:
                logger.debug(
                    f"{key}: ignoring aggregate computed at {entry.computed_at}, "
                    f"cache already holds {current.computed_at}"
                )
                return False
            self._entries[key] = entry
        logger.debug(f"{key}: aggregate updated to {entry.value}")
        return True

    def keys(self) -> list[str]:
        """Keys with a cached aggregate."""
        return list(self._entries)

    def snapshot(self) -> dict[str, AggregateEntry]:
        """Copy of all cached entries."""
        return dict(self._entries)

    def age(self, key: str, now: float | None = None) -> float | None:
        """Get the age of a cached aggregate in seconds.

        :param key: Observation key.
        :param now: Current unix time (default: time.time()).
        :returns: Age in seconds, or None if the key is not cached.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = time.time() if now is None else now
        return now - entry.computed_at
