"""File-read dedup cache for the orchestration core.

This module tracks which conversation message currently holds the full
content of each file the model has read, so repeated reads of an unchanged
file can be replaced by a short sentinel instead of re-spending context.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any

from ..types import FileReadEntry, Message

__all__ = [
    "FileReadCache",
    "FileReadCacheStats",
    "normalize_path",
]

LOGGER = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Return *path* made absolute, with ``/`` separators, case-folded."""

    absolute = os.path.abspath(os.path.expanduser(path.strip()))
    return absolute.replace("\\", "/").casefold()


# -----------------------------------------------------------------------------
# Cache Statistics
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class FileReadCacheStats:
    """Statistics for dedup cache operations.

    Attributes:
        hits: Lookups that found an entry.
        misses: Lookups that found nothing.
        registrations: Entries registered for a path with no prior entry.
        replacements: Entries registered over an existing entry.
        removals: Entries removed explicitly or through their owner.
    """

    hits: int = 0
    misses: int = 0
    registrations: int = 0
    replacements: int = 0
    removals: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "registrations": self.registrations,
            "replacements": self.replacements,
            "removals": self.removals,
            "hit_rate": self.hit_rate,
        }

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.registrations = 0
        self.replacements = 0
        self.removals = 0


# -----------------------------------------------------------------------------
# File Read Cache
# -----------------------------------------------------------------------------


class FileReadCache:
    """Thread-safe map from normalized path to its live full-content read.

    Example:
        >>> cache = FileReadCache()
        >>> cache.register("src/app.py", digest, mtime, 120, message)
        >>> entry = cache.try_get("SRC/app.py")
        >>> entry.owner_message is message
        True
    """

    def __init__(self) -> None:
        self._entries: dict[str, FileReadEntry] = {}
        self._lock = threading.RLock()
        self._stats = FileReadCacheStats()

    @property
    def stats(self) -> FileReadCacheStats:
        return self._stats

    def try_get(self, path: str) -> FileReadEntry | None:
        """Return the entry registered for *path*, if any."""
        key = normalize_path(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
            else:
                self._stats.hits += 1
            return entry

    def register(
        self,
        path: str,
        content_hash: str,
        last_write_time: float,
        length: int,
        message: Message,
    ) -> FileReadEntry:
        """Record *message* as the holder of the current content of *path*.

        An existing entry for the same path is overwritten.
        """
        key = normalize_path(path)
        entry = FileReadEntry(
            normalized_path=key,
            content_hash=content_hash,
            source_last_write_time=last_write_time,
            source_length=length,
            owner_message=message,
        )
        with self._lock:
            if key in self._entries:
                self._stats.replacements += 1
            else:
                self._stats.registrations += 1
            self._entries[key] = entry
        LOGGER.debug("Registered file read for %s (message=%s)", key, message.id)
        return entry

    def remove(self, path: str) -> bool:
        key = normalize_path(path)
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats.removals += 1
            return True

    def remove_owner(self, message: Message) -> int:
        """Drop every entry whose owner is *message*; returns the count."""
        with self._lock:
            keys = [
                key
                for key, entry in self._entries.items()
                if entry.owner_message.id == message.id
            ]
            for key in keys:
                del self._entries[key]
            self._stats.removals += len(keys)
        if keys:
            LOGGER.debug("Dropped %d file read entr(ies) owned by %s", len(keys), message.id)
        return len(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        if count:
            LOGGER.debug("Cleared %d file read entr(ies)", count)
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._entries)
