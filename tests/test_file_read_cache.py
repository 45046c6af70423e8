"""Tests for orchestration/services/file_read_cache.py."""

from __future__ import annotations

import os

from turnstile.ai.orchestration.services.file_read_cache import (
    FileReadCache,
    FileReadCacheStats,
    normalize_path,
)
from turnstile.ai.orchestration.types import Message


class TestNormalizePath:
    def test_case_and_separator_insensitive(self) -> None:
        assert normalize_path("Src/App.py") == normalize_path("src/app.py")
        assert "\\" not in normalize_path("src\\app.py")

    def test_relative_paths_become_absolute(self) -> None:
        expected = os.path.abspath("pkg/mod.py").replace("\\", "/").casefold()

        assert normalize_path("pkg/mod.py") == expected
        assert normalize_path("./pkg/../pkg/mod.py") == expected


class TestFileReadCache:
    def test_register_and_lookup_by_any_spelling(self) -> None:
        cache = FileReadCache()
        owner = Message.tool("print('hi')", "call-1")

        entry = cache.register("src/app.py", "abc", 10.0, 11, owner)

        found = cache.try_get("SRC/App.py")
        assert found is entry
        assert found.owner_message is owner
        assert found.source_length == 11

    def test_register_overwrites_existing_entry(self) -> None:
        cache = FileReadCache()
        first = Message.tool("v1", "c1")
        second = Message.tool("v2", "c2")

        cache.register("a.py", "h1", 1.0, 2, first)
        cache.register("a.py", "h2", 2.0, 2, second)

        assert len(cache) == 1
        assert cache.try_get("a.py").owner_message is second
        assert cache.stats.registrations == 1
        assert cache.stats.replacements == 1

    def test_remove_and_remove_owner(self) -> None:
        cache = FileReadCache()
        owner = Message.tool("x", "c1")
        cache.register("a.py", "h", 1.0, 1, owner)
        cache.register("b.py", "h", 1.0, 1, owner)
        cache.register("c.py", "h", 1.0, 1, Message.tool("y", "c2"))

        assert cache.remove("c.py") is True
        assert cache.remove("c.py") is False
        assert cache.remove_owner(owner) == 2
        assert len(cache) == 0
        assert cache.stats.removals == 3

    def test_stats_hit_rate(self) -> None:
        cache = FileReadCache()
        cache.register("a.py", "h", 1.0, 1, Message.tool("x", "c1"))

        cache.try_get("a.py")
        cache.try_get("missing.py")

        assert cache.stats.hits == 1
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == 0.5
        assert cache.stats.to_dict()["hit_rate"] == 0.5

    def test_clear(self) -> None:
        cache = FileReadCache()
        cache.register("a.py", "h", 1.0, 1, Message.tool("x", "c1"))

        assert cache.clear() == 1
        assert cache.paths() == []


class TestFileReadCacheStats:
    def test_empty_hit_rate_and_reset(self) -> None:
        stats = FileReadCacheStats(hits=3, misses=1)

        stats.reset()

        assert stats.hit_rate == 0.0
        assert stats.to_dict()["hits"] == 0
