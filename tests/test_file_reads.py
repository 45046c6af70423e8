"""Tests for orchestration/file_reads.py."""

from __future__ import annotations

import json

import pytest

from turnstile.ai.orchestration.conversation import ConversationStore
from turnstile.ai.orchestration.file_reads import (
    UNCHANGED_SENTINEL,
    FileReadDeduplicator,
    content_digest,
)
from turnstile.ai.orchestration.services.file_read_cache import FileReadCache, normalize_path
from turnstile.ai.orchestration.types import FileStat, Message, PathlibStatProvider, ToolCall


class FakeStatProvider:
    def __init__(self) -> None:
        self.stats: dict[str, FileStat] = {}

    def set(self, path: str, mtime: float, length: int) -> None:
        self.stats[normalize_path(path)] = FileStat(last_write_time=mtime, length=length)

    def stat(self, path: str) -> FileStat | None:
        return self.stats.get(normalize_path(path))


def read_call(call_id: str, path: str, name: str = "read_file") -> ToolCall:
    return ToolCall(id=call_id, function_name=name, arguments_json=json.dumps({"path": path}))


@pytest.fixture
def setup():
    cache = FileReadCache()
    store = ConversationStore("sys", file_read_cache=cache)
    stats = FakeStatProvider()
    dedup = FileReadDeduplicator(store, cache, stat_provider=stats, enabled=True)
    return store, cache, stats, dedup


def tool_texts(store: ConversationStore) -> list[str]:
    return [message.text for message in store if message.role == "tool"]


class TestDeduplication:
    def test_first_read_registers_owner(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)
        result = Message.tool("hello", "c1")

        stored = dedup.record(read_call("c1", "a.py"), result)

        assert stored is result
        entry = cache.try_get("a.py")
        assert entry.owner_message is result
        assert entry.content_hash == content_digest("hello")

    def test_unchanged_reread_stores_sentinel(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)
        first = Message.tool("hello", "c1")
        dedup.record(read_call("c1", "a.py"), first)

        stored = dedup.record(read_call("c2", "A.PY"), Message.tool("hello", "c2"))

        assert stored.text == UNCHANGED_SENTINEL
        assert stored.tool_call_id == "c2"
        assert tool_texts(store) == ["hello", UNCHANGED_SENTINEL]
        assert cache.try_get("a.py").owner_message is first

    def test_changed_content_supersedes_old_read(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)
        first = Message.tool("hello", "c1")
        dedup.record(read_call("c1", "a.py"), first)
        stats.set("a.py", 2.0, 7)
        second = Message.tool("goodbye", "c2")

        dedup.record(read_call("c2", "a.py"), second)

        assert tool_texts(store) == ["goodbye"]
        assert not store.contains(first)
        assert cache.try_get("a.py").owner_message is second

    def test_only_one_full_read_per_path(self, setup) -> None:
        store, cache, stats, dedup = setup
        for version in range(4):
            stats.set("a.py", float(version), 10 + version)
            dedup.record(read_call(f"c{version}", "a.py"), Message.tool(f"v{version}", f"c{version}"))
            dedup.record(
                read_call(f"d{version}", "a.py", name="read_file_by_line_count"),
                Message.tool(f"v{version}", f"d{version}"),
            )

        full_reads = [text for text in tool_texts(store) if text != UNCHANGED_SENTINEL]
        assert full_reads == ["v3"]

    def test_mtime_change_with_same_content_is_a_change(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)
        dedup.record(read_call("c1", "a.py"), Message.tool("hello", "c1"))
        stats.set("a.py", 9.0, 5)

        stored = dedup.record(read_call("c2", "a.py"), Message.tool("hello", "c2"))

        assert stored.text == "hello"
        assert tool_texts(store) == ["hello"]

    def test_stale_entry_with_missing_owner_is_replaced(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)
        first = Message.tool("hello", "c1")
        dedup.record(read_call("c1", "a.py"), first)
        store.replace_history([])
        cache.register("a.py", content_digest("hello"), 1.0, 5, first)

        stored = dedup.record(read_call("c2", "a.py"), Message.tool("hello", "c2"))

        assert stored.text == "hello"
        assert cache.try_get("a.py").owner_message is stored


class TestPassThrough:
    def test_error_results_never_register(self, setup) -> None:
        store, cache, stats, dedup = setup
        stats.set("a.py", 1.0, 5)

        dedup.record(read_call("c1", "a.py"), Message.tool("Error: file not found", "c1"))

        assert len(cache) == 0
        assert tool_texts(store) == ["Error: file not found"]

    def test_other_tools_are_appended_untouched(self, setup) -> None:
        store, cache, stats, dedup = setup
        call = ToolCall(id="c1", function_name="list_dir", arguments_json='{"path": "."}')

        dedup.record(call, Message.tool("a.py", "c1"))

        assert len(cache) == 0
        assert tool_texts(store) == ["a.py"]

    def test_missing_stat_skips_registration(self, setup) -> None:
        store, cache, stats, dedup = setup

        dedup.record(read_call("c1", "ghost.py"), Message.tool("boo", "c1"))

        assert len(cache) == 0
        assert tool_texts(store) == ["boo"]

    def test_missing_path_argument(self, setup) -> None:
        store, cache, stats, dedup = setup
        call = ToolCall(id="c1", function_name="read_file", arguments_json='{"file": "a.py"}')

        dedup.record(call, Message.tool("content", "c1"))

        assert len(cache) == 0

    def test_disabled_dedup_appends_everything(self) -> None:
        cache = FileReadCache()
        store = ConversationStore(file_read_cache=cache)
        stats = FakeStatProvider()
        stats.set("a.py", 1.0, 5)
        dedup = FileReadDeduplicator(store, cache, stat_provider=stats)

        dedup.record(read_call("c1", "a.py"), Message.tool("hello", "c1"))
        dedup.record(read_call("c2", "a.py"), Message.tool("hello", "c2"))

        assert dedup.enabled is False
        assert tool_texts(store) == ["hello", "hello"]
        assert len(cache) == 0


class TestPathlibStatProvider:
    def test_stats_real_file(self, tmp_path) -> None:
        target = tmp_path / "notes.txt"
        target.write_text("abc", encoding="utf-8")
        provider = PathlibStatProvider(tmp_path)

        stat = provider.stat("notes.txt")

        assert stat is not None
        assert stat.length == 3
        assert provider.stat("missing.txt") is None
