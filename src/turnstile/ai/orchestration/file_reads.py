"""File-read deduplication applied to tool results before they are stored."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Iterable

from .conversation import ConversationStore
from .services.file_read_cache import FileReadCache
from .types import FileStatProvider, Message, PathlibStatProvider, ToolCall

__all__ = [
    "UNCHANGED_SENTINEL",
    "DEFAULT_FILE_READ_TOOLS",
    "FileReadDeduplicator",
    "content_digest",
]

LOGGER = logging.getLogger(__name__)

UNCHANGED_SENTINEL = "__UNCHANGED__"
DEFAULT_FILE_READ_TOOLS: frozenset[str] = frozenset({"read_file", "read_file_by_line_count"})


def content_digest(content: str) -> str:
    """SHA-256 hex digest of *content* encoded as UTF-8."""

    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class FileReadDeduplicator:
    """Appends tool results to the store, collapsing repeated file reads.

    For a file-read call the deduplicator keeps at most one live message with
    the full content of each path. A repeated read of unchanged content is
    stored as :data:`UNCHANGED_SENTINEL`; a read of changed content evicts the
    previous owner message. Every other result is appended untouched, as is
    every result when ``enabled`` is false.
    """

    def __init__(
        self,
        store: ConversationStore,
        cache: FileReadCache,
        *,
        stat_provider: FileStatProvider | None = None,
        tool_names: Iterable[str] = DEFAULT_FILE_READ_TOOLS,
        path_argument: str = "path",
        enabled: bool = False,
    ) -> None:
        self._store = store
        self._cache = cache
        self._stat_provider = stat_provider or PathlibStatProvider()
        self._tool_names = frozenset(tool_names)
        self._path_argument = path_argument
        self.enabled = enabled

    @property
    def cache(self) -> FileReadCache:
        return self._cache

    def is_file_read(self, call: ToolCall) -> bool:
        return call.function_name in self._tool_names

    def record(self, call: ToolCall, result: Message) -> Message:
        """Append *result* for *call* and return the message actually stored."""

        if not self.enabled or not self.is_file_read(call):
            self._store.append(result)
            return result

        content = result.text
        if content.startswith("Error"):
            self._store.append(result)
            return result

        path = self._extract_path(call)
        if path is None:
            self._store.append(result)
            return result

        stat = self._stat_provider.stat(path)
        if stat is None:
            LOGGER.debug("No filesystem metadata for %s; skipping dedup", path)
            self._store.append(result)
            return result

        digest = content_digest(content)
        entry = self._cache.try_get(path)
        if entry is not None and not self._store.contains(entry.owner_message):
            self._cache.remove(path)
            entry = None

        if entry is not None:
            unchanged = (
                entry.content_hash == digest
                and entry.source_last_write_time == stat.last_write_time
                and entry.source_length == stat.length
            )
            if unchanged:
                sentinel = result.with_content(UNCHANGED_SENTINEL)
                self._store.append(sentinel)
                LOGGER.info("File read of %s unchanged; stored sentinel", entry.normalized_path)
                return sentinel
            self._store.remove(entry.owner_message)
            self._cache.remove(path)
            LOGGER.info("File %s changed; superseded previous read", entry.normalized_path)

        self._store.append(result)
        self._cache.register(path, digest, stat.last_write_time, stat.length, result)
        return result

    def _extract_path(self, call: ToolCall) -> str | None:
        try:
            arguments = json.loads(call.arguments_json or "")
        except (TypeError, ValueError):
            return None
        if not isinstance(arguments, dict):
            return None
        path = arguments.get(self._path_argument)
        if not isinstance(path, str) or not path.strip():
            return None
        return path
