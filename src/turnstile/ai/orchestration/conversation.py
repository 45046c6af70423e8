"""Thread-safe conversation log shared by the orchestrator and the tool engine."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable, Iterator

from .types import Message

if TYPE_CHECKING:
    from .services.file_read_cache import FileReadCache

__all__ = ["ConversationStore"]

LOGGER = logging.getLogger(__name__)


class ConversationStore:
    """Ordered message log with at most one system message in slot 0.

    All operations take an internal re-entrant lock, so concurrent appends
    from parallel tool completions never corrupt the list. The store never
    reorders: messages are persisted in the order callers append them.
    Messages are located by their ``id``; two messages with identical text
    are still distinct entries.

    When a :class:`FileReadCache` is attached, removing a message also drops
    any dedup entry it owns, and :meth:`clear` clears the cache.
    """

    def __init__(
        self,
        system_prompt: str | None = None,
        *,
        file_read_cache: "FileReadCache | None" = None,
    ) -> None:
        self._lock = threading.RLock()
        self._messages: list[Message] = []
        self._file_read_cache = file_read_cache
        if system_prompt is not None:
            self._messages.append(Message.system(system_prompt))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def file_read_cache(self) -> "FileReadCache | None":
        return self._file_read_cache

    def attach_file_read_cache(self, cache: "FileReadCache | None") -> None:
        with self._lock:
            self._file_read_cache = cache

    @property
    def system_message(self) -> Message | None:
        with self._lock:
            if self._messages and self._messages[0].role == "system":
                return self._messages[0]
            return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def append(self, message: Message) -> None:
        """Append *message*; a system message upserts slot 0 instead."""

        if message.role == "system":
            self._upsert_system(message)
            return
        with self._lock:
            self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        """Append several messages atomically, preserving their order."""

        with self._lock:
            for message in messages:
                self.append(message)

    def remove(self, message: Message) -> bool:
        """Remove the message with ``message.id``; absent messages are ignored."""

        with self._lock:
            index = self._index_of(message.id)
            if index is None:
                return False
            removed = self._messages.pop(index)
            cache = self._file_read_cache
        if cache is not None:
            cache.remove_owner(removed)
        return True

    def replace(self, message: Message, new: Message) -> bool:
        """Swap the message with ``message.id`` for *new* in the same slot."""

        with self._lock:
            index = self._index_of(message.id)
            if index is None:
                return False
            if new.role == "system" and index != 0:
                LOGGER.debug("Refusing to place a system message outside slot 0")
                return False
            previous = self._messages[index]
            self._messages[index] = new
            cache = self._file_read_cache
        if cache is not None and previous.id != new.id:
            cache.remove_owner(previous)
        return True

    def contains(self, message: Message) -> bool:
        with self._lock:
            return self._index_of(message.id) is not None

    def snapshot(self) -> list[Message]:
        """Return a copy of the log, safe to iterate while the store mutates."""

        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        """Drop everything except the system message and clear the dedup cache."""

        with self._lock:
            system = self.system_message
            dropped = len(self._messages) - (1 if system is not None else 0)
            self._messages = [system] if system is not None else []
            cache = self._file_read_cache
        if cache is not None:
            cache.clear()
        LOGGER.debug("Conversation cleared (%s message(s) dropped)", dropped)

    def rebuild_system_prompt(self, text: str) -> Message:
        """Insert or replace the slot-0 system message with *text*."""

        message = Message.system(text)
        self._upsert_system(message)
        return message

    def replace_history(self, messages: Iterable[Message]) -> None:
        """Replace every non-system message with *messages*.

        Dedup entries owned by messages that no longer appear are dropped.
        """

        incoming = [message for message in messages if message.role != "system"]
        with self._lock:
            system = self.system_message
            previous = self._messages[1:] if system is not None else list(self._messages)
            self._messages = ([system] if system is not None else []) + incoming
            cache = self._file_read_cache
        if cache is None:
            return
        kept_ids = {message.id for message in incoming}
        for message in previous:
            if message.id not in kept_ids:
                cache.remove_owner(message)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _upsert_system(self, message: Message) -> None:
        with self._lock:
            if self._messages and self._messages[0].role == "system":
                self._messages[0] = message
            else:
                self._messages.insert(0, message)

    def _index_of(self, message_id: str) -> int | None:
        for index, candidate in enumerate(self._messages):
            if candidate.id == message_id:
                return index
        return None
