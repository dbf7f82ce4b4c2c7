"""Bounded in-memory store of recent messages for delete recovery."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Optional

from core.content import extract_content
from core.models import InboundMessage, RetainedMessage

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class RetentionCache:
    """Message-id keyed cache that evicts the oldest insertion past capacity.

    Insertion order doubles as insertion-timestamp order: a re-put moves the
    entry to the newest position, so the first entry is always the oldest.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: "OrderedDict[str, RetainedMessage]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            return message_id in self._entries

    def put(self, message_id: str, message: RetainedMessage) -> None:
        with self._lock:
            self._entries[message_id] = message
            self._entries.move_to_end(message_id)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                LOGGER.debug("Retention cache evicted %s", evicted)

    def get(self, message_id: str) -> Optional[RetainedMessage]:
        with self._lock:
            return self._entries.get(message_id)

    def delete(self, message_id: str) -> bool:
        with self._lock:
            return self._entries.pop(message_id, None) is not None

    def ids(self) -> list[str]:
        """Ids from oldest to newest."""

        with self._lock:
            return list(self._entries)

    def capture(self, message: InboundMessage, now: datetime) -> bool:
        """Retain an inbound message if it is eligible; return whether it was."""

        if not message.key.id or not message.payload:
            return False
        if message.key.from_me or message.is_protocol:
            return False
        retained = RetainedMessage(
            message_id=message.key.id,
            chat_jid=message.key.remote_jid,
            sender_jid=message.key.sender_jid,
            sender_name=message.push_name or "Unknown",
            content=extract_content(message.payload),
            inserted_at=now,
        )
        self.put(message.key.id, retained)
        return True
