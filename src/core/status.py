"""Status auto-engagement and auto-react.

Both features only ever touch the network on behalf of inbound events and
fail soft: a failed read, reaction or reply is logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from core.config import LIKE_EMOJIS, REACT_EMOJIS, FeatureToggles
from core.content import is_status_broadcast
from core.dispatch import BackgroundTasks
from core.models import InboundMessage, ReceivedBatch
from core.ports import SessionPort

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class StatusEngagement:
    """Marks status broadcasts read, likes them, and optionally replies."""

    def __init__(
        self,
        features: FeatureToggles,
        *,
        reply_text: str,
        emojis: Sequence[str] = LIKE_EMOJIS,
        like_delay_range: Tuple[float, float] = (1.0, 4.0),
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
        tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        self._features = features
        self._reply_text = reply_text
        self._emojis = tuple(emojis)
        self._like_delay_range = like_delay_range
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._tasks = tasks or BackgroundTasks()

    @property
    def tasks(self) -> BackgroundTasks:
        return self._tasks

    async def handle_batch(self, connection: SessionPort, batch: ReceivedBatch) -> None:
        for message in batch.messages:
            await self.handle(connection, message)

    async def handle(self, connection: SessionPort, message: InboundMessage) -> None:
        if not is_status_broadcast(message.key.remote_jid):
            return
        if message.key.from_me or message.is_protocol:
            return

        features = self._features
        if features.auto_view_status or features.auto_status_seen:
            await self._mark_read(connection, message)
        if features.auto_like_status:
            # Liking waits a random delay; never hold up the event stream for it.
            self._tasks.spawn(self._like(connection, message), name=f"like:{message.key.id}")
        if features.auto_status_seen and features.auto_status_reply:
            await self._reply(connection, message)

    async def _mark_read(self, connection: SessionPort, message: InboundMessage) -> None:
        try:
            await connection.read_messages([message.key])
            LOGGER.info("Viewed status from %s", message.push_name or "Unknown")
        except Exception:
            LOGGER.exception("Auto-view status failed for %s", message.key.id)

    async def _like(self, connection: SessionPort, message: InboundMessage) -> None:
        try:
            low, high = self._like_delay_range
            await self._sleep(self._rng.uniform(low, high))
            emoji = self._rng.choice(self._emojis)
            await connection.send_reaction(message.key.remote_jid, emoji, message.key)
            LOGGER.info("Liked status from %s with %s", message.push_name or "Unknown", emoji)
        except Exception:
            LOGGER.exception("Auto-like status failed for %s", message.key.id)

    async def _reply(self, connection: SessionPort, message: InboundMessage) -> None:
        try:
            await connection.send_message(
                message.key.sender_jid, {"text": self._reply_text}, quoted=message.raw or None
            )
        except Exception:
            LOGGER.exception("Status reply failed for %s", message.key.id)


class AutoReact:
    """Reacts to inbound chat messages with a random emoji."""

    def __init__(
        self,
        enabled: bool,
        *,
        emojis: Sequence[str] = REACT_EMOJIS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._enabled = enabled
        self._emojis = tuple(emojis)
        self._rng = rng or random.Random()

    async def handle_batch(self, connection: SessionPort, batch: ReceivedBatch) -> None:
        if not self._enabled:
            return
        for message in batch.messages:
            if message.key.from_me or not message.payload or message.is_protocol:
                continue
            if is_status_broadcast(message.key.remote_jid):
                continue
            emoji = self._rng.choice(self._emojis)
            try:
                await connection.send_reaction(message.key.remote_jid, emoji, message.key)
            except Exception:
                LOGGER.exception("Auto-react failed for %s", message.key.id)
