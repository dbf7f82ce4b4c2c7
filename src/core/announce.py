"""Connect notification sent after each session open."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from core.config import AgentConfig
from core.formatting import format_connect_message, format_simple_connect_message
from core.models import MembershipTarget
from core.ports import SessionPort

LOGGER = logging.getLogger(__name__)


class ConnectAnnouncer:
    """Tells the operator the agent is online."""

    def __init__(
        self,
        config: AgentConfig,
        targets: Sequence[MembershipTarget],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._targets = tuple(targets)
        self._clock = clock

    async def announce(self, connection: SessionPort) -> bool:
        if not self._config.features.send_connect_message:
            LOGGER.info("Connect message is disabled")
            return False

        recipient = self._config.report_recipient or connection.user_id
        if not recipient:
            LOGGER.warning("No report recipient and no agent id; skipping connect message")
            return False

        now = self._clock()
        agent_id = (connection.user_id or "unknown").split("@", 1)[0]
        text = format_connect_message(
            agent_id=agent_id,
            connected_at=now,
            prefix=self._config.prefix,
            mode=self._config.mode,
            features=self._config.features,
            targets=self._targets,
        )
        if self._config.connect_image_url:
            content = {"image": {"url": self._config.connect_image_url}, "caption": text}
        else:
            content = {"text": text}

        try:
            await connection.send_message(recipient, content)
            LOGGER.info("Connect message sent to %s", recipient)
            return True
        except Exception:
            LOGGER.exception("Failed to send connect message to %s", recipient)

        if not self._config.report_recipient:
            return False
        try:
            await connection.send_message(
                self._config.report_recipient,
                {"text": format_simple_connect_message(now, len(self._targets))},
            )
            LOGGER.info("Simple connect message sent to %s", self._config.report_recipient)
            return True
        except Exception:
            LOGGER.exception("Fallback connect message failed")
            return False
