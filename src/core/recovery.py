"""Deleted-message recovery.

When a revoke notice arrives for a retained message, the engine reports it to
the operator, puts the content back into the chat and drops the entry. Every
send is isolated so one failure never blocks the next step.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from core.content import build_resend_payload, classify_chat
from core.formatting import (
    format_recovery_fallback,
    format_recovery_notice,
    format_recovery_report,
)
from core.models import MessageKey, ReceivedBatch, RecoveryReport, RetainedMessage
from core.ports import SessionPort
from core.retention import RetentionCache

LOGGER = logging.getLogger(__name__)


class DeleteRecoveryEngine:
    """Feeds the retention cache and answers deletion notices."""

    def __init__(
        self,
        cache: RetentionCache,
        *,
        enabled: bool,
        report_recipient: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._cache = cache
        self._enabled = enabled
        self._report_recipient = report_recipient
        self._clock = clock

    async def handle_batch(self, connection: SessionPort, batch: ReceivedBatch) -> None:
        if not self._enabled:
            return
        for message in batch.messages:
            if message.is_revoke:
                await self.on_deletion_notice(connection, message.revoked_key)
            elif self._cache.capture(message, self._clock()):
                LOGGER.debug("Retained message %s from %s", message.key.id, message.key.remote_jid)

    async def on_deletion_notice(self, connection: SessionPort, deleted_key: MessageKey) -> bool:
        """Recover one deleted message; return whether anything was recovered."""

        try:
            retained = self._cache.get(deleted_key.id)
            if retained is None:
                return False
            try:
                await self._recover(connection, deleted_key, retained)
            finally:
                self._cache.delete(deleted_key.id)
            return True
        except Exception:
            LOGGER.exception("Delete recovery failed for %s", deleted_key.id)
            return False

    def build_report(self, deleted_key: MessageKey, retained: RetainedMessage) -> RecoveryReport:
        chat_jid = deleted_key.remote_jid or retained.chat_jid
        return RecoveryReport(
            original_time=retained.inserted_at,
            deleted_at=self._clock(),
            sender_name=retained.sender_name,
            sender_jid=retained.sender_jid,
            chat_jid=chat_jid,
            chat_type=classify_chat(chat_jid),
            content_kind=retained.content.kind,
            deleted_by_self=deleted_key.from_me,
            content=retained.content.text,
        )

    async def _recover(
        self, connection: SessionPort, deleted_key: MessageKey, retained: RetainedMessage
    ) -> None:
        report = self.build_report(deleted_key, retained)

        if self._report_recipient:
            try:
                await connection.send_message(
                    self._report_recipient, {"text": format_recovery_report(report)}
                )
            except Exception:
                LOGGER.exception("Could not send recovery report to %s", self._report_recipient)

        try:
            await connection.send_message(report.chat_jid, build_resend_payload(retained.content))
        except Exception:
            LOGGER.exception("Resend failed for %s, sending text fallback", deleted_key.id)
            try:
                await connection.send_message(report.chat_jid, {"text": format_recovery_fallback(report)})
            except Exception:
                LOGGER.exception("Fallback recovery message failed for %s", deleted_key.id)
            return

        if report.content_kind.is_text:
            try:
                await connection.send_message(report.chat_jid, {"text": format_recovery_notice(report)})
            except Exception:
                LOGGER.exception("Recovery notice failed for %s", deleted_key.id)

        LOGGER.info("Recovered deleted message %s in %s", deleted_key.id, report.chat_jid)
