"""Mandatory channel membership.

The reconciler walks a fixed target list, accepts each invite, and reports
what happened. A pass never stops early: every target gets its attempt.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Tuple

from core.formatting import format_membership_error, format_membership_summary
from core.models import (
    JoinClassification,
    MembershipSource,
    MembershipTarget,
    ReconcileOutcome,
    ReconcileSummary,
)
from core.ports import SessionPort

LOGGER = logging.getLogger(__name__)

INVITE_HOST = "chat.whatsapp.com/"
_INVITE_CODE = re.compile(r"^[A-Za-z0-9]{10,32}$")

# Structured status codes win over message text when the engine provides them.
_ALREADY_CODES = {409}
_INVALID_CODES = {400, 401, 404, 406, 410}
_RATE_LIMIT_CODES = {429}

Sleep = Callable[[float], Awaitable[None]]


def parse_invite_code(value: str) -> Optional[str]:
    """Return the invite code from a full link or a bare code."""

    value = (value or "").strip()
    if not value:
        return None
    if INVITE_HOST in value:
        value = value.split(INVITE_HOST, 1)[1]
        value = value.split("?", 1)[0].split("#", 1)[0].strip("/")
    if not _INVITE_CODE.match(value):
        return None
    return value


def invite_link(code: str) -> str:
    return f"https://{INVITE_HOST}{code}"


def build_targets(
    required: Iterable[dict], extra_links: Iterable[str]
) -> Tuple[MembershipTarget, ...]:
    """Assemble the fixed target list: built-in entries first, then config links.

    Entries whose invite cannot be parsed are skipped, as are repeated codes.
    """

    targets: list[MembershipTarget] = []
    seen: set[str] = set()

    def _add(name: str, raw: str, source: MembershipSource) -> None:
        code = parse_invite_code(raw)
        if code is None:
            LOGGER.warning("Ignoring membership target %s: unrecognized invite %r", name, raw)
            return
        if code in seen:
            return
        seen.add(code)
        targets.append(MembershipTarget(name=name, invite_code=code, invite_link=invite_link(code), source=source))

    for index, entry in enumerate(required, start=1):
        _add(entry.get("name") or f"Group {index}", entry.get("invite", ""), MembershipSource.BUILT_IN)
    for index, link in enumerate(extra_links, start=1):
        _add(f"Config Group {index}", link, MembershipSource.CONFIG)
    return tuple(targets)


def _error_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_join_error(error: BaseException) -> JoinClassification:
    """Decide what a failed join means.

    Already-member is an idempotent success, invalid-or-expired is permanent,
    rate-limited is transient; everything else is "other".
    """

    code = _error_code(error)
    if code in _ALREADY_CODES:
        return JoinClassification.ALREADY_MEMBER
    if code in _INVALID_CODES:
        return JoinClassification.INVALID_OR_EXPIRED
    if code in _RATE_LIMIT_CODES:
        return JoinClassification.RATE_LIMITED

    text = str(error).lower()
    if "already" in text:
        return JoinClassification.ALREADY_MEMBER
    if "invite" in text or "invalid" in text:
        return JoinClassification.INVALID_OR_EXPIRED
    if "rate" in text or "limit" in text:
        return JoinClassification.RATE_LIMITED
    return JoinClassification.OTHER


class MembershipReconciler:
    """Joins every target it was built with and reports the totals."""

    def __init__(
        self,
        targets: Sequence[MembershipTarget],
        *,
        report_recipient: Optional[str] = None,
        inter_attempt_delay: float = 3.0,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._targets = tuple(targets)
        self._report_recipient = report_recipient
        self._delay = inter_attempt_delay
        self._sleep = sleep
        self._clock = clock

    @property
    def targets(self) -> Tuple[MembershipTarget, ...]:
        return self._targets

    async def join(self, connection: SessionPort, target: MembershipTarget) -> ReconcileOutcome:
        """Attempt one join and classify the result."""

        LOGGER.info("Joining %s with code %s", target.name, target.invite_code)
        try:
            await connection.accept_invite(target.invite_code)
        except Exception as error:
            classification = classify_join_error(error)
            if classification is JoinClassification.ALREADY_MEMBER:
                LOGGER.info("Already a member of %s", target.name)
                return ReconcileOutcome(target.name, success=True, already_member=True)
            LOGGER.warning("Failed to join %s (%s): %s", target.name, classification.value, error)
            return ReconcileOutcome(target.name, success=False, error=classification, detail=str(error))
        LOGGER.info("Joined %s", target.name)
        return ReconcileOutcome(target.name, success=True)

    async def reconcile(self, connection: SessionPort) -> ReconcileSummary:
        if not self._targets:
            LOGGER.warning(
                "No membership targets configured; add invites under membership.required "
                "or membership.extra_links in config.json"
            )
        try:
            outcomes: list[ReconcileOutcome] = []
            last = len(self._targets) - 1
            for index, target in enumerate(self._targets):
                LOGGER.info("Processing membership target %s/%s: %s", index + 1, len(self._targets), target.name)
                try:
                    outcome = await self.join(connection, target)
                except Exception as error:
                    LOGGER.exception("Unexpected error processing %s", target.name)
                    outcome = ReconcileOutcome(
                        target.name, success=False, error=JoinClassification.OTHER, detail=str(error)
                    )
                outcomes.append(outcome)
                if index < last:
                    await self._sleep(self._delay)

            summary = ReconcileSummary(outcomes=tuple(outcomes))
            LOGGER.info(
                "Membership check complete: joined=%s, already_in=%s, failed=%s, total=%s",
                summary.joined,
                summary.already_in,
                summary.failed,
                summary.total,
            )
            await self._send_report(connection, format_membership_summary(summary, self._clock()))
            return summary
        except Exception as error:
            LOGGER.exception("Membership check failed")
            await self._send_report(connection, format_membership_error(error, self._clock()))
            raise

    async def _send_report(self, connection: SessionPort, text: str) -> None:
        if not self._report_recipient:
            return
        try:
            await connection.send_message(self._report_recipient, {"text": text})
        except Exception:
            LOGGER.warning("Could not send membership report to %s", self._report_recipient)
