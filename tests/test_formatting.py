from __future__ import annotations

from datetime import datetime

from core.formatting import format_membership_summary, format_recovery_report
from core.models import (
    ChatType,
    ContentKind,
    JoinClassification,
    RecoveryReport,
    ReconcileOutcome,
    ReconcileSummary,
)


def test_recovery_report_fields() -> None:
    report = RecoveryReport(
        original_time=datetime(2024, 5, 1, 9, 59, 0),
        deleted_at=datetime(2024, 5, 1, 10, 0, 0),
        sender_name="Ana",
        sender_jid="15550002222@s.whatsapp.net",
        chat_jid="1203630@g.us",
        chat_type=ChatType.GROUP,
        content_kind=ContentKind.EXTENDED_TEXT,
        deleted_by_self=True,
        content="see you at 5",
    )

    text = format_recovery_report(report)

    assert text.startswith("*DELETED MESSAGE RECOVERED*")
    assert "*Original time:* 2024-05-01 09:59:00" in text
    assert "*Deleted at:* 2024-05-01 10:00:00" in text
    assert "*Chat type:* Group" in text
    assert "*Message type:* Extended Text" in text
    assert "*Deleted by:* You (agent)" in text
    assert "see you at 5" in text


def test_membership_summary_lists_failures_only() -> None:
    summary = ReconcileSummary(
        outcomes=(
            ReconcileOutcome("Announcements", success=True),
            ReconcileOutcome("Support", success=True, already_member=True),
            ReconcileOutcome("Old", success=False, error=JoinClassification.INVALID_OR_EXPIRED),
        )
    )

    text = format_membership_summary(summary, datetime(2024, 5, 1, 10, 0, 0))

    assert "Joined: 1" in text
    assert "Already in: 1" in text
    assert "Failed: 1" in text
    assert "Total: 3" in text
    assert "- Old: invalid-or-expired" in text
    assert "Announcements" not in text
