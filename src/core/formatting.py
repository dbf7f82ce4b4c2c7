"""Shared message formatting helpers.

Keeping formatting here prevents drift between the features that talk to the
operator and keeps messages consistent. Bold uses the network's *asterisk*
markup.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from core.config import FeatureToggles
from core.models import MembershipTarget, RecoveryReport, ReconcileSummary

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DIVIDER = "──────────────"


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def _flag(enabled: bool) -> str:
    return "on" if enabled else "off"


def format_recovery_report(report: RecoveryReport) -> str:
    """Operator report for a recovered deletion."""

    deleted_by = "You (agent)" if report.deleted_by_self else "Other user"
    lines = [
        "*DELETED MESSAGE RECOVERED*",
        DIVIDER,
        f"*Original time:* {format_timestamp(report.original_time)}",
        f"*Deleted at:* {format_timestamp(report.deleted_at)}",
        f"*Sender:* {report.sender_name}",
        f"*Sender ID:* {report.sender_jid}",
        f"*Chat ID:* {report.chat_jid}",
        f"*Chat type:* {report.chat_type.value}",
        f"*Message type:* {report.content_kind.value}",
        f"*Deleted by:* {deleted_by}",
        "",
        "*Original message:*",
        report.content,
        DIVIDER,
        "The message was resent to the chat.",
    ]
    return "\n".join(lines)


def format_recovery_fallback(report: RecoveryReport) -> str:
    """Plain-text stand-in used when the original content cannot be resent."""

    lines = [
        "*Recovered deleted message*",
        "",
        f"From: {report.sender_name}",
        f"Time: {format_timestamp(report.original_time)}",
        f"Type: {report.content_kind.value}",
        "",
        f"Content: {report.content}",
    ]
    return "\n".join(lines)


def format_recovery_notice(report: RecoveryReport) -> str:
    lines = [
        "*Message recovery*",
        "This message was deleted and has been recovered.",
        f"Original sender: {report.sender_name}",
        f"Original time: {format_timestamp(report.original_time)}",
    ]
    return "\n".join(lines)


def format_membership_summary(summary: ReconcileSummary, completed_at: datetime) -> str:
    lines = [
        "*Membership check summary*",
        DIVIDER,
        f"Joined: {summary.joined}",
        f"Already in: {summary.already_in}",
        f"Failed: {summary.failed}",
        f"Total: {summary.total}",
    ]
    failures = [o for o in summary.outcomes if not o.success]
    if failures:
        lines.append("")
        for outcome in failures:
            reason = outcome.error.value if outcome.error else "other"
            lines.append(f"- {outcome.target_name}: {reason}")
    lines.extend([DIVIDER, f"Completed at: {format_timestamp(completed_at)}"])
    return "\n".join(lines)


def format_membership_error(error: BaseException, at: datetime) -> str:
    lines = [
        "*Membership check error*",
        "",
        f"Error: {error}",
        f"Time: {format_timestamp(at)}",
        "",
        "Check the agent logs for details.",
    ]
    return "\n".join(lines)


def format_connect_message(
    *,
    agent_id: str,
    connected_at: datetime,
    prefix: str,
    mode: str,
    features: FeatureToggles,
    targets: Sequence[MembershipTarget],
) -> str:
    """Status card sent after a session opens."""

    lines = [
        "*Warden online*",
        DIVIDER,
        f"*Agent:* {agent_id}",
        f"*Connected:* {format_timestamp(connected_at)}",
        f"*Prefix:* {prefix}",
        f"*Mode:* {mode}",
        DIVIDER,
        "*Features:*",
        f"- Anti-delete: {_flag(features.anti_delete)}",
        f"- Auto-view status: {_flag(features.auto_view_status)}",
        f"- Auto-like status: {_flag(features.auto_like_status)}",
        f"- Auto-react: {_flag(features.auto_react)}",
        f"- Membership check: on ({len(targets)} targets)",
    ]
    if targets:
        lines.extend(["", "*Membership targets:*"])
        lines.extend(_numbered(target.name for target in targets))
    return "\n".join(lines)


def format_simple_connect_message(connected_at: datetime, target_count: int) -> str:
    return "\n".join(
        [
            "Warden online",
            format_timestamp(connected_at),
            "The agent is connected and running.",
            f"Membership check covers {target_count} targets.",
        ]
    )


def _numbered(items: Iterable[str]) -> list[str]:
    return [f"{index}. {item}" for index, item in enumerate(items, start=1)]
