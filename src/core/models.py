"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any engine-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple


class CredentialSource(str, Enum):
    """Where the active credential blob came from."""

    ON_DISK = "on-disk"
    DECODED_INLINE = "decoded-inline"
    REMOTE_ARCHIVE = "remote-archive"
    NONE = "none"


@dataclass(frozen=True)
class BootstrapResult:
    """Outcome of one bootstrap pass."""

    source: CredentialSource
    ready: bool


class SessionStatus(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class CloseCause(Enum):
    """Why a session closed, keyed by the network's disconnect status code."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515
    CONNECT_FAILED = -1
    UNKNOWN = 0

    @classmethod
    def from_status_code(cls, code: Optional[int]) -> "CloseCause":
        if code is None:
            return cls.UNKNOWN
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        # Only an explicit logout stops the reconnect loop.
        return self is CloseCause.LOGGED_OUT


@dataclass(frozen=True)
class ConnectionUpdate:
    """A decoded connection.update event."""

    state: Optional[SessionStatus]
    close_cause: Optional[CloseCause] = None
    pairing_code: Optional[str] = None


@dataclass(frozen=True)
class MessageKey:
    """Identity of a message on the network."""

    remote_jid: str
    id: str
    from_me: bool = False
    participant: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict = {"remoteJid": self.remote_jid, "id": self.id, "fromMe": self.from_me}
        if self.participant:
            data["participant"] = self.participant
        return data

    @property
    def sender_jid(self) -> str:
        return self.participant or self.remote_jid


@dataclass(frozen=True)
class InboundMessage:
    """One decoded entry of a messages.upsert batch."""

    key: MessageKey
    push_name: Optional[str]
    payload: Optional[dict]
    raw: dict = field(repr=False, compare=False, default_factory=dict)

    @property
    def protocol_message(self) -> Optional[dict]:
        if not self.payload:
            return None
        return self.payload.get("protocolMessage")

    @property
    def is_protocol(self) -> bool:
        if not self.payload:
            return False
        return any(
            name in self.payload
            for name in ("protocolMessage", "reactionMessage", "senderKeyDistributionMessage")
        )

    @property
    def is_revoke(self) -> bool:
        protocol = self.protocol_message
        if not protocol:
            return False
        # Engines emit the enum either as its number or its name.
        return protocol.get("type") in (0, "REVOKE") and bool(protocol.get("key"))

    @property
    def revoked_key(self) -> Optional[MessageKey]:
        if not self.is_revoke:
            return None
        raw_key = self.protocol_message["key"]
        return MessageKey(
            remote_jid=raw_key.get("remoteJid") or self.key.remote_jid,
            id=str(raw_key.get("id") or ""),
            from_me=bool(raw_key.get("fromMe", False)),
            participant=raw_key.get("participant"),
        )


@dataclass(frozen=True)
class ReceivedBatch:
    """A messages.upsert event: decoded messages plus the untouched payload."""

    messages: Tuple[InboundMessage, ...]
    raw: Any = field(repr=False, compare=False, default=None)


class ContentKind(str, Enum):
    TEXT = "Text"
    EXTENDED_TEXT = "Extended Text"
    IMAGE = "Image"
    VIDEO = "Video"
    AUDIO = "Audio"
    DOCUMENT = "Document"
    STICKER = "Sticker"
    UNKNOWN = "Unknown"

    @property
    def is_text(self) -> bool:
        return self in (ContentKind.TEXT, ContentKind.EXTENDED_TEXT)


@dataclass(frozen=True)
class MessageContent:
    """Message payload classified by kind, with a human-readable rendering."""

    kind: ContentKind
    text: str
    payload: dict = field(repr=False, compare=False, default_factory=dict)


class ChatType(str, Enum):
    GROUP = "Group"
    PRIVATE = "Private"
    BROADCAST = "Broadcast"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RetainedMessage:
    """Snapshot of an inbound message kept for delete recovery."""

    message_id: str
    chat_jid: str
    sender_jid: str
    sender_name: str
    content: MessageContent
    inserted_at: datetime


@dataclass(frozen=True)
class RecoveryReport:
    """Everything known about a recovered deletion."""

    original_time: datetime
    deleted_at: datetime
    sender_name: str
    sender_jid: str
    chat_jid: str
    chat_type: ChatType
    content_kind: ContentKind
    deleted_by_self: bool
    content: str


class MembershipSource(str, Enum):
    BUILT_IN = "built-in"
    CONFIG = "config-supplied"


@dataclass(frozen=True)
class MembershipTarget:
    """A channel the agent must be a member of."""

    name: str
    invite_code: str
    invite_link: str
    source: MembershipSource


class JoinClassification(str, Enum):
    ALREADY_MEMBER = "already-member"
    INVALID_OR_EXPIRED = "invalid-or-expired"
    RATE_LIMITED = "rate-limited"
    OTHER = "other"


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one join attempt."""

    target_name: str
    success: bool
    already_member: bool = False
    error: Optional[JoinClassification] = None
    detail: str = ""


@dataclass(frozen=True)
class ReconcileSummary:
    """Aggregate of one reconciliation pass."""

    outcomes: Tuple[ReconcileOutcome, ...]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def joined(self) -> int:
        return sum(1 for o in self.outcomes if o.success and not o.already_member)

    @property
    def already_in(self) -> int:
        return sum(1 for o in self.outcomes if o.already_member)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)
