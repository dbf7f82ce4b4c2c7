"""Engine-event-to-core mapping.

This keeps the engine's dict payloads out of the feature handlers.
"""

from __future__ import annotations

from typing import Any, Optional

from core.models import (
    CloseCause,
    ConnectionUpdate,
    InboundMessage,
    MessageKey,
    ReceivedBatch,
    SessionStatus,
)

_STATES = {
    "connecting": SessionStatus.CONNECTING,
    "open": SessionStatus.OPEN,
    "close": SessionStatus.CLOSED,
    "closed": SessionStatus.CLOSED,
}


def _status_code(last_disconnect: Any) -> Optional[int]:
    """Dig the disconnect status code out of the shapes engines use."""

    if not isinstance(last_disconnect, dict):
        return None
    code = last_disconnect.get("statusCode")
    if code is None:
        error = last_disconnect.get("error")
        if isinstance(error, dict):
            output = error.get("output") or {}
            code = output.get("statusCode") or error.get("statusCode")
        else:
            output = getattr(error, "output", None)
            code = getattr(output, "statusCode", None) or getattr(error, "status_code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


def decode_connection_update(payload: Any) -> ConnectionUpdate:
    """Build a ConnectionUpdate from a connection.update payload."""

    if not isinstance(payload, dict):
        return ConnectionUpdate(state=None)
    state = _STATES.get(str(payload.get("connection") or "").lower())
    cause = None
    if state is SessionStatus.CLOSED:
        cause = CloseCause.from_status_code(_status_code(payload.get("lastDisconnect")))
    return ConnectionUpdate(state=state, close_cause=cause, pairing_code=payload.get("qr"))


def decode_message(raw: dict) -> Optional[InboundMessage]:
    """Build an InboundMessage, or None when the entry has no usable key."""

    raw_key = raw.get("key") if isinstance(raw, dict) else None
    if not isinstance(raw_key, dict):
        return None
    remote_jid = raw_key.get("remoteJid")
    if not remote_jid:
        return None
    key = MessageKey(
        remote_jid=remote_jid,
        id=str(raw_key.get("id") or ""),
        from_me=bool(raw_key.get("fromMe", False)),
        participant=raw_key.get("participant") or None,
    )
    payload = raw.get("message")
    return InboundMessage(
        key=key,
        push_name=raw.get("pushName"),
        payload=payload if isinstance(payload, dict) else None,
        raw=raw,
    )


def decode_batch(payload: Any) -> ReceivedBatch:
    """Build a ReceivedBatch from a messages.upsert payload."""

    entries = payload.get("messages", []) if isinstance(payload, dict) else []
    messages = []
    for entry in entries:
        message = decode_message(entry)
        if message is not None:
            messages.append(message)
    return ReceivedBatch(messages=tuple(messages), raw=payload)
