"""Chat and content classification helpers (core domain)."""

from __future__ import annotations

import copy
from typing import Optional

from core.models import ChatType, ContentKind, MessageContent

STATUS_BROADCAST_JID = "status@broadcast"
GROUP_SUFFIX = "@g.us"
USER_SUFFIXES = ("@s.whatsapp.net", "@lid")
BROADCAST_SUFFIX = "@broadcast"

RECOVERED_CAPTION = "[Recovered Deleted Message]"
RECOVERED_FILENAME = "[Recovered]"

# Wrappers that carry the real payload one level down.
_WRAPPERS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2", "documentWithCaptionMessage")


def is_status_broadcast(jid: Optional[str]) -> bool:
    return jid == STATUS_BROADCAST_JID


def classify_chat(jid: str) -> ChatType:
    """Return the chat type implied by the identifier's suffix."""

    if jid.endswith(GROUP_SUFFIX):
        return ChatType.GROUP
    if jid.endswith(USER_SUFFIXES):
        return ChatType.PRIVATE
    if jid.endswith(BROADCAST_SUFFIX):
        return ChatType.BROADCAST
    return ChatType.UNKNOWN


def unwrap_payload(payload: dict) -> dict:
    """Strip ephemeral and view-once wrappers."""

    for _ in range(3):
        for wrapper in _WRAPPERS:
            inner = (payload.get(wrapper) or {}).get("message")
            if isinstance(inner, dict):
                payload = inner
                break
        else:
            return payload
    return payload


def extract_content(payload: Optional[dict]) -> MessageContent:
    """Classify a message payload and render its content as text.

    The first populated variant wins, in this order: conversation, extended
    text, image, video, audio, document, sticker.
    """

    if not payload:
        return MessageContent(kind=ContentKind.UNKNOWN, text="Unknown content", payload={})

    payload = unwrap_payload(payload)

    if payload.get("conversation"):
        return MessageContent(ContentKind.TEXT, payload["conversation"], payload)
    extended = payload.get("extendedTextMessage") or {}
    if extended.get("text"):
        return MessageContent(ContentKind.EXTENDED_TEXT, extended["text"], payload)
    if payload.get("imageMessage") is not None:
        caption = payload["imageMessage"].get("caption") or "[Image Message]"
        return MessageContent(ContentKind.IMAGE, caption, payload)
    if payload.get("videoMessage") is not None:
        caption = payload["videoMessage"].get("caption") or "[Video Message]"
        return MessageContent(ContentKind.VIDEO, caption, payload)
    if payload.get("audioMessage") is not None:
        return MessageContent(ContentKind.AUDIO, "[Audio Message]", payload)
    if payload.get("documentMessage") is not None:
        file_name = payload["documentMessage"].get("fileName") or "File"
        return MessageContent(ContentKind.DOCUMENT, f"[Document] {file_name}", payload)
    if payload.get("stickerMessage") is not None:
        return MessageContent(ContentKind.STICKER, "[Sticker]", payload)
    return MessageContent(ContentKind.UNKNOWN, "Unknown content", payload)


def build_resend_payload(content: MessageContent) -> dict:
    """Return what to send back into the chat for a recovered message.

    Text is resent as plain text; media is the original payload with the
    caption or file name marked as recovered.
    """

    if content.kind.is_text:
        return {"text": content.text}

    payload = copy.deepcopy(content.payload)
    if "imageMessage" in payload:
        caption = payload["imageMessage"].get("caption") or ""
        payload["imageMessage"]["caption"] = f"{RECOVERED_CAPTION}\n{caption}"
    elif "videoMessage" in payload:
        caption = payload["videoMessage"].get("caption") or ""
        payload["videoMessage"]["caption"] = f"{RECOVERED_CAPTION}\n{caption}"
    elif "documentMessage" in payload:
        file_name = payload["documentMessage"].get("fileName") or "file"
        payload["documentMessage"]["fileName"] = f"{RECOVERED_FILENAME} {file_name}"
    return payload
