from __future__ import annotations

from datetime import datetime

import pytest

from core.content import extract_content
from core.events import decode_message
from core.models import RetainedMessage
from core.retention import RetentionCache


def _retained(message_id: str) -> RetainedMessage:
    return RetainedMessage(
        message_id=message_id,
        chat_jid="123@s.whatsapp.net",
        sender_jid="123@s.whatsapp.net",
        sender_name="Ana",
        content=extract_content({"conversation": f"text {message_id}"}),
        inserted_at=datetime(2024, 1, 1, 12, 0, 0),
    )


def _inbound(message_id: str, *, from_me: bool = False, message: dict | None = None):
    return decode_message(
        {
            "key": {"remoteJid": "123@s.whatsapp.net", "id": message_id, "fromMe": from_me},
            "pushName": "Ana",
            "message": message,
        }
    )


def test_capacity_bounds_cache_and_keeps_most_recent() -> None:
    cache = RetentionCache()

    for index in range(1005):
        cache.put(f"m{index}", _retained(f"m{index}"))

    assert len(cache) == 1000
    assert cache.get("m0") is None
    assert cache.get("m4") is None
    assert cache.ids()[0] == "m5"
    assert cache.ids()[-1] == "m1004"


def test_put_same_id_moves_entry_to_newest() -> None:
    cache = RetentionCache(capacity=3)
    cache.put("a", _retained("a"))
    cache.put("b", _retained("b"))
    cache.put("a", _retained("a"))
    cache.put("c", _retained("c"))
    cache.put("d", _retained("d"))

    assert cache.ids() == ["a", "c", "d"]


def test_get_after_delete_returns_none() -> None:
    cache = RetentionCache()
    cache.put("a", _retained("a"))

    assert cache.delete("a") is True
    assert cache.get("a") is None
    assert "a" not in cache
    assert cache.delete("a") is False


def test_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        RetentionCache(capacity=0)


def test_capture_retains_inbound_text() -> None:
    cache = RetentionCache()
    now = datetime(2024, 1, 1, 9, 30, 0)

    assert cache.capture(_inbound("abc", message={"conversation": "Hello world"}), now) is True

    retained = cache.get("abc")
    assert retained is not None
    assert retained.content.text == "Hello world"
    assert retained.sender_name == "Ana"
    assert retained.inserted_at == now


def test_capture_skips_own_protocol_and_empty_messages() -> None:
    cache = RetentionCache()
    now = datetime(2024, 1, 1)

    assert cache.capture(_inbound("own", from_me=True, message={"conversation": "hi"}), now) is False
    assert cache.capture(_inbound("empty", message=None), now) is False
    protocol = {"protocolMessage": {"type": 0, "key": {"id": "x"}}}
    assert cache.capture(_inbound("proto", message=protocol), now) is False
    assert len(cache) == 0
