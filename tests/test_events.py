from __future__ import annotations

from core.events import decode_batch, decode_connection_update
from core.models import CloseCause, SessionStatus


def test_decode_open_and_connecting() -> None:
    assert decode_connection_update({"connection": "open"}).state is SessionStatus.OPEN
    update = decode_connection_update({"connection": "connecting", "qr": "2@abc"})
    assert update.state is SessionStatus.CONNECTING
    assert update.pairing_code == "2@abc"
    assert decode_connection_update({"receivedPendingNotifications": True}).state is None


def test_decode_close_reads_nested_status_code() -> None:
    update = decode_connection_update(
        {"connection": "close", "lastDisconnect": {"error": {"output": {"statusCode": 401}}}}
    )

    assert update.state is SessionStatus.CLOSED
    assert update.close_cause is CloseCause.LOGGED_OUT
    assert update.close_cause.is_terminal


def test_decode_close_with_flat_or_missing_code() -> None:
    flat = decode_connection_update({"connection": "close", "lastDisconnect": {"statusCode": 428}})
    missing = decode_connection_update({"connection": "close"})
    odd = decode_connection_update({"connection": "close", "lastDisconnect": {"statusCode": 999}})

    assert flat.close_cause is CloseCause.CONNECTION_CLOSED
    assert not flat.close_cause.is_terminal
    assert missing.close_cause is CloseCause.UNKNOWN
    assert odd.close_cause is CloseCause.UNKNOWN


def test_decode_batch_skips_entries_without_key() -> None:
    payload = {
        "type": "notify",
        "messages": [
            {"key": {"remoteJid": "1@s.whatsapp.net", "id": "A"}, "message": {"conversation": "hi"}},
            {"message": {"conversation": "no key"}},
            {"key": {"id": "B"}},
        ],
    }

    batch = decode_batch(payload)

    assert [message.key.id for message in batch.messages] == ["A"]
    assert batch.raw is payload


def test_revoke_notice_exposes_deleted_key() -> None:
    batch = decode_batch(
        {
            "messages": [
                {
                    "key": {"remoteJid": "1203630@g.us", "id": "NOTICE", "participant": "9@s.whatsapp.net"},
                    "message": {"protocolMessage": {"type": "REVOKE", "key": {"id": "ORIGINAL"}}},
                }
            ]
        }
    )

    message = batch.messages[0]
    assert message.is_protocol
    assert message.is_revoke
    assert message.revoked_key.id == "ORIGINAL"
    assert message.revoked_key.remote_jid == "1203630@g.us"


def test_other_protocol_messages_are_not_revokes() -> None:
    batch = decode_batch(
        {
            "messages": [
                {
                    "key": {"remoteJid": "1@s.whatsapp.net", "id": "E"},
                    "message": {"protocolMessage": {"type": 14, "key": {"id": "X"}}},
                }
            ]
        }
    )

    assert not batch.messages[0].is_revoke
    assert batch.messages[0].revoked_key is None


def test_non_dict_connection_update_decodes_to_no_state() -> None:
    assert decode_connection_update(None).state is None
    assert decode_connection_update(object()).state is None
    assert decode_connection_update("open").close_cause is None
