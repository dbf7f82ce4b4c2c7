from __future__ import annotations

import asyncio
from datetime import datetime

from core.announce import ConnectAnnouncer
from core.config import AgentConfig, FeatureToggles
from core.membership import build_targets
from fakes import FakeSession

RECIPIENT = "15559990000@s.whatsapp.net"
TARGETS = build_targets([{"name": "Announcements", "invite": "AbCdEfGhIjKlMnOpQrStUv"}], [])


def _clock() -> datetime:
    return datetime(2024, 5, 1, 10, 0, 0)


def test_connect_message_goes_to_recipient() -> None:
    config = AgentConfig(features=FeatureToggles(anti_delete=True), report_recipient=RECIPIENT, prefix="!")
    session = FakeSession()

    sent = asyncio.run(ConnectAnnouncer(config, TARGETS, clock=_clock).announce(session))

    assert sent is True
    text = session.texts_to(RECIPIENT)[0]
    assert "*Warden online*" in text
    assert "*Agent:* 15550001111" in text
    assert "*Prefix:* !" in text
    assert "- Anti-delete: on" in text
    assert "1. Announcements" in text


def test_falls_back_to_own_id_without_recipient() -> None:
    session = FakeSession()

    asyncio.run(ConnectAnnouncer(AgentConfig(), TARGETS, clock=_clock).announce(session))

    assert session.sent[0][0] == "15550001111@s.whatsapp.net"


def test_image_card_failure_sends_simple_text() -> None:
    config = AgentConfig(report_recipient=RECIPIENT, connect_image_url="https://img.example/card.jpg")
    session = FakeSession()
    session.fail_send = lambda jid, content: "image" in content

    sent = asyncio.run(ConnectAnnouncer(config, TARGETS, clock=_clock).announce(session))

    assert sent is True
    assert session.texts_to(RECIPIENT) == [
        "Warden online\n2024-05-01 10:00:00\nThe agent is connected and running.\nMembership check covers 1 targets."
    ]


def test_disabled_connect_message_sends_nothing() -> None:
    config = AgentConfig(features=FeatureToggles(send_connect_message=False), report_recipient=RECIPIENT)
    session = FakeSession()

    assert asyncio.run(ConnectAnnouncer(config, TARGETS).announce(session)) is False
    assert session.sent == []
