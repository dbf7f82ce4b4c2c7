from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from aiohttp.test_utils import TestClient, TestServer

from adapters.status_page import create_app
from core.config import FeatureToggles
from core.models import SessionStatus


class StubHandle:
    def __init__(self, status: SessionStatus, identity: Optional[str]) -> None:
        self.status = status
        self.identity = identity
        self.generation = 2


class StubManager:
    def __init__(self, handle: Optional[StubHandle] = None, halted: bool = False) -> None:
        self.current = handle
        self.halted = halted


def _clock() -> datetime:
    return datetime(2024, 5, 1, 10, 0, 0)


def _fetch(manager: StubManager, path: str, features: FeatureToggles = FeatureToggles()):
    async def _run():
        app = create_app(manager, features, 3, clock=_clock)
        async with TestClient(TestServer(app)) as client:
            response = await client.get(path)
            if path == "/healthz":
                return response.status, await response.json()
            return response.status, await response.text()

    return asyncio.run(_run())


def test_index_lists_feature_switches() -> None:
    manager = StubManager(StubHandle(SessionStatus.OPEN, "15550001111@s.whatsapp.net"))

    status, body = _fetch(manager, "/", FeatureToggles(anti_delete=True))

    assert status == 200
    assert "[on] Anti-delete message recovery" in body
    assert "[off] Auto-like status" in body
    assert "Membership check (3 targets)" in body
    assert "Session open as 15550001111@s.whatsapp.net" in body
    assert "2024-05-01 10:00:00" in body


def test_index_shows_logout() -> None:
    manager = StubManager(StubHandle(SessionStatus.CLOSED, None), halted=True)

    _, body = _fetch(manager, "/")

    assert "Logged out" in body


def test_health_reports_session_state() -> None:
    status, payload = _fetch(StubManager(StubHandle(SessionStatus.CONNECTING, None)), "/healthz")

    assert status == 200
    assert payload == {"status": "connecting", "identity": None, "generation": 2, "halted": False}


def test_health_before_first_session() -> None:
    _, payload = _fetch(StubManager(), "/healthz")

    assert payload["status"] == "idle"
    assert payload["generation"] == 0
