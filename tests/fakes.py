from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from core.models import CloseCause, MessageKey


class FakeSession:
    def __init__(self, user_id: Optional[str] = "15550001111@s.whatsapp.net") -> None:
        self.user_id = user_id
        self.sent: list[tuple[str, dict, Optional[dict]]] = []
        self.reads: list[list[MessageKey]] = []
        self.reactions: list[tuple[str, str, MessageKey]] = []
        self.invites: list[str] = []
        self.invite_errors: dict[str, BaseException] = {}
        self.fail_send: Optional[Callable[[str, dict], bool]] = None
        self.fail_read = False
        self.fail_react = False
        self.closed = False

    async def send_message(self, jid: str, content: dict, quoted: Optional[dict] = None) -> Any:
        if self.fail_send is not None and self.fail_send(jid, content):
            raise RuntimeError("send failed")
        self.sent.append((jid, content, quoted))
        return {"key": {"id": f"out-{len(self.sent)}"}}

    async def read_messages(self, keys) -> None:
        if self.fail_read:
            raise RuntimeError("read failed")
        self.reads.append(list(keys))

    async def accept_invite(self, code: str) -> Any:
        self.invites.append(code)
        error = self.invite_errors.get(code)
        if error is not None:
            raise error
        return f"{code}@g.us"

    async def send_reaction(self, jid: str, emoji: str, key: MessageKey) -> None:
        if self.fail_react:
            raise RuntimeError("react failed")
        self.reactions.append((jid, emoji, key))

    async def close(self) -> None:
        self.closed = True

    def texts_to(self, jid: str) -> list[str]:
        return [content.get("text", "") for target, content, _ in self.sent if target == jid]


class FakeStore:
    def __init__(self, data: Optional[bytes] = None, path: str = "/tmp/warden-test/creds.json") -> None:
        self.data = data
        self.path = path
        self.writes = 0

    def exists(self) -> bool:
        return bool(self.data)

    def read(self) -> bytes:
        if self.data is None:
            raise FileNotFoundError(self.path)
        return self.data

    def write(self, data) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.data = data
        self.writes += 1


def opened() -> tuple[str, dict]:
    return ("connection.update", {"connection": "open"})


def closed(cause: CloseCause) -> tuple[str, dict]:
    return (
        "connection.update",
        {"connection": "close", "lastDisconnect": {"error": {"output": {"statusCode": cause.value}}}},
    )


class ScriptedEngine:
    """Plays one event script per connect call.

    A script entry that is an exception instance makes connect() raise it.
    """

    def __init__(self, scripts: list, gap: float = 0.02) -> None:
        self._scripts = list(scripts)
        self._gap = gap
        self._tasks: set[asyncio.Task] = set()
        self.connects: list = []
        self.sessions: list[FakeSession] = []

    async def connect(self, options, on_event) -> FakeSession:
        self.connects.append(options)
        script = self._scripts.pop(0)
        if isinstance(script, BaseException):
            raise script
        session = FakeSession()
        self.sessions.append(session)
        task = asyncio.get_running_loop().create_task(self._play(script, on_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session

    async def _play(self, script, on_event) -> None:
        for category, payload in script:
            await asyncio.sleep(self._gap)
            on_event(category, payload)


class CountingReconciler:
    def __init__(self) -> None:
        self.calls: list[Any] = []

    async def reconcile(self, connection) -> None:
        self.calls.append(connection)


async def never_returns(_delay: float) -> None:
    await asyncio.Event().wait()
