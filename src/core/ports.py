"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the protocol engine, credential
storage and archive retrieval so that the core can be reused with different
backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Tuple

from core.models import MessageKey

# Engines report every event as (category, payload). Payloads follow the
# Baileys shapes: dicts with camelCase keys.
EventListener = Callable[[str, Any], None]

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"
MESSAGES_UPSERT = "messages.upsert"
CALL = "call"
GROUP_PARTICIPANTS_UPDATE = "group-participants.update"


@dataclass(frozen=True)
class ConnectOptions:
    """What the engine needs to open one session."""

    credentials_path: str
    pairing_required: bool
    browser: Tuple[str, str, str] = ("Warden", "Safari", "3.3")


class SessionPort(Protocol):
    """Command surface of one live session."""

    @property
    def user_id(self) -> Optional[str]:
        ...

    async def send_message(self, jid: str, content: dict, quoted: Optional[dict] = None) -> Any:
        ...

    async def read_messages(self, keys: Iterable[MessageKey]) -> None:
        ...

    async def accept_invite(self, code: str) -> Any:
        ...

    async def send_reaction(self, jid: str, emoji: str, key: MessageKey) -> None:
        ...

    async def close(self) -> None:
        ...


class EnginePort(Protocol):
    """Protocol engine that establishes sessions.

    ``creds.update`` payloads that are dicts are treated as partial deltas and
    merged into the stored JSON. An engine that emits its own credential
    objects must also provide ``serialize_credentials(creds) -> bytes | str``
    returning the complete credential file.
    """

    async def connect(self, options: ConnectOptions, on_event: EventListener) -> SessionPort:
        ...


class CredentialStorePort(Protocol):
    """On-disk credential file."""

    @property
    def path(self) -> str:
        ...

    def exists(self) -> bool:
        ...

    def read(self) -> bytes:
        ...

    def write(self, data: "bytes | str") -> None:
        ...


class ArchiveFetcherPort(Protocol):
    """Retrieves a credential archive from a remote file-sharing service."""

    async def fetch(self, file_id: str, key: str) -> bytes:
        ...


# External collaborators (router, call and group handlers) receive the raw
# engine payload.
PluginHandler = Callable[[SessionPort, Any], Awaitable[None]]
