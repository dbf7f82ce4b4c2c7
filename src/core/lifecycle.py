"""Connection lifecycle supervisor.

One logical session exists at a time. Each attempt bootstraps credentials,
asks the engine for a new session, wires a fresh dispatcher for its events,
and waits for the session to close. A logout halts the loop; any other close
restarts the whole sequence after a jittered exponential backoff.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from core.announce import ConnectAnnouncer
from core.bootstrap import CredentialBootstrapper
from core.config import LifecycleConfig
from core.dispatch import BackgroundTasks, EventDispatcher
from core.events import decode_batch, decode_connection_update
from core.membership import MembershipReconciler
from core.models import CloseCause, ConnectionUpdate, ReceivedBatch, SessionStatus
from core.ports import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_UPSERT,
    ConnectOptions,
    CredentialStorePort,
    EnginePort,
    EventListener,
    PluginHandler,
    SessionPort,
)

LOGGER = logging.getLogger(__name__)

FeatureHandler = Callable[[SessionPort, ReceivedBatch], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class FirstOpenFlag:
    """Set at process start, cleared by the first successful open."""

    def __init__(self) -> None:
        self._pending = True

    @property
    def pending(self) -> bool:
        return self._pending

    def take(self) -> bool:
        # No await between read and clear: two opens can never both see True.
        pending, self._pending = self._pending, False
        return pending


class Backoff:
    """Exponential backoff with a ceiling and multiplicative jitter."""

    def __init__(
        self,
        base: float,
        factor: float,
        ceiling: float,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._base = base
        self._factor = factor
        self._ceiling = ceiling
        self._rng = rng or random.Random()
        self.attempts = 0

    def next_delay(self) -> float:
        raw = min(self._ceiling, self._base * (self._factor ** self.attempts))
        self.attempts += 1
        return raw * self._rng.uniform(0.5, 1.0)

    def reset(self) -> None:
        self.attempts = 0


class SessionHandle:
    """The current logical connection. Never reused after it closes."""

    def __init__(self, generation: int, dispatcher: EventDispatcher) -> None:
        self.generation = generation
        self.dispatcher = dispatcher
        self.status = SessionStatus.CONNECTING
        self.is_first_open = False
        self.close_cause: Optional[CloseCause] = None
        self._connection: Optional[SessionPort] = None
        self._closed: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def connection(self) -> SessionPort:
        if self._connection is None:
            raise RuntimeError(f"Session {self.generation} has no connection yet")
        return self._connection

    @property
    def identity(self) -> Optional[str]:
        if self._connection is None:
            return None
        return self._connection.user_id

    def attach(self, connection: SessionPort) -> None:
        self._connection = connection

    def mark_open(self) -> None:
        if self.status is not SessionStatus.CLOSED:
            self.status = SessionStatus.OPEN

    def mark_closed(self, cause: CloseCause) -> bool:
        """Close the handle; only the first cause counts."""

        if self._closed.done():
            return False
        self.status = SessionStatus.CLOSED
        self.close_cause = cause
        self._closed.set_result(cause)
        return True

    async def wait_closed(self) -> CloseCause:
        return await self._closed


class ConnectionLifecycleManager:
    """Owns the session, the first-open flag and the membership timer."""

    def __init__(
        self,
        engine: EnginePort,
        bootstrapper: CredentialBootstrapper,
        store: CredentialStorePort,
        reconciler: MembershipReconciler,
        *,
        config: Optional[LifecycleConfig] = None,
        announcer: Optional[ConnectAnnouncer] = None,
        message_handlers: Sequence[FeatureHandler] = (),
        plugins: Optional[Mapping[str, Sequence[PluginHandler]]] = None,
        on_pairing_code: Optional[Callable[[str], None]] = None,
        background_tasks: Optional[BackgroundTasks] = None,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
        timer_sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._bootstrapper = bootstrapper
        self._store = store
        self._reconciler = reconciler
        self._config = config or LifecycleConfig()
        self._announcer = announcer
        self._message_handlers = list(message_handlers)
        self._plugins = {category: list(handlers) for category, handlers in (plugins or {}).items()}
        self._on_pairing_code = on_pairing_code
        self._background_tasks = background_tasks
        self._sleep = sleep
        self._timer_sleep = timer_sleep
        self._backoff = Backoff(
            self._config.backoff_base_seconds,
            self._config.backoff_factor,
            self._config.backoff_ceiling_seconds,
            rng,
        )
        self._first_open = FirstOpenFlag()
        self._generation = 0
        self._current: Optional[SessionHandle] = None
        self._halted = False

    @property
    def current(self) -> Optional[SessionHandle]:
        return self._current

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def first_open(self) -> FirstOpenFlag:
        return self._first_open

    async def run(self) -> CloseCause:
        """Keep a session alive until the account is logged out."""

        timer = asyncio.create_task(self._membership_timer(), name="membership-timer")
        try:
            while True:
                cause = await self._run_session()
                if cause.is_terminal:
                    LOGGER.error("Logged out from the network; not reconnecting. Pair again to resume.")
                    self._halted = True
                    return cause
                delay = self._backoff.next_delay()
                LOGGER.warning(
                    "Connection closed (%s); reconnecting in %.1fs (attempt %s)",
                    cause.name.lower(),
                    delay,
                    self._backoff.attempts,
                )
                await self._sleep(delay)
        finally:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer

    async def _run_session(self) -> CloseCause:
        self._generation += 1
        result = await self._bootstrapper.bootstrap()
        LOGGER.info("Credential source: %s", result.source.value)
        if not result.ready:
            LOGGER.warning("No stored session; the engine will request interactive pairing")

        dispatcher = EventDispatcher(name=f"session-{self._generation}")
        handle = SessionHandle(self._generation, dispatcher)
        self._wire(handle)
        self._current = handle

        options = ConnectOptions(credentials_path=self._store.path, pairing_required=not result.ready)
        try:
            connection = await self._engine.connect(options, self._listener(handle))
        except Exception:
            LOGGER.exception("Engine failed to connect")
            handle.mark_closed(CloseCause.CONNECT_FAILED)
            await dispatcher.close()
            return CloseCause.CONNECT_FAILED

        handle.attach(connection)
        dispatcher.start()
        try:
            return await handle.wait_closed()
        finally:
            await dispatcher.close()
            # Pending likes and other deferred work still hold this connection.
            if self._background_tasks is not None:
                await self._background_tasks.cancel_all()
            try:
                await connection.close()
            except Exception:
                LOGGER.debug("Closing session %s raised", handle.generation, exc_info=True)

    def _listener(self, handle: SessionHandle) -> EventListener:
        def on_event(category: str, payload: Any) -> None:
            if category == CONNECTION_UPDATE:
                update = decode_connection_update(payload)
                self._apply_update(handle, update)
                handle.dispatcher.publish(category, update)
            elif category == MESSAGES_UPSERT:
                handle.dispatcher.publish(category, decode_batch(payload))
            else:
                handle.dispatcher.publish(category, payload)

        return on_event

    def _apply_update(self, handle: SessionHandle, update: ConnectionUpdate) -> None:
        """State changes are applied synchronously so a close is never queued behind open work."""

        if update.pairing_code and self._on_pairing_code is not None:
            try:
                self._on_pairing_code(update.pairing_code)
            except Exception:
                LOGGER.exception("Could not render pairing code")
        if update.state is SessionStatus.CONNECTING:
            LOGGER.info("Connecting...")
        elif update.state is SessionStatus.OPEN:
            handle.mark_open()
            self._backoff.reset()
            LOGGER.info("Connected as %s", handle.identity or "unknown")
        elif update.state is SessionStatus.CLOSED:
            cause = update.close_cause or CloseCause.UNKNOWN
            if handle.mark_closed(cause):
                LOGGER.info("Session %s closed: %s", handle.generation, cause.name.lower())

    def _wire(self, handle: SessionHandle) -> None:
        dispatcher = handle.dispatcher

        async def on_connection_update(update: ConnectionUpdate) -> None:
            if update.state is SessionStatus.OPEN:
                await self._on_open(handle)

        dispatcher.subscribe(CONNECTION_UPDATE, on_connection_update)
        dispatcher.subscribe(CREDS_UPDATE, self._on_creds_update)
        for handler in self._message_handlers:
            dispatcher.subscribe(MESSAGES_UPSERT, _bind(handler, handle))
        for category, handlers in self._plugins.items():
            for handler in handlers:
                dispatcher.subscribe(category, _bind_raw(handler, handle, category))

    async def _on_open(self, handle: SessionHandle) -> None:
        first = self._first_open.take()
        handle.is_first_open = first
        if first:
            LOGGER.info("Initial connection established")
            await self._sleep(self._config.settle_seconds)
        else:
            LOGGER.info("Connection re-established")
        await self._membership_check(handle)
        if self._announcer is not None:
            await self._announcer.announce(handle.connection)

    async def _on_creds_update(self, payload: Any) -> None:
        if isinstance(payload, (bytes, str)):
            data = payload
        elif isinstance(payload, dict):
            data = json.dumps(merge_credentials(self._stored_credentials(), payload))
        else:
            serialize = getattr(self._engine, "serialize_credentials", None)
            if serialize is None:
                LOGGER.error(
                    "Engine sent %s credentials but has no serialize_credentials(); not saved",
                    type(payload).__name__,
                )
                return
            data = serialize(payload)
        self._store.write(data)
        LOGGER.debug("Credentials updated")

    def _stored_credentials(self) -> dict:
        if not self._store.exists():
            return {}
        try:
            stored = json.loads(self._store.read())
        except ValueError:
            LOGGER.warning("Credential file %s is not JSON; replacing it", self._store.path)
            return {}
        return stored if isinstance(stored, dict) else {}

    async def _membership_check(self, handle: SessionHandle) -> None:
        try:
            await self._reconciler.reconcile(handle.connection)
        except Exception:
            # Already logged by the reconciler; never fatal here.
            LOGGER.warning("Membership check did not complete for session %s", handle.generation)

    async def scheduled_membership_check(self) -> bool:
        """One timer tick; returns whether a check ran."""

        handle = self._current
        if handle is None or handle.status is not SessionStatus.OPEN:
            LOGGER.warning("Scheduled membership check skipped: no open session")
            return False
        LOGGER.info("Running scheduled membership check")
        await self._membership_check(handle)
        return True

    async def _membership_timer(self) -> None:
        while True:
            await self._timer_sleep(self._config.membership_interval_seconds)
            await self.scheduled_membership_check()


def merge_credentials(stored: dict, delta: dict) -> dict:
    """Apply a partial credential update on top of the stored credentials."""

    merged = dict(stored)
    for key, value in delta.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_credentials(current, value)
        else:
            merged[key] = value
    return merged


def _bind(handler: FeatureHandler, handle: SessionHandle) -> Callable[[Any], Awaitable[None]]:
    async def run(batch: ReceivedBatch) -> None:
        await handler(handle.connection, batch)

    run.__qualname__ = getattr(handler, "__qualname__", repr(handler))
    return run


def _bind_raw(handler: PluginHandler, handle: SessionHandle, category: str) -> Callable[[Any], Awaitable[None]]:
    async def run(payload: Any) -> None:
        if category == MESSAGES_UPSERT and isinstance(payload, ReceivedBatch):
            payload = payload.raw
        await handler(handle.connection, payload)

    run.__qualname__ = getattr(handler, "__qualname__", repr(handler))
    return run
