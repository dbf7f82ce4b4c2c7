from __future__ import annotations

import asyncio

import pytest

from core.dispatch import BackgroundTasks, EventDispatcher


def test_handlers_run_in_registration_order_per_event() -> None:
    calls: list[tuple[str, int]] = []

    async def first(payload: int) -> None:
        await asyncio.sleep(0)
        calls.append(("first", payload))

    async def second(payload: int) -> None:
        calls.append(("second", payload))

    async def _run() -> None:
        dispatcher = EventDispatcher()
        dispatcher.subscribe("messages.upsert", first)
        dispatcher.subscribe("messages.upsert", second)
        dispatcher.start()
        dispatcher.publish("messages.upsert", 1)
        dispatcher.publish("messages.upsert", 2)
        await dispatcher.join()
        await dispatcher.close()

    asyncio.run(_run())

    assert calls == [("first", 1), ("second", 1), ("first", 2), ("second", 2)]


def test_failing_handler_does_not_stop_the_next() -> None:
    calls: list[str] = []

    async def broken(payload) -> None:
        raise ValueError("bad payload")

    async def healthy(payload) -> None:
        calls.append(payload)

    async def _run() -> None:
        dispatcher = EventDispatcher()
        dispatcher.subscribe("call", broken)
        dispatcher.subscribe("call", healthy)
        dispatcher.start()
        dispatcher.publish("call", "ring")
        await dispatcher.join()
        await dispatcher.close()

    asyncio.run(_run())

    assert calls == ["ring"]


def test_events_before_start_are_kept_and_after_close_dropped() -> None:
    calls: list[str] = []

    async def handler(payload: str) -> None:
        calls.append(payload)

    async def _run() -> tuple[bool, bool, bool]:
        dispatcher = EventDispatcher()
        dispatcher.subscribe("creds.update", handler)
        early = dispatcher.publish("creds.update", "early")
        unknown = dispatcher.publish("presence.update", "ignored")
        dispatcher.start()
        await dispatcher.join()
        await dispatcher.close()
        late = dispatcher.publish("creds.update", "late")
        return early, unknown, late

    early, unknown, late = asyncio.run(_run())

    assert (early, unknown, late) == (True, False, False)
    assert calls == ["early"]


def test_subscribe_after_start_is_rejected() -> None:
    async def handler(payload) -> None:
        return None

    async def _run() -> None:
        dispatcher = EventDispatcher()
        dispatcher.subscribe("call", handler)
        dispatcher.start()
        try:
            with pytest.raises(RuntimeError):
                dispatcher.subscribe("call", handler)
        finally:
            await dispatcher.close()

    asyncio.run(_run())


def test_background_tasks_drain_and_forget_finished() -> None:
    results: list[int] = []

    async def work(value: int) -> None:
        await asyncio.sleep(0)
        results.append(value)

    async def fail() -> None:
        raise RuntimeError("lost")

    async def _run() -> int:
        tasks = BackgroundTasks()
        tasks.spawn(work(1))
        tasks.spawn(fail())
        tasks.spawn(work(2))
        await tasks.drain()
        return len(tasks)

    remaining = asyncio.run(_run())

    assert sorted(results) == [1, 2]
    assert remaining == 0
