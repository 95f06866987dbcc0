from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from geotrack.services.enrichment import EnrichmentWorker, PendingWork
from geotrack.services.prefix_cache import PrefixCache
from geotrack.services.presence import PresenceTracker
from geotrack.services.resolver import GeohashResolver


FIXED_NOW = dt.datetime(2026, 2, 1, 8, tzinfo=dt.timezone.utc)


def _t(seconds: int) -> dt.datetime:
    return dt.datetime(2026, 1, 30, 12, tzinfo=dt.timezone.utc) + dt.timedelta(
        seconds=seconds
    )


def _worker(store, *, interval_s: float = 0.01) -> EnrichmentWorker:  # noqa: ANN001
    resolver = GeohashResolver(
        store,
        city_cache=PrefixCache("city"),
        country_cache=PrefixCache("country"),
        location_cache=PrefixCache("location"),
    )
    return EnrichmentWorker(
        store,
        resolver,
        PresenceTracker(),
        interval_s=interval_s,
        clock=lambda: FIXED_NOW,
    )


def test_warm_up_loads_location_rows_per_user(fake_store_factory) -> None:
    store = fake_store_factory(locations=[(42, 7, "u2qab"), (43, 8, "u2qab")])

    async def _run() -> None:
        worker = _worker(store)
        assert await worker.warm_up() == 2
        cache = worker._resolver.location_cache  # noqa: SLF001
        assert cache.lookup("u2qab1234", scope=42).region_id == 7
        assert cache.lookup("u2qab1234", scope=43).region_id == 8

        # Warmed entries answer without the per-resolution store lookup.
        before = store.calls["query_location_rows"]
        assert await worker._resolver.resolve_location(42, "u2qab0000") == 7  # noqa: SLF001
        assert store.calls["query_location_rows"] == before

    asyncio.run(_run())


def test_processing_before_warm_up_is_refused(fake_store_factory) -> None:
    store = fake_store_factory()

    async def _run() -> None:
        worker = _worker(store)
        with pytest.raises(RuntimeError):
            await worker.process_item(PendingWork(1, "u2qab1234", 42, _t(0)))

    asyncio.run(_run())


def test_drain_before_warm_up_keeps_items_queued(fake_store_factory) -> None:
    store = fake_store_factory(cities={"u2q": 10})

    async def _run() -> None:
        worker = _worker(store)
        worker.enqueue(PendingWork(1, "u2qab1234", 42, _t(0)))

        assert await worker.drain() == 0
        assert worker.queue_depth == 1

        await worker.warm_up()
        assert await worker.drain() == 1
        assert worker.queue_depth == 0

    asyncio.run(_run())

    assert [u["fix_id"] for u in store.updates] == [1]
    assert store.updates[0]["city_id"] == 10


def test_partial_resolution_writes_only_resolved_fields(fake_store_factory) -> None:
    store = fake_store_factory(countries={"u2": 191})

    async def _run() -> None:
        worker = _worker(store)
        await worker.warm_up()
        result = await worker.process_item(PendingWork(5, "u2qab1234", 42, _t(0)))
        assert result is not None
        assert (result.city_id, result.country_id, result.location_id) == (None, 191, None)
        assert result.written is True

    asyncio.run(_run())

    assert store.updates == [
        {
            "fix_id": 5,
            "city_id": None,
            "country_id": 191,
            "location_id": None,
            "processed_at": FIXED_NOW,
        }
    ]


def test_nothing_resolved_means_no_store_write(fake_store_factory) -> None:
    store = fake_store_factory(cities={"v1": 1}, countries={"zz": 2})

    async def _run() -> None:
        worker = _worker(store)
        await worker.warm_up()
        result = await worker.process_item(PendingWork(9, "u33dbfk1", 42, _t(0)))
        assert result is not None
        assert result.written is False
        assert worker._resolver.city_cache.lookup("u33dbfk1").prefix == "u3"  # noqa: SLF001
        assert worker._resolver.country_cache.lookup("u33dbfk1").prefix == "u3"  # noqa: SLF001

    asyncio.run(_run())

    assert store.calls["update_fix"] == 0


def test_store_failure_drops_item_and_continues(fake_store_factory) -> None:
    store = fake_store_factory(cities={"u2q": 10})
    store.fail_on.add("update_fix")

    async def _run() -> None:
        worker = _worker(store)
        await worker.warm_up()
        worker.enqueue(PendingWork(1, "u2qab1234", 42, _t(0)))
        worker.enqueue(PendingWork(2, "u2qab5678", 42, _t(1)))

        assert await worker.drain() == 2
        assert worker.queue_depth == 0

    asyncio.run(_run())

    # Both attempted once, neither re-queued.
    assert store.calls["update_fix"] == 2
    assert store.updates == []


def test_presence_transitions_follow_resolved_locations(fake_store_factory) -> None:
    store = fake_store_factory(locations=[(42, 7, "u2qab")])

    async def _run() -> list[object]:
        worker = _worker(store)
        await worker.warm_up()
        results = [
            await worker.process_item(PendingWork(1, "u2qab1234", 42, _t(10))),
            await worker.process_item(PendingWork(2, "u2qab1299", 42, _t(20))),
            await worker.process_item(PendingWork(3, "u2zzz0000", 42, _t(30))),
        ]
        return [r.transition for r in results]

    first, second, third = asyncio.run(_run())
    assert first is None
    assert second is None
    assert third is not None
    assert third.kind == "exited" and third.location_id == 7


def test_drain_processes_items_in_fifo_order(fake_store_factory) -> None:
    store = fake_store_factory(cities={"u2": 1})

    async def _run() -> None:
        worker = _worker(store)
        await worker.warm_up()
        for fix_id in (3, 1, 2):
            worker.enqueue(PendingWork(fix_id, "u2qab1234", 42, _t(fix_id)))
        await worker.drain()

    asyncio.run(_run())

    assert [u["fix_id"] for u in store.updates] == [3, 1, 2]


def test_run_drains_queue_and_stops_promptly(fake_store_factory) -> None:
    store = fake_store_factory(cities={"u2": 1})

    async def _run() -> None:
        # Long interval: stop() must interrupt the sleep.
        worker = _worker(store, interval_s=60.0)
        worker.enqueue(PendingWork(1, "u2qab1234", 42, _t(0)))
        task = asyncio.create_task(worker.run())

        for _ in range(100):
            if store.updates:
                break
            await asyncio.sleep(0.01)

        worker.stop()
        await asyncio.wait_for(task, timeout=2.0)

    asyncio.run(_run())

    assert [u["fix_id"] for u in store.updates] == [1]


def test_stop_during_drain_finishes_current_item_only(fake_store_factory) -> None:
    store = fake_store_factory(cities={"u2": 1})
    update_fix = store.update_fix

    async def _run() -> EnrichmentWorker:
        worker = _worker(store)

        async def _update_then_stop(fix_id: int, **fields: object) -> None:
            worker.stop()
            await update_fix(fix_id, **fields)

        store.update_fix = _update_then_stop
        await worker.warm_up()
        for fix_id in (1, 2, 3):
            worker.enqueue(PendingWork(fix_id, "u2qab1234", 42, _t(fix_id)))

        assert await worker.drain() == 1
        return worker

    worker = asyncio.run(_run())

    assert worker.queue_depth == 2
    # The in-flight item still completed its write.
    assert [u["fix_id"] for u in store.updates] == [1]
