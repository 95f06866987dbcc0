from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Coroutine, TypeVar

from geotrack.db.session import get_sessionmaker
from geotrack.services.store import TrackingStore
from geotrack.tasks.celery_app import celery_app


logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _run_coro_sync(coro_factory: Callable[[], Coroutine[Any, Any, _T]]) -> _T:
    """Run an async coroutine from a sync context.

    In Celery eager mode, tasks may be invoked from within an already-running
    event loop (e.g. FastAPI). `asyncio.run()` would crash there, so we fall
    back to executing the coroutine on a one-off thread.
    """

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro_factory())

    with ThreadPoolExecutor(max_workers=1) as ex:
        fut = ex.submit(lambda: asyncio.run(coro_factory()))
        return fut.result()


def _sweep(
    kind: str, region_id: int, op: Callable[[TrackingStore, int], Awaitable[int]]
) -> dict[str, int]:
    async def _run() -> int:
        return await op(TrackingStore(get_sessionmaker()), region_id)

    logger.info("Backfill started (kind=%s region_id=%s)", kind, region_id)
    updated = _run_coro_sync(_run)
    logger.info(
        "Backfill finished (kind=%s region_id=%s updated=%s)", kind, region_id, updated
    )
    return {"updated": updated}


@celery_app.task(name="geotrack.tasks.backfill.backfill_city_task")
def backfill_city_task(city_id: int) -> dict[str, int]:
    """Stamp city_id on stored fixes under any of the city's geohash prefixes.

    Only fixes whose city_id is still null are touched.
    """

    return _sweep("city", int(city_id), TrackingStore.backfill_city)


@celery_app.task(name="geotrack.tasks.backfill.backfill_country_task")
def backfill_country_task(country_id: int) -> dict[str, int]:
    return _sweep("country", int(country_id), TrackingStore.backfill_country)


@celery_app.task(name="geotrack.tasks.backfill.backfill_location_task")
def backfill_location_task(location_id: int) -> dict[str, int]:
    """Stamp location_id on the owner's never-processed fixes inside the location."""

    return _sweep("location", int(location_id), TrackingStore.backfill_location)


BACKFILL_TASKS = {
    "city": backfill_city_task,
    "country": backfill_country_task,
    "location": backfill_location_task,
}
