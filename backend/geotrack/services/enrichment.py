from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Callable
from dataclasses import dataclass

from geotrack.db.base import utcnow
from geotrack.services.presence import PresenceTracker, PresenceTransition
from geotrack.services.resolver import GeohashResolver
from geotrack.services.store import ResolutionStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingWork:
    """Lightweight reference to a persisted fix awaiting enrichment."""

    fix_id: int
    geohash: str
    user_id: int
    timestamp: dt.datetime


@dataclass(frozen=True)
class EnrichmentResult:
    city_id: int | None
    country_id: int | None
    location_id: int | None
    transition: PresenceTransition | None
    written: bool


class EnrichmentWorker:
    """Background worker that resolves queued fixes in periodic batches.

    Lifecycle:
    - `warm_up()` loads every named-location geohash into the location cache.
    - `run()` warms up (unless already done), then drains the queue, sleeps `interval_s`, and repeats
      until `stop()` is called.

    Enrichment is at-most-once: an item whose resolution or update raises is
    logged and dropped, never re-queued.
    """

    def __init__(
        self,
        store: ResolutionStore,
        resolver: GeohashResolver,
        presence: PresenceTracker,
        *,
        interval_s: float = 1.0,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._presence = presence
        self._interval_s = interval_s
        self._clock = clock
        self._queue: asyncio.Queue[PendingWork] = asyncio.Queue()
        self._stopping = asyncio.Event()
        self._warmed_up = False

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def enqueue(self, item: PendingWork) -> None:
        # Unbounded queue: never blocks the ingest path.
        self._queue.put_nowait(item)

    def stop(self) -> None:
        self._stopping.set()

    async def warm_up(self) -> int:
        rows = await self._store.query_location_rows()
        cache = self._resolver.location_cache
        for row in rows:
            cache.record_positive(row.prefix, row.location_id, scope=row.user_id)
        self._warmed_up = True
        logger.info("Loaded %s location geohashes", len(rows))
        return len(rows)

    async def run(self) -> None:
        if not self._warmed_up:
            logger.info("Enrichment worker starting - loading caches...")
            await self.warm_up()
        logger.info("Enrichment worker initialized - starting background processing")

        while not self._stopping.is_set():
            await self.drain()
            if self._stopping.is_set():
                break
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                pass

        logger.info("Enrichment worker stopped (queue_depth=%s)", self.queue_depth)

    async def drain(self) -> int:
        """Process queued items in FIFO order until empty; return how many ran."""

        processed = 0
        if not self._warmed_up:
            # Deferred: items stay queued until the location cache is loaded.
            return processed
        while not self._stopping.is_set():
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self.process_item(item)
            processed += 1
        return processed

    async def process_item(self, item: PendingWork) -> EnrichmentResult | None:
        if not self._warmed_up:
            raise RuntimeError("location cache must be warmed up before processing")

        try:
            city_id = await self._resolver.resolve_city(item.geohash)
            country_id = await self._resolver.resolve_country(item.geohash)
            location_id = await self._resolver.resolve_location(
                item.user_id, item.geohash
            )

            written = False
            if city_id is not None or country_id is not None or location_id is not None:
                await self._store.update_fix(
                    item.fix_id,
                    city_id=city_id,
                    country_id=country_id,
                    location_id=location_id,
                    processed_at=self._clock(),
                )
                written = True
                logger.info(
                    "Tracking %s resolved (city_id=%s country_id=%s location_id=%s "
                    "queue_depth=%s)",
                    item.fix_id,
                    city_id,
                    country_id,
                    location_id,
                    self.queue_depth,
                )

            transition = self._presence.observe(
                item.user_id, location_id, item.timestamp
            )
            if transition is not None:
                logger.info(
                    "User %s %s location %s",
                    transition.user_id,
                    transition.kind,
                    transition.location_id,
                )
        except Exception:
            logger.error(
                "Error processing tracking (fix_id=%s user_id=%s geohash=%s)",
                item.fix_id,
                item.user_id,
                item.geohash,
                exc_info=True,
            )
            return None

        return EnrichmentResult(
            city_id=city_id,
            country_id=country_id,
            location_id=location_id,
            transition=transition,
            written=written,
        )
