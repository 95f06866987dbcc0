from __future__ import annotations

import logging

from geotrack.services.prefix_cache import PrefixCache
from geotrack.services.store import (
    LocationGeohashRow,
    ReferenceMatch,
    ReferenceTable,
    ResolutionStore,
)
from geotrack.utils.geohash import ancestors


logger = logging.getLogger(__name__)


# Ancestor lengths sent to the store on a cache miss, most specific first.
PROBE_LENGTHS = (8, 7, 6, 5, 4, 3, 2)

# Shortest prefix tried when searching for the largest empty cell.
MIN_EMPTY_PREFIX_LENGTH = 2


def _best_location_match(
    rows: list[LocationGeohashRow], candidates: list[str]
) -> ReferenceMatch | None:
    wanted = set(candidates)
    best: LocationGeohashRow | None = None
    for row in rows:
        if row.prefix not in wanted:
            continue
        if best is None or len(row.prefix) > len(best.prefix):
            best = row
    if best is None:
        return None
    return ReferenceMatch(region_id=best.location_id, prefix=best.prefix)


class GeohashResolver:
    """Resolve a geohash to city/country/named-location ids.

    Each resolution consults its prefix cache first and only falls back to the
    store on a full miss. Store hits are cached under the prefix the store
    reported; store misses are cached negative under the largest cell that has
    no reference rows at all. Store errors propagate to the caller.
    """

    def __init__(
        self,
        store: ResolutionStore,
        *,
        city_cache: PrefixCache,
        country_cache: PrefixCache,
        location_cache: PrefixCache,
    ) -> None:
        self._store = store
        self.city_cache = city_cache
        self.country_cache = country_cache
        self.location_cache = location_cache

    async def resolve_city(self, geohash: str) -> int | None:
        return await self._resolve(ReferenceTable.CITY, self.city_cache, geohash)

    async def resolve_country(self, geohash: str) -> int | None:
        return await self._resolve(ReferenceTable.COUNTRY, self.country_cache, geohash)

    async def resolve_location(self, user_id: int, geohash: str) -> int | None:
        return await self._resolve(
            ReferenceTable.LOCATION, self.location_cache, geohash, user_id=user_id
        )

    async def find_largest_empty_prefix(
        self, table: ReferenceTable, geohash: str, *, user_id: int | None = None
    ) -> str:
        """Return the shortest prefix of geohash that no reference row starts with.

        That prefix is the largest cell provably free of matches. If every probed
        prefix still has rows beneath it, the full geohash is returned.
        """

        for n in range(MIN_EMPTY_PREFIX_LENGTH, len(geohash)):
            prefix = geohash[:n]
            if not await self._store.probe_prefix_exists(table, prefix, user_id=user_id):
                return prefix
        return geohash

    async def _resolve(
        self,
        table: ReferenceTable,
        cache: PrefixCache,
        geohash: str,
        *,
        user_id: int | None = None,
    ) -> int | None:
        cached = cache.lookup(geohash, scope=user_id)
        if cached is not None:
            logger.debug(
                "Cache hit (cache=%s geohash=%s prefix=%s region_id=%s)",
                cache.name,
                geohash,
                cached.prefix,
                cached.region_id,
            )
            return cached.region_id

        logger.debug("Cache miss (cache=%s geohash=%s)", cache.name, geohash)

        candidates = ancestors(geohash, PROBE_LENGTHS)
        match = await self._search(table, candidates, user_id=user_id)

        if match is None:
            empty = await self.find_largest_empty_prefix(table, geohash, user_id=user_id)
            cache.record_negative(empty, scope=user_id)
            logger.info(
                "%s not found, largest empty parent %s (user_id=%s)",
                table.value.capitalize(),
                empty,
                user_id,
            )
            return None

        cache.record_positive(match.prefix, match.region_id, scope=user_id)
        logger.info(
            "%s %s found (prefix=%s user_id=%s)",
            table.value.capitalize(),
            match.region_id,
            match.prefix,
            user_id,
        )
        return match.region_id

    async def _search(
        self,
        table: ReferenceTable,
        candidates: list[str],
        *,
        user_id: int | None,
    ) -> ReferenceMatch | None:
        if table is ReferenceTable.LOCATION:
            if user_id is None:
                raise ValueError("user_id is required for location resolution")
            rows = await self._store.query_location_rows(user_id)
            return _best_location_match(rows, candidates)
        return await self._store.query_reference_rows(table, candidates)
