from __future__ import annotations

import datetime as dt
import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geotrack.db.base import utcnow
from geotrack.models.location import Location, LocationGeohash
from geotrack.models.reference_geohash import CityGeohash, CountryGeohash
from geotrack.models.tracking import Tracking


logger = logging.getLogger(__name__)


class ReferenceTable(str, enum.Enum):
    CITY = "city"
    COUNTRY = "country"
    LOCATION = "location"


@dataclass(frozen=True)
class ReferenceMatch:
    region_id: int
    prefix: str


@dataclass(frozen=True)
class LocationGeohashRow:
    user_id: int
    location_id: int
    prefix: str


class ResolutionStore(Protocol):
    """Store operations the resolver and the enrichment worker depend on."""

    async def query_reference_rows(
        self, table: ReferenceTable, prefixes: Iterable[str]
    ) -> ReferenceMatch | None: ...

    async def query_location_rows(
        self, user_id: int | None = None
    ) -> list[LocationGeohashRow]: ...

    async def probe_prefix_exists(
        self, table: ReferenceTable, prefix: str, *, user_id: int | None = None
    ) -> bool: ...

    async def update_fix(
        self,
        fix_id: int,
        *,
        city_id: int | None = None,
        country_id: int | None = None,
        location_id: int | None = None,
        processed_at: dt.datetime,
    ) -> None: ...


def _reference_columns(table: ReferenceTable) -> tuple[Any, Any]:
    if table is ReferenceTable.CITY:
        return CityGeohash.city_id, CityGeohash.geohash
    if table is ReferenceTable.COUNTRY:
        return CountryGeohash.country_id, CountryGeohash.geohash
    raise ValueError(f"Not a city/country reference table: {table!r}")


def _starts_with(column: Any, prefix: str) -> Any:
    # Geohash alphabet has no LIKE wildcards, so a plain prefix pattern is exact.
    return column.like(f"{prefix}%")


class TrackingStore:
    """Relational store for fixes and geohash reference tables.

    Every operation opens its own session; no connection is held between calls.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def insert_fix(self, fields: dict[str, Any]) -> int:
        async with self._sessionmaker() as session:
            row = Tracking(**fields)
            session.add(row)
            await session.commit()
            return int(row.id)

    async def get_fix(self, fix_id: int) -> Tracking | None:
        async with self._sessionmaker() as session:
            return await session.get(Tracking, fix_id)

    async def latest_fix(self, user_id: int) -> Tracking | None:
        stmt = (
            sa.select(Tracking)
            .where(Tracking.user_id == user_id)
            .order_by(Tracking.timestamp.desc(), Tracking.id.desc())
            .limit(1)
        )
        async with self._sessionmaker() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def query_reference_rows(
        self, table: ReferenceTable, prefixes: Iterable[str]
    ) -> ReferenceMatch | None:
        """Return the reference row stored under one of prefixes, longest first."""

        candidates = sorted(set(prefixes))
        if not candidates:
            return None

        id_col, geohash_col = _reference_columns(table)
        stmt = (
            sa.select(id_col, geohash_col)
            .where(geohash_col.in_(candidates))
            .order_by(sa.func.length(geohash_col).desc())
            .limit(1)
        )
        async with self._sessionmaker() as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return ReferenceMatch(region_id=int(row[0]), prefix=str(row[1]))

    async def query_location_rows(
        self, user_id: int | None = None
    ) -> list[LocationGeohashRow]:
        stmt = sa.select(
            Location.user_id, LocationGeohash.location_id, LocationGeohash.geohash
        ).join(Location, LocationGeohash.location_id == Location.id)
        if user_id is not None:
            stmt = stmt.where(Location.user_id == user_id)

        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
        return [
            LocationGeohashRow(
                user_id=int(r[0]), location_id=int(r[1]), prefix=str(r[2])
            )
            for r in rows
        ]

    async def probe_prefix_exists(
        self, table: ReferenceTable, prefix: str, *, user_id: int | None = None
    ) -> bool:
        """True when at least one reference row's geohash starts with prefix."""

        if table is ReferenceTable.LOCATION:
            if user_id is None:
                raise ValueError("user_id is required for location probes")
            stmt = (
                sa.select(LocationGeohash.id)
                .join(Location, LocationGeohash.location_id == Location.id)
                .where(
                    Location.user_id == user_id,
                    _starts_with(LocationGeohash.geohash, prefix),
                )
                .limit(1)
            )
        else:
            _, geohash_col = _reference_columns(table)
            stmt = sa.select(geohash_col).where(_starts_with(geohash_col, prefix)).limit(1)

        async with self._sessionmaker() as session:
            return (await session.execute(stmt)).first() is not None

    async def update_fix(
        self,
        fix_id: int,
        *,
        city_id: int | None = None,
        country_id: int | None = None,
        location_id: int | None = None,
        processed_at: dt.datetime,
    ) -> None:
        # Only resolved fields are written; unresolved ones keep their stored value.
        values: dict[str, Any] = {"processed_at": processed_at}
        if city_id is not None:
            values["city_id"] = city_id
        if country_id is not None:
            values["country_id"] = country_id
        if location_id is not None:
            values["location_id"] = location_id

        stmt = sa.update(Tracking).where(Tracking.id == fix_id).values(**values)
        async with self._sessionmaker() as session:
            await session.execute(stmt)
            await session.commit()

    async def backfill_city(self, city_id: int) -> int:
        return await self._backfill_region(
            ReferenceTable.CITY, city_id, target=Tracking.city_id
        )

    async def backfill_country(self, country_id: int) -> int:
        return await self._backfill_region(
            ReferenceTable.COUNTRY, country_id, target=Tracking.country_id
        )

    async def _backfill_region(
        self, table: ReferenceTable, region_id: int, *, target: Any
    ) -> int:
        id_col, geohash_col = _reference_columns(table)
        updated = 0
        async with self._sessionmaker() as session:
            prefixes = (
                await session.execute(sa.select(geohash_col).where(id_col == region_id))
            ).scalars().all()
            for prefix in prefixes:
                result = await session.execute(
                    sa.update(Tracking)
                    .where(_starts_with(Tracking.geohash, prefix), target.is_(None))
                    .values({target.key: region_id, "processed_at": utcnow()})
                )
                logger.info(
                    "Backfill %s=%s prefix=%s updated=%s",
                    table.value,
                    region_id,
                    prefix,
                    result.rowcount,
                )
                updated += int(result.rowcount or 0)
            await session.commit()
        return updated

    async def backfill_location(self, location_id: int) -> int:
        stmt = (
            sa.select(Location.user_id, LocationGeohash.geohash)
            .join(Location, LocationGeohash.location_id == Location.id)
            .where(LocationGeohash.location_id == location_id)
        )
        updated = 0
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
            for owner_id, prefix in rows:
                # Only fixes the worker never processed; a processed fix may have
                # resolved to another location on purpose.
                result = await session.execute(
                    sa.update(Tracking)
                    .where(
                        _starts_with(Tracking.geohash, prefix),
                        Tracking.user_id == owner_id,
                        Tracking.processed_at.is_(None),
                    )
                    .values(location_id=location_id, processed_at=utcnow())
                )
                logger.info(
                    "Backfill location=%s prefix=%s updated=%s",
                    location_id,
                    prefix,
                    result.rowcount,
                )
                updated += int(result.rowcount or 0)
            await session.commit()
        return updated
