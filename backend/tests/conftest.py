from __future__ import annotations

import asyncio
import datetime as dt
from collections import Counter
from collections.abc import Iterable, Iterator
from pathlib import Path
import sys
from typing import Any

import pytest
from fastapi.testclient import TestClient


# Ensure `import geotrack.*` works when pytest chooses an import mode that
# doesn't automatically add the project root to sys.path.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from geotrack.services.store import (  # noqa: E402
    LocationGeohashRow,
    ReferenceMatch,
    ReferenceTable,
)


def _reset_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Isolated sqlite DB per test.
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("GEOTRACK_DB_URL", f"sqlite+aiosqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("GEOTRACK_ENRICHMENT_INTERVAL_S", "0.05")

    # Clear settings cache and reset DB engine/sessionmaker.
    from geotrack.core.settings import get_settings

    get_settings.cache_clear()

    from geotrack.db import session as db_session

    db_session._engine = None  # noqa: SLF001
    db_session._sessionmaker = None  # noqa: SLF001

    # Import models so Base.metadata is fully populated.
    import geotrack.models  # noqa: F401

    from geotrack.db.base import Base

    async def _init_schema() -> None:
        engine = db_session.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_init_schema())


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Fresh sqlite schema; use geotrack.db.session.get_sessionmaker() to reach it."""

    _reset_db(tmp_path, monkeypatch)


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    _reset_db(tmp_path, monkeypatch)

    from geotrack.main import create_app

    app = create_app()
    # Context manager runs the lifespan, which starts the enrichment worker.
    with TestClient(app) as c:
        yield c


class FakeStore:
    """In-memory ResolutionStore that counts calls per operation."""

    def __init__(
        self,
        *,
        cities: dict[str, int] | None = None,
        countries: dict[str, int] | None = None,
        locations: Iterable[tuple[int, int, str]] = (),
    ) -> None:
        self.tables: dict[ReferenceTable, dict[str, int]] = {
            ReferenceTable.CITY: dict(cities or {}),
            ReferenceTable.COUNTRY: dict(countries or {}),
        }
        self.locations = [
            LocationGeohashRow(user_id=u, location_id=loc, prefix=p)
            for u, loc, p in locations
        ]
        self.calls: Counter[str] = Counter()
        self.updates: list[dict[str, Any]] = []
        self.fail_on: set[str] = set()

    def _hit(self, op: str) -> None:
        self.calls[op] += 1
        if op in self.fail_on:
            raise RuntimeError(f"store unavailable: {op}")

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def query_reference_rows(
        self, table: ReferenceTable, prefixes: Iterable[str]
    ) -> ReferenceMatch | None:
        self._hit("query_reference_rows")
        rows = self.tables[table]
        found = [p for p in prefixes if p in rows]
        if not found:
            return None
        best = max(found, key=len)
        return ReferenceMatch(region_id=rows[best], prefix=best)

    async def query_location_rows(
        self, user_id: int | None = None
    ) -> list[LocationGeohashRow]:
        self._hit("query_location_rows")
        return [r for r in self.locations if user_id is None or r.user_id == user_id]

    async def probe_prefix_exists(
        self, table: ReferenceTable, prefix: str, *, user_id: int | None = None
    ) -> bool:
        self._hit("probe_prefix_exists")
        if table is ReferenceTable.LOCATION:
            return any(
                r.user_id == user_id and r.prefix.startswith(prefix)
                for r in self.locations
            )
        return any(p.startswith(prefix) for p in self.tables[table])

    async def update_fix(
        self,
        fix_id: int,
        *,
        city_id: int | None = None,
        country_id: int | None = None,
        location_id: int | None = None,
        processed_at: dt.datetime,
    ) -> None:
        self._hit("update_fix")
        self.updates.append(
            {
                "fix_id": fix_id,
                "city_id": city_id,
                "country_id": country_id,
                "location_id": location_id,
                "processed_at": processed_at,
            }
        )


@pytest.fixture()
def fake_store_factory():
    return FakeStore
