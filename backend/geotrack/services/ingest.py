from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from pydantic import BaseModel, Field

from geotrack.models.tracking import Tracking
from geotrack.services.broadcast import TrackingBroadcaster
from geotrack.services.enrichment import EnrichmentWorker, PendingWork
from geotrack.services.store import TrackingStore
from geotrack.utils.geohash import encode


logger = logging.getLogger(__name__)


class TrackingIn(BaseModel):
    user_id: int
    timestamp: dt.datetime

    # WGS84 required.
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    accuracy: float | None = Field(default=None, gt=0)
    altitude: float | None = None
    speed: float | None = Field(default=None, ge=0)


def normalize_to_utc(value: dt.datetime) -> dt.datetime:
    # Store tz-aware UTC timestamps everywhere.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def isoformat_z(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    s = normalize_to_utc(value).isoformat()
    if s.endswith("+00:00"):
        return s.removesuffix("+00:00") + "Z"
    return s


def tracking_to_dict(row: Tracking) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "timestamp": isoformat_z(row.timestamp),
        "latitude": row.latitude,
        "longitude": row.longitude,
        "accuracy": row.accuracy,
        "altitude": row.altitude,
        "speed": row.speed,
        "geohash": row.geohash,
        "city_id": row.city_id,
        "country_id": row.country_id,
        "location_id": row.location_id,
        "processed_at": isoformat_z(row.processed_at),
    }


async def ingest_tracking(
    item: TrackingIn,
    *,
    store: TrackingStore,
    worker: EnrichmentWorker | None,
    broadcaster: TrackingBroadcaster,
    precision: int,
) -> tuple[int, str]:
    """Persist a fix, hand it to the enrichment worker and broadcast it.

    Returns (id, geohash). Enrichment happens later; nothing here waits on it.
    """

    timestamp = normalize_to_utc(item.timestamp)
    geohash = encode(item.latitude, item.longitude, precision=precision)
    fix_id = await store.insert_fix(
        {
            "user_id": item.user_id,
            "timestamp": timestamp,
            "latitude": item.latitude,
            "longitude": item.longitude,
            "accuracy": item.accuracy,
            "altitude": item.altitude,
            "speed": item.speed,
            "geohash": geohash,
        }
    )

    if worker is not None:
        worker.enqueue(
            PendingWork(
                fix_id=fix_id,
                geohash=geohash,
                user_id=item.user_id,
                timestamp=timestamp,
            )
        )

    logger.info("Tracking %s stored, broadcasting (user_id=%s)", fix_id, item.user_id)
    await broadcaster.broadcast(
        {
            "id": fix_id,
            "user_id": item.user_id,
            "timestamp": isoformat_z(timestamp),
            "latitude": item.latitude,
            "longitude": item.longitude,
            "accuracy": item.accuracy,
            "altitude": item.altitude,
            "speed": item.speed,
            "geohash": geohash,
        }
    )
    return fix_id, geohash
