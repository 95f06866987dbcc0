from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from geotrack.api.deps import get_broadcaster, get_store, get_worker
from geotrack.core.errors import make_error_payload, not_found
from geotrack.core.settings import Settings, get_settings
from geotrack.services.broadcast import TrackingBroadcaster
from geotrack.services.enrichment import EnrichmentWorker
from geotrack.services.ingest import TrackingIn, ingest_tracking, tracking_to_dict
from geotrack.services.store import TrackingStore


router = APIRouter(prefix="/v1/trackings", tags=["trackings"])


logger = logging.getLogger(__name__)


class TrackingCreateResponse(BaseModel):
    id: int
    geohash: str


class TrackingOut(BaseModel):
    id: int
    user_id: int
    timestamp: str
    latitude: float
    longitude: float
    accuracy: float | None
    altitude: float | None
    speed: float | None
    geohash: str
    city_id: int | None
    country_id: int | None
    location_id: int | None
    processed_at: str | None


@router.post("", response_model=TrackingCreateResponse, status_code=201)
async def create_tracking(
    payload: TrackingIn,
    store: TrackingStore = Depends(get_store),
    worker: EnrichmentWorker | None = Depends(get_worker),
    broadcaster: TrackingBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> TrackingCreateResponse:
    fix_id, geohash = await ingest_tracking(
        payload,
        store=store,
        worker=worker,
        broadcaster=broadcaster,
        precision=settings.geohash_precision,
    )
    return TrackingCreateResponse(id=fix_id, geohash=geohash)


@router.get("/latest", response_model=TrackingOut)
async def latest_tracking(
    user_id: int = Query(...),
    store: TrackingStore = Depends(get_store),
) -> TrackingOut:
    row = await store.latest_fix(user_id)
    if row is None:
        raise not_found("TRACKING_NOT_FOUND", f"No tracking for user {user_id}")
    return TrackingOut(**tracking_to_dict(row))


@router.get("/{tracking_id}", response_model=TrackingOut)
async def get_tracking(
    tracking_id: int,
    store: TrackingStore = Depends(get_store),
) -> TrackingOut:
    row = await store.get_fix(tracking_id)
    if row is None:
        raise not_found("TRACKING_NOT_FOUND", f"Tracking {tracking_id} not found")
    return TrackingOut(**tracking_to_dict(row))


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(err.get("msg", "invalid") for err in exc.errors())


@router.websocket("/ws")
async def tracking_socket(websocket: WebSocket, user_id: int | None = None) -> None:
    """Live feed of fixes.

    On connect the subscriber gets the latest stored fix for `user_id` (when
    given). Every JSON fix the client sends is ingested and broadcast to all
    subscribers, the sender included.
    """

    state = websocket.app.state
    store: TrackingStore = state.store
    broadcaster: TrackingBroadcaster = state.broadcaster
    worker: EnrichmentWorker | None = getattr(state, "worker", None)
    settings = get_settings()

    await websocket.accept()
    await broadcaster.subscribe(websocket)
    try:
        if user_id is not None:
            latest = await store.latest_fix(user_id)
            if latest is not None:
                await websocket.send_json(tracking_to_dict(latest))

        while True:
            raw = await websocket.receive_text()
            try:
                item = TrackingIn.model_validate_json(raw)
            except ValidationError as exc:
                await websocket.send_json(
                    make_error_payload(
                        code="VALIDATION_ERROR",
                        message=_validation_message(exc),
                        trace_id=None,
                        details=None,
                    )
                )
                continue

            await ingest_tracking(
                item,
                store=store,
                worker=worker,
                broadcaster=broadcaster,
                precision=settings.geohash_precision,
            )
    except WebSocketDisconnect as exc:
        if exc.code not in (1000, 1001):
            logger.error("Unexpected disconnect (code=%s)", exc.code)
    finally:
        await broadcaster.unsubscribe(websocket)
