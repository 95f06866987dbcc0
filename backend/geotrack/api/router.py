from __future__ import annotations

from fastapi import APIRouter

from geotrack.api.backfill import router as backfill_router
from geotrack.api.health import router as health_router
from geotrack.api.presence import router as presence_router
from geotrack.api.trackings import router as trackings_router


api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(trackings_router)
api_router.include_router(presence_router)
api_router.include_router(backfill_router)
