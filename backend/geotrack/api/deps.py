from __future__ import annotations

from fastapi import Request

from geotrack.services.broadcast import TrackingBroadcaster
from geotrack.services.enrichment import EnrichmentWorker
from geotrack.services.presence import PresenceTracker
from geotrack.services.store import TrackingStore


def get_store(request: Request) -> TrackingStore:
    return request.app.state.store


def get_broadcaster(request: Request) -> TrackingBroadcaster:
    return request.app.state.broadcaster


def get_presence(request: Request) -> PresenceTracker:
    return request.app.state.presence


def get_worker(request: Request) -> EnrichmentWorker | None:
    """Enrichment worker, or None when enrichment is disabled."""

    return getattr(request.app.state, "worker", None)
