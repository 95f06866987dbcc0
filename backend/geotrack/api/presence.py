from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from geotrack.api.deps import get_presence
from geotrack.core.errors import not_found
from geotrack.services.ingest import isoformat_z
from geotrack.services.presence import PresenceTracker


router = APIRouter(prefix="/v1/presence", tags=["presence"])


class PresenceOut(BaseModel):
    user_id: int
    location_id: int | None
    since: str


@router.get("/{user_id}", response_model=PresenceOut)
async def get_presence_state(
    user_id: int,
    presence: PresenceTracker = Depends(get_presence),
) -> PresenceOut:
    state = presence.current(user_id)
    if state is None:
        raise not_found(
            "PRESENCE_UNKNOWN", f"No presence determination for user {user_id}"
        )
    return PresenceOut(
        user_id=user_id,
        location_id=state.location_id,
        since=isoformat_z(state.timestamp) or "",
    )
