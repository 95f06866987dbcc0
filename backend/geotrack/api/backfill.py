from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from geotrack.core.errors import APIError
from geotrack.tasks.backfill import BACKFILL_TASKS


router = APIRouter(prefix="/v1/backfill", tags=["backfill"])


logger = logging.getLogger(__name__)


class BackfillResponse(BaseModel):
    kind: str
    region_id: int
    task_id: str | None


@router.post("/{kind}/{region_id}", response_model=BackfillResponse, status_code=202)
def start_backfill(kind: str, region_id: int) -> BackfillResponse:
    """Queue a sweep that stamps region_id on stored fixes inside the region."""

    task = BACKFILL_TASKS.get(kind)
    if task is None:
        raise APIError(
            code="BACKFILL_KIND_INVALID",
            message=f"Unsupported backfill kind: {kind!r}",
            status_code=400,
            details={"allowed": sorted(BACKFILL_TASKS)},
        )

    result = task.delay(region_id)
    logger.info(
        "Backfill queued (kind=%s region_id=%s task_id=%s)", kind, region_id, result.id
    )
    return BackfillResponse(kind=kind, region_id=region_id, task_id=result.id)
