"""API route for the checkpoint CSV download."""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from checkpoints.services import CheckpointExportService
from core.api import api_route
from core.date_utils import get_current_utc_time

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/checkpoints/export", tags=["Checkpoints API"])
@api_route(logger)
async def export_checkpoints(
    checkpoint_type: str | None = Query(None, alias="checkpointType"),
    ride_id: str | None = Query(None, alias="rideId"),
    rider_id: str | None = Query(None, alias="riderId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    search: str | None = Query(None),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_order: str | None = Query(None, alias="sortOrder"),
):
    """Every matching checkpoint as CSV, without pagination."""
    filters = {
        "checkpointType": checkpoint_type,
        "rideId": ride_id,
        "riderId": rider_id,
        "startDate": start_date,
        "endDate": end_date,
        "search": search,
    }
    stream = await CheckpointExportService.stream_csv(filters, sort_by, sort_order)
    filename = f"checkpoints_{get_current_utc_time().strftime('%Y%m%d_%H%M%S')}.csv"
    return StreamingResponse(
        stream,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
