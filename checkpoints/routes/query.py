"""API routes for checkpoint listings, statistics and ride details."""

import logging

from fastapi import APIRouter, Query

from checkpoints.services import CheckpointQueryService
from checkpoints.services.checkpoint_query_service import (
    DEFAULT_PAGE_LIMIT,
    DEFAULT_RECENT_LIMIT,
)
from core.api import api_route

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/checkpoints", tags=["Checkpoints API"])
@api_route(logger)
async def list_checkpoints(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_LIMIT),
    checkpoint_type: str | None = Query(None, alias="checkpointType"),
    ride_id: str | None = Query(None, alias="rideId"),
    rider_id: str | None = Query(None, alias="riderId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    search: str | None = Query(None),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_order: str | None = Query(None, alias="sortOrder"),
):
    """Paginated, filterable checkpoint listing."""
    filters = {
        "checkpointType": checkpoint_type,
        "rideId": ride_id,
        "riderId": rider_id,
        "startDate": start_date,
        "endDate": end_date,
        "search": search,
    }
    return await CheckpointQueryService.list_checkpoints(
        filters,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/api/checkpoints/stats", tags=["Checkpoints API"])
@api_route(logger)
async def get_checkpoint_stats(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
):
    stats = await CheckpointQueryService.statistics(start_date, end_date)
    return {"stats": stats}


@router.get("/api/checkpoints/recent", tags=["Checkpoints API"])
@api_route(logger)
async def get_recent_checkpoints(
    limit: int = Query(DEFAULT_RECENT_LIMIT),
    checkpoint_type: str | None = Query(None, alias="checkpointType"),
):
    """Newest checkpoints by server receive time."""
    checkpoints = await CheckpointQueryService.recent(limit, checkpoint_type)
    return {"checkpoints": checkpoints}


@router.get("/api/checkpoints/ride/{ride_id}", tags=["Checkpoints API"])
@api_route(logger)
async def get_ride_checkpoints(ride_id: str):
    """Ride record, ordered ledger and reconstructed route."""
    return await CheckpointQueryService.ride_detail(ride_id)


@router.get("/api/checkpoints/rider/{rider_id}", tags=["Checkpoints API"])
@api_route(logger)
async def get_rider_summary(
    rider_id: str,
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
):
    summary = await CheckpointQueryService.rider_summary(
        rider_id,
        start_date,
        end_date,
    )
    return {"summary": summary}
