"""API routes for ride records."""

import logging

from fastapi import APIRouter, status

from core.api import api_route
from core.serialization import document_to_dict
from db.schemas import RideCreateModel, RideStatusUpdateModel
from rides.services import RideService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/api/rides",
    status_code=status.HTTP_201_CREATED,
    tags=["Rides API"],
)
@api_route(logger)
async def create_ride(data: RideCreateModel):
    ride = await RideService.create_ride(data.model_dump(exclude_none=True))
    return {"ride": document_to_dict(ride)}


@router.get("/api/rides/{ride_id}", tags=["Rides API"])
@api_route(logger)
async def get_ride(ride_id: str):
    ride = await RideService.get_ride(ride_id)
    return {"ride": document_to_dict(ride)}


@router.patch("/api/rides/{ride_id}/status", tags=["Rides API"])
@api_route(logger)
async def update_ride_status(ride_id: str, data: RideStatusUpdateModel):
    """Advance a ride's status; COMPLETED and CANCELLED close its ledger."""
    ride = await RideService.update_status(ride_id, data.status)
    return {"ride": document_to_dict(ride)}
