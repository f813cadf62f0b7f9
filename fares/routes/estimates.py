"""API routes for fare estimates."""

import logging

from fastapi import APIRouter

from core.api import api_route
from db.schemas import FareCalculationModel
from fares.services import FareEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/fare-config/calculate", tags=["Fare Config API"])
@api_route(logger)
async def calculate_fare(data: FareCalculationModel):
    """Price a trip with the vehicle type's active config."""
    breakdown = await FareEngine.calculate(
        data.vehicleType,
        data.distanceKm,
        data.passengerCount,
        data.bookingTime,
    )
    return {"fareEstimate": breakdown.to_response()}


@router.get("/api/checkpoints/ride/{ride_id}/fare", tags=["Checkpoints API"])
@api_route(logger)
async def get_ride_fare(ride_id: str):
    """Price a recorded ride over its reconstructed distance."""
    breakdown = await FareEngine.price_ride(ride_id)
    return {"fareEstimate": breakdown.to_response()}
