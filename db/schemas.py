"""
Pydantic schemas for request validation and API responses.

This module contains Pydantic models used for data validation across the application,
separating API-specific schemas from Beanie database documents. Range checks
(coordinates, non-negative amounts, hour windows) live in the services so
that every caller gets the same domain errors.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from db.models import CheckpointType, RideStatus


class LocationModel(BaseModel):
    """GPS fix reported by the mobile client."""

    latitude: float
    longitude: float
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None


class CheckpointCreateModel(BaseModel):
    """Checkpoint submitted by a client.

    Ledger fields (sequence number, distances, durations) are derived by the
    store, so they are rejected here rather than silently dropped.
    """

    model_config = ConfigDict(extra="forbid")

    rideId: str
    checkpointType: CheckpointType
    location: LocationModel
    capturedAt: datetime | str
    riderId: str | None = None
    customerId: str | None = None
    address: str | None = None


class PlaceModel(BaseModel):
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class RideCreateModel(BaseModel):
    """Model for registering a ride whose checkpoints will be recorded."""

    riderId: str | None = None
    customerId: str | None = None
    vehicleType: str
    passengerCount: int = 1
    pickup: PlaceModel | None = None
    drop: PlaceModel | None = None
    bookingTime: datetime | str | None = None


class RideStatusUpdateModel(BaseModel):
    status: RideStatus


class AdditionalChargesModel(BaseModel):
    """Surcharge settings; omitted fields keep their defaults."""

    nightSurchargePercent: float | None = None
    nightStartHour: int | None = None
    nightEndHour: int | None = None
    peakHourSurchargePercent: float | None = None
    peakStartHour: int | None = None
    peakEndHour: int | None = None
    perPassengerCharge: float | None = None


class FareConfigModel(BaseModel):
    """Model for creating or replacing the current fare config of a vehicle type."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, alias="_id")
    vehicleType: str
    baseFare: float
    perKmRate: float
    minimumFare: float
    baseDistanceKm: float = 0.0
    additionalCharges: AdditionalChargesModel | None = None
    isActive: bool = True
    description: str = ""

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(exclude={"id"})
        charges = payload.get("additionalCharges") or {}
        payload["additionalCharges"] = {
            key: value for key, value in charges.items() if value is not None
        }
        return payload


class FareCalculationModel(BaseModel):
    """Model for a fare estimate request."""

    vehicleType: str
    distanceKm: float
    passengerCount: int = 1
    bookingTime: datetime | str | None = None
