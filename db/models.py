"""Beanie ODM document models for MongoDB collections.

This module defines all document models using Beanie ODM, which provides:
- Automatic Pydantic validation
- Built-in async CRUD operations
- Proper ObjectId/datetime serialization
- Index definitions at the model level

Usage:
    from db.models import Checkpoint, FareConfig, Ride

    # Latest checkpoint of a ride
    last = await Checkpoint.find(Checkpoint.rideId == ride_id).sort(
        -Checkpoint.sequenceNumber
    ).first_or_none()

    # Active fare for a vehicle type
    config = await FareConfig.find_one(
        FareConfig.vehicleType == "Cab", FareConfig.isActive == True
    )
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from beanie import Document
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, DESCENDING, IndexModel

from core.date_utils import parse_timestamp


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CheckpointType(str, Enum):
    """Ride lifecycle tag carried by each checkpoint (advisory, not enforced)."""

    SEARCHING = "SEARCHING"
    ACCEPTED = "ACCEPTED"
    PICKUP = "PICKUP"
    ONGOING = "ONGOING"
    DROPOFF = "DROPOFF"


class VehicleType(str, Enum):
    """Pricing categories."""

    TRICYCLE = "Tricycle"
    SINGLE_MOTORCYCLE = "Single Motorcycle"
    CAB = "Cab"


class RideStatus(str, Enum):
    SEARCHING = "SEARCHING"
    ACCEPTED = "ACCEPTED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


CLOSED_RIDE_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})


class Place(BaseModel):
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class CheckpointLocation(BaseModel):
    latitude: float
    longitude: float
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None


class GeoPoint(BaseModel):
    latitude: float
    longitude: float


class AdditionalCharges(BaseModel):
    nightSurchargePercent: float = 0.0
    nightStartHour: int = 22
    nightEndHour: int = 5
    peakHourSurchargePercent: float = 0.0
    peakStartHour: int = 7
    peakEndHour: int = 9
    perPassengerCharge: float = 0.0


class Ride(Document):
    """Ride record the checkpoint ledger hangs off."""

    riderId: str | None = None
    customerId: str | None = None
    vehicleType: VehicleType = VehicleType.TRICYCLE
    passengerCount: int = 1
    status: RideStatus = RideStatus.SEARCHING
    pickup: Place | None = None
    drop: Place | None = None
    bookingTime: datetime = Field(default_factory=_utcnow)
    createdAt: datetime = Field(default_factory=_utcnow)
    updatedAt: datetime = Field(default_factory=_utcnow)
    completedAt: datetime | None = None

    @field_validator("bookingTime", "completedAt", mode="before")
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        if v is None:
            return None
        return parse_timestamp(v)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_RIDE_STATUSES

    class Settings:
        name = "rides"
        indexes = [
            IndexModel([("riderId", ASCENDING)], name="rides_riderId_idx"),
            IndexModel([("status", ASCENDING)], name="rides_status_idx"),
        ]


class Checkpoint(Document):
    """One GPS snapshot in a ride's append-only ledger."""

    rideId: str
    riderId: str | None = None
    customerId: str | None = None
    checkpointType: CheckpointType
    sequenceNumber: int
    location: CheckpointLocation
    address: str | None = None
    capturedAt: datetime
    receivedAt: datetime = Field(default_factory=_utcnow)
    clockSkewSeconds: float = 0.0
    distanceFromPrevious: float = 0.0
    cumulativeDistance: float = 0.0
    durationFromPrevious: float = 0.0
    interpolationPoints: list[GeoPoint] = Field(default_factory=list)

    @field_validator("capturedAt", "receivedAt", mode="before")
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    class Settings:
        name = "checkpoints"
        indexes = [
            IndexModel(
                [("rideId", ASCENDING), ("sequenceNumber", ASCENDING)],
                name="checkpoints_ride_sequence_idx",
                unique=True,
            ),
            IndexModel([("capturedAt", DESCENDING)], name="checkpoints_capturedAt_idx"),
            IndexModel([("receivedAt", DESCENDING)], name="checkpoints_receivedAt_idx"),
            IndexModel(
                [("checkpointType", ASCENDING), ("capturedAt", DESCENDING)],
                name="checkpoints_type_capturedAt_idx",
            ),
            IndexModel(
                [("riderId", ASCENDING), ("capturedAt", DESCENDING)],
                name="checkpoints_riderId_capturedAt_idx",
                sparse=True,
            ),
        ]


class FareConfig(Document):
    """Pricing rules for one vehicle type; historical rows stay inactive."""

    vehicleType: VehicleType
    baseFare: float
    perKmRate: float
    minimumFare: float
    baseDistanceKm: float = 0.0
    additionalCharges: AdditionalCharges = Field(default_factory=AdditionalCharges)
    isActive: bool = True
    description: str = ""
    createdAt: datetime = Field(default_factory=_utcnow)
    updatedAt: datetime = Field(default_factory=_utcnow)
    supersededAt: datetime | None = None

    class Settings:
        name = "fare_configs"
        # The one-active-row-per-vehicle partial unique index is created in
        # db.indexes so it can carry a partialFilterExpression.
        indexes = [
            IndexModel(
                [("vehicleType", ASCENDING), ("isActive", ASCENDING)],
                name="fare_configs_vehicle_active_idx",
            ),
        ]


# List of all document models for Beanie initialization
ALL_DOCUMENT_MODELS = [
    Ride,
    Checkpoint,
    FareConfig,
]
