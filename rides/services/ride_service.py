"""Service for the ride records checkpoints are attached to."""

import logging
from typing import Any

from checkpoints.services.checkpoint_store import parse_ride_id
from checkpoints.services.ride_locks import RIDE_LOCKS
from core.date_utils import get_current_utc_time, parse_timestamp
from core.exceptions import InvalidRideStateError, ResourceNotFoundError, ValidationError
from db.manager import db_manager
from db.models import Place, Ride, RideStatus
from fares.services.fare_config_service import parse_vehicle_type

logger = logging.getLogger(__name__)


class RideService:
    """Service class for ride CRUD operations."""

    @staticmethod
    async def create_ride(ride_data: dict[str, Any]) -> Ride:
        """Create a ride in the SEARCHING state.

        Args:
            ride_data: Dict with vehicleType and optional riderId, customerId,
                passengerCount, pickup, drop, bookingTime

        Returns:
            Created Ride
        """
        passenger_count = ride_data.get("passengerCount", 1)
        if isinstance(passenger_count, bool) or not isinstance(passenger_count, int):
            msg = "passengerCount must be an integer"
            raise ValidationError(msg)
        if passenger_count < 1:
            msg = f"passengerCount must be >= 1, got {passenger_count}"
            raise ValidationError(msg)

        booking_time = get_current_utc_time()
        if ride_data.get("bookingTime"):
            booking_time = parse_timestamp(ride_data["bookingTime"])
            if booking_time is None:
                msg = f"Invalid bookingTime: {ride_data['bookingTime']!r}"
                raise ValidationError(msg)

        now = get_current_utc_time()
        ride = Ride(
            riderId=ride_data.get("riderId"),
            customerId=ride_data.get("customerId"),
            vehicleType=parse_vehicle_type(ride_data.get("vehicleType")),
            passengerCount=passenger_count,
            pickup=Place(**ride_data["pickup"]) if ride_data.get("pickup") else None,
            drop=Place(**ride_data["drop"]) if ride_data.get("drop") else None,
            bookingTime=booking_time,
            createdAt=now,
            updatedAt=now,
        )
        await db_manager.execute_with_retry(ride.insert, operation_name="insert ride")
        logger.info("Created ride %s (%s)", ride.id, ride.vehicleType.value)
        return ride

    @staticmethod
    async def get_ride(ride_id: str) -> Ride:
        object_id = parse_ride_id(ride_id)
        ride = await db_manager.execute_with_retry(
            lambda: Ride.get(object_id),
            operation_name="get ride",
        )
        if ride is None:
            msg = f"Ride {ride_id} not found"
            raise ResourceNotFoundError(msg, {"rideId": ride_id})
        return ride

    @staticmethod
    async def update_status(ride_id: str, status: RideStatus | str) -> Ride:
        """Move a ride to a new status. Closed rides cannot be reopened.

        Runs in the ride's critical section so a checkpoint append never
        interleaves with closing the ride.
        """
        try:
            new_status = RideStatus(status)
        except ValueError as e:
            msg = f"Unknown ride status {status!r}"
            raise ValidationError(msg) from e

        ride_key = str(parse_ride_id(ride_id))
        async with RIDE_LOCKS.hold(ride_key):
            ride = await RideService.get_ride(ride_key)
            if ride.is_closed and new_status != ride.status:
                msg = f"Ride {ride_id} is already {ride.status.value}"
                raise InvalidRideStateError(msg, {"status": ride.status.value})

            now = get_current_utc_time()
            ride.status = new_status
            ride.updatedAt = now
            if ride.is_closed and ride.completedAt is None:
                ride.completedAt = now
            await db_manager.execute_with_retry(ride.save, operation_name="update ride")

        logger.info("Ride %s is now %s", ride_id, new_status.value)
        return ride
