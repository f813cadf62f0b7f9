"""Append-only checkpoint ledger.

Every checkpoint of a ride is written relative to the ride's previous one:
sequence number, distance from the previous fix, running distance, elapsed
seconds and the display-only interpolation points are all derived here and
never accepted from callers. Appends for one ride run inside that ride's
critical section (see ``ride_locks``); the unique ``(rideId,
sequenceNumber)`` index catches writers in other processes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from beanie import PydanticObjectId
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import config
from checkpoints.services.ride_locks import RIDE_LOCKS
from core.date_utils import get_current_utc_time, parse_timestamp
from core.exceptions import (
    InvalidRideStateError,
    OutOfOrderTimestampError,
    StoreUnavailableError,
    ValidationError,
)
from core.geo import Coordinate, GeoMath
from db.manager import db_manager
from db.models import Checkpoint, CheckpointLocation, CheckpointType, Ride

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerTail:
    """The parts of a ride's latest checkpoint the next append depends on."""

    sequence_number: int
    coordinate: Coordinate
    captured_at: datetime
    cumulative_distance: float

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> LedgerTail:
        return cls(
            sequence_number=checkpoint.sequenceNumber,
            coordinate=Coordinate(
                checkpoint.location.latitude,
                checkpoint.location.longitude,
            ),
            captured_at=parse_timestamp(checkpoint.capturedAt),
            cumulative_distance=checkpoint.cumulativeDistance,
        )


def derive_ledger_fields(
    previous: LedgerTail | None,
    coordinate: Coordinate,
    captured_at: datetime,
    *,
    interpolation_points: int,
) -> dict[str, Any]:
    """Compute the store-owned fields of a new checkpoint.

    Raises:
        OutOfOrderTimestampError: If ``captured_at`` is earlier than the
            previous checkpoint's capture time.
    """
    if previous is None:
        return {
            "sequenceNumber": 1,
            "distanceFromPrevious": 0.0,
            "cumulativeDistance": 0.0,
            "durationFromPrevious": 0.0,
            "interpolationPoints": [],
        }

    duration = (captured_at - previous.captured_at).total_seconds()
    if duration < 0:
        msg = (
            f"capturedAt {captured_at.isoformat()} is earlier than the previous "
            f"checkpoint (#{previous.sequence_number}) at "
            f"{previous.captured_at.isoformat()}"
        )
        raise OutOfOrderTimestampError(
            msg,
            {"previousSequenceNumber": previous.sequence_number},
        )

    distance = GeoMath.distance_km(previous.coordinate, coordinate)
    segment = GeoMath.interpolate(previous.coordinate, coordinate, interpolation_points)

    return {
        "sequenceNumber": previous.sequence_number + 1,
        "distanceFromPrevious": distance,
        "cumulativeDistance": previous.cumulative_distance + distance,
        "durationFromPrevious": duration,
        "interpolationPoints": [point.as_dict() for point in segment],
    }


def _optional_measure(
    location: dict[str, Any],
    key: str,
    *,
    upper: float | None = None,
) -> float | None:
    value = location.get(key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        msg = f"location.{key} must be numeric"
        raise ValidationError(msg) from e
    if not math.isfinite(number) or number < 0 or (upper is not None and number > upper):
        bound = f"between 0 and {upper:g}" if upper is not None else ">= 0"
        msg = f"location.{key} must be {bound}, got {value}"
        raise ValidationError(msg)
    return number


def validate_location(location: dict[str, Any]) -> CheckpointLocation:
    """Validate a client location payload into the stored shape."""
    if not isinstance(location, dict):
        msg = "location must be an object with latitude and longitude"
        raise ValidationError(msg)
    coordinate = GeoMath.coordinate(location.get("latitude"), location.get("longitude"))
    return CheckpointLocation(
        latitude=coordinate.latitude,
        longitude=coordinate.longitude,
        speed=_optional_measure(location, "speed"),
        heading=_optional_measure(location, "heading", upper=360.0),
        accuracy=_optional_measure(location, "accuracy"),
    )


def to_bson_precision(value: datetime) -> datetime:
    """Drop sub-millisecond digits, which BSON dates cannot store."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def parse_ride_id(ride_id: str) -> PydanticObjectId:
    if not ride_id or not ObjectId.is_valid(str(ride_id)):
        msg = f"Invalid ride id: {ride_id!r}"
        raise ValidationError(msg)
    return PydanticObjectId(str(ride_id))


def _coerce_checkpoint_type(value: CheckpointType | str) -> CheckpointType:
    try:
        return CheckpointType(value)
    except ValueError as e:
        allowed = ", ".join(t.value for t in CheckpointType)
        msg = f"Unknown checkpointType {value!r}; expected one of {allowed}"
        raise ValidationError(msg) from e


class CheckpointStore:
    """Service class for the per-ride checkpoint ledger."""

    @staticmethod
    async def latest(ride_id: str) -> Checkpoint | None:
        return await db_manager.execute_with_retry(
            lambda: Checkpoint.find(Checkpoint.rideId == ride_id)
            .sort(-Checkpoint.sequenceNumber)
            .first_or_none(),
            operation_name="latest checkpoint",
        )

    @staticmethod
    async def _load_open_ride(ride_id: str) -> Ride:
        object_id = parse_ride_id(ride_id)
        ride = await db_manager.execute_with_retry(
            lambda: Ride.get(object_id),
            operation_name="load ride",
        )
        if ride is None:
            msg = f"Ride {ride_id} does not exist"
            raise InvalidRideStateError(msg, {"rideId": ride_id})
        if ride.is_closed:
            msg = f"Ride {ride_id} is {ride.status.value} and accepts no checkpoints"
            raise InvalidRideStateError(
                msg,
                {"rideId": ride_id, "status": ride.status.value},
            )
        return ride

    @staticmethod
    async def append(
        ride_id: str,
        checkpoint_type: CheckpointType | str,
        location: dict[str, Any],
        captured_at: datetime | str,
        *,
        rider_id: str | None = None,
        customer_id: str | None = None,
        address: str | None = None,
    ) -> Checkpoint:
        """
        Append a checkpoint to a ride's ledger.

        Args:
            ride_id: Ride the checkpoint belongs to
            checkpoint_type: Lifecycle tag
            location: Dict with latitude, longitude and optional speed,
                heading, accuracy
            captured_at: Client capture time
            rider_id: Defaults to the ride's rider
            customer_id: Defaults to the ride's customer
            address: Optional reverse-geocoded address

        Returns:
            The stored Checkpoint

        Raises:
            ValidationError: Malformed input (bad coordinates, ride id, type)
            InvalidRideStateError: Unknown or closed ride
            OutOfOrderTimestampError: capturedAt precedes the previous checkpoint
            StoreUnavailableError: Persistence kept failing
        """
        checkpoint_type = _coerce_checkpoint_type(checkpoint_type)
        stored_location = validate_location(location)
        coordinate = Coordinate(stored_location.latitude, stored_location.longitude)
        captured = parse_timestamp(captured_at)
        if captured is None:
            msg = f"Invalid capturedAt: {captured_at!r}"
            raise ValidationError(msg)
        captured = to_bson_precision(captured)

        ride_key = str(parse_ride_id(ride_id))
        max_attempts = config.CHECKPOINT_APPEND_MAX_ATTEMPTS

        async with RIDE_LOCKS.hold(ride_key):
            for attempt in range(1, max_attempts + 1):
                # a writer in another process may have closed the ride
                ride = await CheckpointStore._load_open_ride(ride_key)
                last = await CheckpointStore.latest(ride_key)
                previous = LedgerTail.from_checkpoint(last) if last else None
                derived = derive_ledger_fields(
                    previous,
                    coordinate,
                    captured,
                    interpolation_points=config.CHECKPOINT_INTERPOLATION_POINTS,
                )
                received = to_bson_precision(get_current_utc_time())
                checkpoint = Checkpoint(
                    rideId=ride_key,
                    riderId=rider_id or ride.riderId,
                    customerId=customer_id or ride.customerId,
                    checkpointType=checkpoint_type,
                    location=stored_location,
                    address=address,
                    capturedAt=captured,
                    receivedAt=received,
                    clockSkewSeconds=(received - captured).total_seconds(),
                    **derived,
                )
                try:
                    await db_manager.execute_with_retry(
                        checkpoint.insert,
                        operation_name="append checkpoint",
                    )
                except DuplicateKeyError:
                    logger.warning(
                        "Sequence %d for ride %s taken by another writer "
                        "(attempt %d/%d)",
                        derived["sequenceNumber"],
                        ride_key,
                        attempt,
                        max_attempts,
                    )
                    continue

                logger.info(
                    "Appended %s checkpoint #%d to ride %s (%.3f km cumulative)",
                    checkpoint_type.value,
                    checkpoint.sequenceNumber,
                    ride_key,
                    checkpoint.cumulativeDistance,
                )
                return checkpoint

        msg = f"Could not assign a sequence number for ride {ride_key}"
        raise StoreUnavailableError(msg, {"rideId": ride_key})

    @staticmethod
    async def list_by_ride(ride_id: str) -> list[Checkpoint]:
        """All checkpoints of a ride ordered by sequence number."""
        ride_key = str(parse_ride_id(ride_id))
        checkpoints = await db_manager.execute_with_retry(
            lambda: Checkpoint.find(Checkpoint.rideId == ride_key)
            .sort(+Checkpoint.sequenceNumber)
            .to_list(),
            operation_name="list ride checkpoints",
        )
        logger.debug("Loaded %d checkpoints for ride %s", len(checkpoints), ride_key)
        return checkpoints
