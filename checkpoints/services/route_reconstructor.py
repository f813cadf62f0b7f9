"""Rebuild a ride's travelled path from its checkpoint ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from checkpoints.services.checkpoint_store import CheckpointStore, parse_ride_id
from core.exceptions import ResourceNotFoundError
from core.geo import Coordinate, line_geometry
from core.serialization import document_to_dict
from db.manager import db_manager
from db.models import CheckpointType, Ride

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

POINT_CHECKPOINT = "checkpoint"
POINT_INTERPOLATED = "interpolated"


@dataclass
class ReconstructedRoute:
    checkpoints: list[dict[str, Any]] = field(default_factory=list)
    polyline: list[dict[str, Any]] = field(default_factory=list)
    totalDistance: float = 0.0
    totalDuration: float = 0.0
    checkpointCount: int = 0
    pickupAddress: str | None = None
    dropoffAddress: str | None = None
    geometry: dict[str, Any] | None = None

    def to_response(self) -> dict[str, Any]:
        return {
            "checkpoints": self.checkpoints,
            "polyline": self.polyline,
            "totalDistance": round(self.totalDistance, 3),
            "totalDuration": self.totalDuration,
            "checkpointCount": self.checkpointCount,
            "pickupAddress": self.pickupAddress,
            "dropoffAddress": self.dropoffAddress,
            "geometry": self.geometry,
        }


def _type_value(value: Any) -> str | None:
    if isinstance(value, CheckpointType):
        return value.value
    return value


def build_route(checkpoints: Iterable[dict[str, Any]]) -> ReconstructedRoute:
    """
    Assemble the route for an ordered ledger.

    Each checkpoint contributes its stored interpolation points followed by
    its own coordinate. Input is re-sorted by ``sequenceNumber`` so callers
    may pass rows in any order.
    """
    ordered = sorted(checkpoints, key=lambda cp: cp["sequenceNumber"])
    route = ReconstructedRoute(checkpoints=ordered, checkpointCount=len(ordered))
    if not ordered:
        return route

    path: list[Coordinate] = []
    for checkpoint in ordered:
        sequence = checkpoint["sequenceNumber"]
        for point in checkpoint.get("interpolationPoints") or []:
            coordinate = Coordinate(point["latitude"], point["longitude"])
            path.append(coordinate)
            route.polyline.append(
                {
                    **coordinate.as_dict(),
                    "kind": POINT_INTERPOLATED,
                    "sequenceNumber": sequence,
                },
            )
        location = checkpoint["location"]
        coordinate = Coordinate(location["latitude"], location["longitude"])
        path.append(coordinate)
        route.polyline.append(
            {
                **coordinate.as_dict(),
                "kind": POINT_CHECKPOINT,
                "sequenceNumber": sequence,
            },
        )
        route.totalDuration += checkpoint.get("durationFromPrevious") or 0.0

    route.totalDistance = ordered[-1].get("cumulativeDistance") or 0.0
    route.geometry = line_geometry(path)

    pickups = [
        cp
        for cp in ordered
        if _type_value(cp.get("checkpointType")) == CheckpointType.PICKUP.value
        and cp.get("address")
    ]
    dropoffs = [
        cp
        for cp in ordered
        if _type_value(cp.get("checkpointType")) == CheckpointType.DROPOFF.value
        and cp.get("address")
    ]
    if pickups:
        route.pickupAddress = pickups[0]["address"]
    if dropoffs:
        route.dropoffAddress = dropoffs[-1]["address"]

    return route


class RouteReconstructor:
    """Service class that loads a ledger and builds its route."""

    @staticmethod
    async def reconstruct(ride_id: str) -> tuple[ReconstructedRoute, Ride | None]:
        """
        Reconstruct a ride's route.

        Returns:
            The route and the ride record (None when only checkpoints exist)

        Raises:
            ValidationError: Malformed ride id
            ResourceNotFoundError: Neither a ride record nor checkpoints exist
        """
        object_id = parse_ride_id(ride_id)
        ride = await db_manager.execute_with_retry(
            lambda: Ride.get(object_id),
            operation_name="load ride",
        )
        checkpoints = await CheckpointStore.list_by_ride(ride_id)

        if ride is None and not checkpoints:
            msg = f"Ride {ride_id} not found"
            raise ResourceNotFoundError(msg, {"rideId": ride_id})

        route = build_route(document_to_dict(cp) for cp in checkpoints)
        if ride is not None:
            if route.pickupAddress is None and ride.pickup:
                route.pickupAddress = ride.pickup.address
            if route.dropoffAddress is None and ride.drop:
                route.dropoffAddress = ride.drop.address

        logger.debug(
            "Reconstructed ride %s: %d checkpoints, %d polyline points",
            ride_id,
            route.checkpointCount,
            len(route.polyline),
        )
        return route, ride
