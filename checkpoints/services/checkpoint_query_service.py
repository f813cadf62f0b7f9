"""Read-only listings and aggregates over the checkpoint ledger."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import Any

from pymongo import ASCENDING, DESCENDING

from checkpoints.services.route_reconstructor import RouteReconstructor
from core.exceptions import ValidationError
from core.serialization import document_to_dict
from db.aggregation import (
    aggregate_to_list,
    distinct_count_pipeline,
    first_count,
    group_count_pipeline,
)
from db.manager import db_manager
from db.models import Checkpoint, CheckpointType
from db.query import build_date_range_filter

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 500
DEFAULT_RECENT_LIMIT = 20
SORTABLE_FIELDS = frozenset(
    {
        "capturedAt",
        "receivedAt",
        "sequenceNumber",
        "cumulativeDistance",
        "distanceFromPrevious",
    },
)
SEARCH_FIELDS = ("address", "checkpointType", "rideId")


def _checkpoint_type_value(value: str) -> str:
    try:
        return CheckpointType(value).value
    except ValueError as e:
        allowed = ", ".join(t.value for t in CheckpointType)
        msg = f"Unknown checkpointType {value!r}; expected one of {allowed}"
        raise ValidationError(msg) from e


def build_checkpoint_query(filters: dict[str, Any] | None) -> dict[str, Any]:
    """
    Translate dashboard filters into a MongoDB query.

    Recognised keys: ``checkpointType``, ``rideId``, ``riderId``,
    ``startDate``, ``endDate`` and ``search``. Empty values are ignored.
    """
    filters = filters or {}
    query: dict[str, Any] = {}

    if filters.get("checkpointType"):
        query["checkpointType"] = _checkpoint_type_value(filters["checkpointType"])
    if filters.get("rideId"):
        query["rideId"] = str(filters["rideId"])
    if filters.get("riderId"):
        query["riderId"] = str(filters["riderId"])

    query.update(
        build_date_range_filter(filters.get("startDate"), filters.get("endDate")),
    )

    search = (filters.get("search") or "").strip()
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS
        ]

    return query


def resolve_sort(sort_by: str | None, sort_order: str | None) -> list[tuple[str, int]]:
    field = sort_by or "capturedAt"
    if field not in SORTABLE_FIELDS:
        allowed = ", ".join(sorted(SORTABLE_FIELDS))
        msg = f"Cannot sort by {field!r}; expected one of {allowed}"
        raise ValidationError(msg)
    order = (sort_order or "desc").lower()
    if order not in ("asc", "desc"):
        msg = f"sortOrder must be 'asc' or 'desc', got {sort_order!r}"
        raise ValidationError(msg)
    direction = ASCENDING if order == "asc" else DESCENDING
    sort = [(field, direction)]
    if field != "sequenceNumber":
        sort.append(("sequenceNumber", direction))
    sort.append(("_id", direction))
    return sort


def _validate_limit(limit: int, upper: int = MAX_PAGE_LIMIT) -> int:
    if limit < 1 or limit > upper:
        msg = f"limit must be between 1 and {upper}, got {limit}"
        raise ValidationError(msg)
    return limit


def _round(value: float | None, digits: int = 3) -> float:
    return round(value or 0.0, digits)


class CheckpointQueryService:
    """Service class for dashboard reads over checkpoints."""

    @staticmethod
    async def list_checkpoints(
        filters: dict[str, Any] | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> dict[str, Any]:
        """
        Paginated checkpoint listing.

        Returns:
            ``{"checkpoints": [...], "pagination": {page, limit, total, pages}}``
        """
        if page < 1:
            msg = f"page must be >= 1, got {page}"
            raise ValidationError(msg)
        _validate_limit(limit)
        query = build_checkpoint_query(filters)
        sort = resolve_sort(sort_by, sort_order)

        total = await db_manager.execute_with_retry(
            lambda: Checkpoint.find(query).count(),
            operation_name="count checkpoints",
        )
        checkpoints = await db_manager.execute_with_retry(
            lambda: Checkpoint.find(query)
            .sort(sort)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(),
            operation_name="list checkpoints",
        )

        logger.debug(
            "Listed %d of %d checkpoints (page %d, limit %d)",
            len(checkpoints),
            total,
            page,
            limit,
        )
        return {
            "checkpoints": [document_to_dict(cp) for cp in checkpoints],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    @staticmethod
    async def _count_distinct(match: dict[str, Any], field: str) -> int:
        pipeline = distinct_count_pipeline(match, field)
        rows = await db_manager.execute_with_retry(
            lambda: aggregate_to_list(Checkpoint, pipeline),
            operation_name=f"count distinct {field}",
        )
        return first_count(rows)

    @staticmethod
    async def _counts_by_type(match: dict[str, Any]) -> list[dict[str, Any]]:
        pipeline = group_count_pipeline(match, "checkpointType")
        return await db_manager.execute_with_retry(
            lambda: aggregate_to_list(Checkpoint, pipeline),
            operation_name="count checkpoints by type",
        )

    @staticmethod
    async def _ride_distances(match: dict[str, Any]) -> list[dict[str, Any]]:
        # A ride's distance is the furthest point of its running total
        pipeline = [
            {"$match": match},
            {
                "$group": {
                    "_id": "$rideId",
                    "distance": {"$max": "$cumulativeDistance"},
                    "checkpointCount": {"$sum": 1},
                    "firstCapturedAt": {"$min": "$capturedAt"},
                    "lastCapturedAt": {"$max": "$capturedAt"},
                },
            },
            {"$sort": {"lastCapturedAt": -1}},
        ]
        return await db_manager.execute_with_retry(
            lambda: aggregate_to_list(Checkpoint, pipeline),
            operation_name="aggregate ride distances",
        )

    @staticmethod
    async def statistics(
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """Totals, per-ride distance figures and counts by checkpoint type."""
        match = build_date_range_filter(start_date, end_date)

        total, unique_riders, by_type, rides = await asyncio.gather(
            db_manager.execute_with_retry(
                lambda: Checkpoint.find(match).count(),
                operation_name="count checkpoints",
            ),
            CheckpointQueryService._count_distinct(match, "riderId"),
            CheckpointQueryService._counts_by_type(match),
            CheckpointQueryService._ride_distances(match),
        )

        distances = [row.get("distance") or 0.0 for row in rides]
        total_distance = sum(distances)
        return {
            "totals": {
                "totalCheckpoints": total,
                "uniqueRides": len(rides),
                "uniqueRiders": unique_riders,
            },
            "distance": {
                "avgDistance": _round(total_distance / len(distances))
                if distances
                else 0.0,
                "totalDistance": _round(total_distance),
                "maxDistance": _round(max(distances, default=0.0)),
            },
            "byType": by_type,
        }

    @staticmethod
    async def recent(
        limit: int = DEFAULT_RECENT_LIMIT,
        checkpoint_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Most recently received checkpoints across all rides."""
        _validate_limit(limit)
        query: dict[str, Any] = {}
        if checkpoint_type:
            query["checkpointType"] = _checkpoint_type_value(checkpoint_type)

        checkpoints = await db_manager.execute_with_retry(
            lambda: Checkpoint.find(query)
            .sort([("receivedAt", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
            .to_list(),
            operation_name="recent checkpoints",
        )
        return [document_to_dict(cp) for cp in checkpoints]

    @staticmethod
    async def rider_summary(
        rider_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """Per-rider rollup of rides, distance and checkpoint types."""
        if not rider_id:
            msg = "riderId is required"
            raise ValidationError(msg)
        match = {
            "riderId": rider_id,
            **build_date_range_filter(start_date, end_date),
        }

        by_type, rides = await asyncio.gather(
            CheckpointQueryService._counts_by_type(match),
            CheckpointQueryService._ride_distances(match),
        )

        return {
            "riderId": rider_id,
            "totalCheckpoints": sum(row["count"] for row in by_type),
            "totalRides": len(rides),
            "totalDistance": _round(sum(row.get("distance") or 0.0 for row in rides)),
            "byType": by_type,
            "rides": [
                document_to_dict(
                    {
                        "rideId": row["_id"],
                        "checkpointCount": row["checkpointCount"],
                        "distance": _round(row.get("distance")),
                        "firstCapturedAt": row.get("firstCapturedAt"),
                        "lastCapturedAt": row.get("lastCapturedAt"),
                    },
                )
                for row in rides
            ],
        }

    @staticmethod
    async def ride_detail(ride_id: str) -> dict[str, Any]:
        """Ride record, ordered checkpoints, totals and the reconstructed route."""
        route, ride = await RouteReconstructor.reconstruct(ride_id)
        route_response = route.to_response()
        checkpoints = route_response.pop("checkpoints")
        return {
            "ride": document_to_dict(ride) if ride is not None else None,
            "checkpoints": checkpoints,
            "totalDistance": route_response["totalDistance"],
            "totalDuration": route_response["totalDuration"],
            "checkpointCount": route_response["checkpointCount"],
            "route": route_response,
        }
