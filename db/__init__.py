"""Database package for MongoDB operations using Beanie ODM.

This package provides a clean interface for all database operations
using Beanie ODM with Pydantic models.

Modules:
    manager: DatabaseManager singleton for connection handling and retries
    models: Beanie Document models for all collections
    schemas: Request payload models for the API layer
    query: Query building utilities
    aggregation: Aggregation pipeline helpers
    indexes: Index definitions and initialization

Usage:
    from db.models import Checkpoint, FareConfig, Ride

    ride = await Ride.get(ride_id)
    checkpoints = await Checkpoint.find(
        Checkpoint.rideId == str(ride.id)
    ).sort(+Checkpoint.sequenceNumber).to_list()
"""

from __future__ import annotations

from db.aggregation import aggregate_to_list
from db.indexes import ensure_fare_config_indexes, init_database
from db.manager import DatabaseManager, db_manager
from db.models import (
    ALL_DOCUMENT_MODELS,
    AdditionalCharges,
    Checkpoint,
    CheckpointLocation,
    CheckpointType,
    FareConfig,
    GeoPoint,
    Place,
    Ride,
    RideStatus,
    VehicleType,
)
from db.query import build_date_range_filter, parse_query_date

__all__ = [
    "ALL_DOCUMENT_MODELS",
    "AdditionalCharges",
    "Checkpoint",
    "CheckpointLocation",
    "CheckpointType",
    "DatabaseManager",
    "FareConfig",
    "GeoPoint",
    "Place",
    "Ride",
    "RideStatus",
    "VehicleType",
    "aggregate_to_list",
    "build_date_range_filter",
    "db_manager",
    "ensure_fare_config_indexes",
    "init_database",
    "parse_query_date",
]
