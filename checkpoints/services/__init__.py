"""Checkpoint ledger services."""

from checkpoints.services.checkpoint_export_service import CheckpointExportService
from checkpoints.services.checkpoint_query_service import CheckpointQueryService
from checkpoints.services.checkpoint_store import CheckpointStore
from checkpoints.services.ride_locks import RIDE_LOCKS, KeyedLockRegistry
from checkpoints.services.route_reconstructor import (
    ReconstructedRoute,
    RouteReconstructor,
    build_route,
)

__all__ = [
    "RIDE_LOCKS",
    "CheckpointExportService",
    "CheckpointQueryService",
    "CheckpointStore",
    "KeyedLockRegistry",
    "ReconstructedRoute",
    "RouteReconstructor",
    "build_route",
]
