"""API routes for fare configuration management."""

import logging

from fastapi import APIRouter, Query, status

from core.api import api_route
from core.serialization import document_to_dict
from db.schemas import FareConfigModel
from fares.services import FareConfigService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/fare-config", tags=["Fare Config API"])
@api_route(logger)
async def list_fare_configs(
    include_inactive: bool = Query(False, alias="includeInactive"),
):
    """Active configs, or every version with ``includeInactive=true``."""
    configs = await FareConfigService.list_configs(include_inactive)
    return {"fareConfigs": [document_to_dict(c) for c in configs]}


@router.get("/api/fare-config/vehicle/{vehicle_type}", tags=["Fare Config API"])
@api_route(logger)
async def get_active_fare_config(vehicle_type: str):
    config = await FareConfigService.get_active(vehicle_type)
    return {"fareConfig": document_to_dict(config)}


@router.post(
    "/api/fare-config",
    status_code=status.HTTP_201_CREATED,
    tags=["Fare Config API"],
)
@api_route(logger)
async def upsert_fare_config(data: FareConfigModel):
    """Store a new config version for the vehicle type."""
    config = await FareConfigService.upsert(data.to_payload())
    return {"fareConfig": document_to_dict(config)}


@router.patch("/api/fare-config/{config_id}/toggle", tags=["Fare Config API"])
@api_route(logger)
async def toggle_fare_config(config_id: str):
    config = await FareConfigService.toggle_active(config_id)
    return {"fareConfig": document_to_dict(config)}


@router.delete("/api/fare-config/{config_id}", tags=["Fare Config API"])
@api_route(logger)
async def delete_fare_config(config_id: str):
    return await FareConfigService.delete(config_id)


@router.post("/api/fare-config/initialize", tags=["Fare Config API"])
@api_route(logger)
async def initialize_fare_configs():
    """Seed defaults for vehicle types that have no active config."""
    result = await FareConfigService.initialize_defaults()
    return {
        "created": [document_to_dict(c) for c in result["created"]],
        "skipped": result["skipped"],
    }
