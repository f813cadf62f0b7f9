"""Database index definitions and initialization.

Most indexes are declared on the Beanie models and created by
``init_beanie``. Indexes that need options the model declarations do not
carry are created here.
"""

from __future__ import annotations

import logging

import pymongo
from pymongo.errors import OperationFailure

from db.manager import db_manager
from db.models import FareConfig

logger = logging.getLogger(__name__)

FARE_CONFIG_ACTIVE_UNIQUE_INDEX = "fare_configs_one_active_per_vehicle_idx"


async def ensure_fare_config_indexes() -> None:
    """Guarantee at most one active fare config per vehicle type.

    A partial unique index only covers rows with ``isActive: true``, so
    retired configs for the same vehicle type can coexist with the current
    one.
    """
    collection = FareConfig.get_pymongo_collection()
    try:
        await collection.create_index(
            [("vehicleType", pymongo.ASCENDING)],
            name=FARE_CONFIG_ACTIVE_UNIQUE_INDEX,
            unique=True,
            partialFilterExpression={"isActive": True},
        )
        logger.info("Fare config active-uniqueness index ensured")
    except OperationFailure as e:
        # Duplicate active rows already in the collection block the build.
        logger.error(
            "Could not create %s (code %s): %s",
            FARE_CONFIG_ACTIVE_UNIQUE_INDEX,
            e.code,
            str(e),
        )


async def init_database() -> None:
    """Initialize Beanie and the indexes it does not manage."""
    await db_manager.init_beanie()
    await ensure_fare_config_indexes()
    logger.info("Database initialization complete")
