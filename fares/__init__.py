"""
Fare configuration and pricing package.

The package is organized into:
- routes/: API endpoint handlers for configs and estimates
- services/: Config versioning and the fare formula
"""

from fastapi import APIRouter, Depends

from core.auth import require_bearer_token
from fares.routes import estimates, fare_config

router = APIRouter(dependencies=[Depends(require_bearer_token)])

router.include_router(estimates.router, tags=["fare-estimates"])
router.include_router(fare_config.router, tags=["fare-config"])

__all__ = ["router"]
