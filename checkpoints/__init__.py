"""
Ride checkpoint ledger package.

This package provides modular functionality for:
- Appending GPS checkpoints with derived distance and duration fields
- Reconstructing a ride's route from its ledger
- Dashboard listings, statistics and CSV export

The package is organized into:
- routes/: API endpoint handlers organized by domain
- services/: Business logic and data processing
"""

from fastapi import APIRouter, Depends

from checkpoints.routes import export, ledger, query
from core.auth import require_bearer_token

# Create main router that aggregates all checkpoint routes
router = APIRouter(dependencies=[Depends(require_bearer_token)])

router.include_router(export.router, tags=["checkpoints-export"])
router.include_router(ledger.router, tags=["checkpoints-ledger"])
router.include_router(query.router, tags=["checkpoints-query"])

__all__ = ["router"]
