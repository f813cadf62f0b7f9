"""Ride records package."""

from fastapi import APIRouter, Depends

from core.auth import require_bearer_token
from rides.routes import rides

router = APIRouter(dependencies=[Depends(require_bearer_token)])

router.include_router(rides.router, tags=["rides"])

__all__ = ["router"]
