"""API route for recording checkpoints."""

import logging

from fastapi import APIRouter, status

from checkpoints.services import CheckpointStore
from core.api import api_route
from core.serialization import document_to_dict
from db.schemas import CheckpointCreateModel

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/api/checkpoints",
    status_code=status.HTTP_201_CREATED,
    tags=["Checkpoints API"],
)
@api_route(logger)
async def create_checkpoint(data: CheckpointCreateModel):
    """Append a checkpoint to its ride's ledger."""
    checkpoint = await CheckpointStore.append(
        data.rideId,
        data.checkpointType,
        data.location.model_dump(),
        data.capturedAt,
        rider_id=data.riderId,
        customer_id=data.customerId,
        address=data.address,
    )
    return {"checkpoint": document_to_dict(checkpoint)}
