"""JSON-friendly conversion of Beanie documents and Mongo types."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from beanie import PydanticObjectId
from bson import ObjectId

from core.date_utils import ensure_utc


def serialize_datetime(dt: datetime | None) -> str | None:
    """ISO string in UTC with a ``Z`` suffix."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def serialize_for_json(data: Any) -> Any:
    """Recursively convert ObjectIds, datetimes and enums."""
    if isinstance(data, dict):
        return {k: serialize_for_json(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [serialize_for_json(item) for item in data]
    if isinstance(data, ObjectId | PydanticObjectId):
        return str(data)
    if isinstance(data, datetime):
        return serialize_datetime(data)
    if isinstance(data, Enum):
        return data.value
    return data


def document_to_dict(document: Any) -> dict[str, Any]:
    """Dump a Beanie document with ``_id`` and JSON-safe values."""
    if document is None:
        return {}
    if isinstance(document, dict):
        return serialize_for_json(document)
    return serialize_for_json(
        document.model_dump(by_alias=True, exclude={"revision_id"}),
    )
