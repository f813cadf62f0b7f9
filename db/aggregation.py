"""Pipeline builders and a runner for ledger aggregations."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


def distinct_count_pipeline(match: dict[str, Any], field: str) -> list[dict[str, Any]]:
    """Count distinct non-null values of ``field`` among matching documents."""
    return [
        {"$match": {**match, field: match.get(field, {"$ne": None})}},
        {"$group": {"_id": f"${field}"}},
        {"$count": "count"},
    ]


def group_count_pipeline(match: dict[str, Any], field: str) -> list[dict[str, Any]]:
    """Group matching documents by ``field``, largest group first."""
    return [
        {"$match": match},
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]


def first_count(rows: list[dict[str, Any]]) -> int:
    """Read the result of a ``$count`` stage; no rows means zero."""
    return int(rows[0]["count"]) if rows else 0


async def aggregate_to_list(
    model: Any,
    pipeline: Iterable[dict[str, Any]],
    *,
    length: int | None = None,
    **kwargs: Any,
) -> list[dict[str, Any]]:
    """
    Run ``pipeline`` on the model's collection and materialize the cursor.

    PyMongo's async ``aggregate`` returns an awaitable that resolves to the
    cursor; test doubles may hand back the cursor directly.
    """
    collection = model.get_pymongo_collection()
    cursor = collection.aggregate(list(pipeline), **kwargs)
    if inspect.isawaitable(cursor):
        cursor = await cursor
    return await cursor.to_list(length=length)
