from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING, Any

from checkpoints.services.checkpoint_query_service import (
    build_checkpoint_query,
    resolve_sort,
)
from core.exceptions import StoreUnavailableError
from core.serialization import document_to_dict
from db.manager import db_manager
from db.models import Checkpoint

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

CSV_FIELDNAMES = [
    "rideId",
    "sequenceNumber",
    "checkpointType",
    "riderId",
    "customerId",
    "latitude",
    "longitude",
    "speed",
    "heading",
    "accuracy",
    "address",
    "capturedAt",
    "receivedAt",
    "distanceFromPrevious",
    "cumulativeDistance",
    "durationFromPrevious",
]


# Spreadsheet apps evaluate cells starting with these as formulas
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _safe_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str) and value.startswith(FORMULA_PREFIXES):
        return f"'{value}"
    return value


def checkpoint_to_row(checkpoint: dict[str, Any]) -> dict[str, Any]:
    """Flatten a serialized checkpoint into one CSV row."""
    location = checkpoint.get("location") or {}
    row = {field: checkpoint.get(field) for field in CSV_FIELDNAMES}
    for key in ("latitude", "longitude", "speed", "heading", "accuracy"):
        row[key] = location.get(key)
    return {key: _safe_cell(value) for key, value in row.items()}


def render_csv(rows: list[dict[str, Any]], *, header: bool = False) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDNAMES)
    if header:
        writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


class CheckpointExportService:
    """Service class for the CSV download of filtered checkpoints."""

    BATCH_SIZE = 500

    @staticmethod
    async def _fetch_rows(
        query: dict[str, Any],
        sort: list[tuple[str, int]],
        skip: int,
    ) -> list[dict[str, Any]]:
        checkpoints = await db_manager.execute_with_retry(
            lambda: Checkpoint.find(query)
            .sort(sort)
            .skip(skip)
            .limit(CheckpointExportService.BATCH_SIZE)
            .to_list(),
            operation_name="export checkpoints",
        )
        return [checkpoint_to_row(document_to_dict(c)) for c in checkpoints]

    @staticmethod
    async def stream_csv(
        filters: dict[str, Any] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Build the CSV stream for every checkpoint matching ``filters``.

        Filters are validated and the first batch is read before the stream
        is returned, so bad input or an unreachable store fails the request
        instead of producing a truncated download.

        Raises:
            ValidationError: Bad filter or sort values
            StoreUnavailableError: The first batch could not be read
        """
        query = build_checkpoint_query(filters)
        sort = resolve_sort(sort_by, sort_order)
        first_rows = await CheckpointExportService._fetch_rows(query, sort, 0)
        return CheckpointExportService._iter_csv(query, sort, first_rows)

    @staticmethod
    async def _iter_csv(
        query: dict[str, Any],
        sort: list[tuple[str, int]],
        first_rows: list[dict[str, Any]],
    ) -> AsyncIterator[str]:
        yield render_csv(first_rows, header=True)

        rows = first_rows
        count = len(rows)
        while len(rows) >= CheckpointExportService.BATCH_SIZE:
            try:
                rows = await CheckpointExportService._fetch_rows(query, sort, count)
            except StoreUnavailableError:
                logger.exception("Checkpoint CSV export aborted after %d rows", count)
                raise
            if rows:
                yield render_csv(rows)
                count += len(rows)

        logger.info("Exported %d checkpoints to CSV", count)
