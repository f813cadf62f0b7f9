"""
Great-circle geometry for checkpoint coordinates.

Distances use the haversine formula on the mean Earth radius. Coordinates
are ``(latitude, longitude)`` pairs in degrees; GeoJSON output flips them to
``[lon, lat]``.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, NamedTuple

from core.exceptions import InvalidCoordinateError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class Coordinate(NamedTuple):
    latitude: float
    longitude: float

    def as_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    def as_lon_lat(self) -> list[float]:
        return [self.longitude, self.latitude]


class InterpolatedSegment:
    """Finite, restartable run of points strictly between two coordinates.

    Points are computed on iteration, so iterating twice yields the same
    sequence without holding it in memory.
    """

    __slots__ = ("_count", "_end", "_start")

    def __init__(self, start: Coordinate, end: Coordinate, count: int) -> None:
        self._start = start
        self._end = end
        self._count = count

    def __iter__(self) -> Iterator[Coordinate]:
        step = 1.0 / (self._count + 1)
        d_lat = self._end.latitude - self._start.latitude
        d_lon = self._end.longitude - self._start.longitude
        for i in range(1, self._count + 1):
            fraction = i * step
            yield Coordinate(
                self._start.latitude + d_lat * fraction,
                self._start.longitude + d_lon * fraction,
            )

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return (
            f"InterpolatedSegment(start={self._start!r}, end={self._end!r}, "
            f"count={self._count})"
        )


class GeoMath:
    """Pure distance, heading and interpolation helpers."""

    EARTH_RADIUS_KM = 6371.0088

    @staticmethod
    def coordinate(latitude: Any, longitude: Any) -> Coordinate:
        """Build a validated coordinate.

        Raises:
            InvalidCoordinateError: If either value is non-numeric,
                non-finite or outside its range.
        """
        try:
            lat = float(latitude)
            lon = float(longitude)
        except (TypeError, ValueError) as e:
            msg = f"Coordinate must be numeric, got ({latitude!r}, {longitude!r})"
            raise InvalidCoordinateError(msg) from e
        if not (math.isfinite(lat) and math.isfinite(lon)):
            msg = f"Coordinate must be finite, got ({lat}, {lon})"
            raise InvalidCoordinateError(msg)
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            msg = f"Coordinate out of range: latitude={lat}, longitude={lon}"
            raise InvalidCoordinateError(
                msg, {"latitude": lat, "longitude": lon}
            )
        return Coordinate(lat, lon)

    @staticmethod
    def _coerce(point: Coordinate | Iterable[float]) -> Coordinate:
        if isinstance(point, Coordinate):
            return GeoMath.coordinate(point.latitude, point.longitude)
        lat, lon = point
        return GeoMath.coordinate(lat, lon)

    @staticmethod
    def distance_km(
        a: Coordinate | Iterable[float],
        b: Coordinate | Iterable[float],
    ) -> float:
        """Great-circle distance in kilometers between two coordinates."""
        start = GeoMath._coerce(a)
        end = GeoMath._coerce(b)
        if start == end:
            return 0.0
        phi1 = math.radians(start.latitude)
        phi2 = math.radians(end.latitude)
        dphi = math.radians(end.latitude - start.latitude)
        dlmb = math.radians(end.longitude - start.longitude)
        h = (
            math.sin(dphi / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
        )
        return 2 * GeoMath.EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))

    @staticmethod
    def bearing(
        a: Coordinate | Iterable[float],
        b: Coordinate | Iterable[float],
    ) -> float:
        """Initial heading from ``a`` to ``b`` in degrees, 0-360 clockwise from north."""
        start = GeoMath._coerce(a)
        end = GeoMath._coerce(b)
        phi1 = math.radians(start.latitude)
        phi2 = math.radians(end.latitude)
        dlmb = math.radians(end.longitude - start.longitude)
        x = math.sin(dlmb) * math.cos(phi2)
        y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(
            phi2
        ) * math.cos(dlmb)
        return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0

    @staticmethod
    def interpolate(
        a: Coordinate | Iterable[float],
        b: Coordinate | Iterable[float],
        n: int,
    ) -> InterpolatedSegment:
        """``n`` evenly spaced points between ``a`` and ``b``, endpoints excluded."""
        if n < 0:
            msg = f"Interpolation point count must be >= 0, got {n}"
            raise ValidationError(msg)
        return InterpolatedSegment(GeoMath._coerce(a), GeoMath._coerce(b), n)


def line_geometry(points: Iterable[Coordinate]) -> dict[str, Any] | None:
    """GeoJSON Point/LineString for an ordered run of coordinates."""
    coords = [point.as_lon_lat() for point in points]
    if not coords:
        return None
    if len(coords) == 1:
        return {"type": "Point", "coordinates": coords[0]}
    return {"type": "LineString", "coordinates": coords}


__all__ = ["Coordinate", "GeoMath", "InterpolatedSegment", "line_geometry"]
