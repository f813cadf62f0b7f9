"""Fare computation from the active config of a vehicle type.

The formula:

    distanceFare       = max(0, distance - baseDistanceKm) * perKmRate
    nightSurcharge     = (baseFare + distanceFare) * nightPercent / 100   (night hours)
    peakSurcharge      = (baseFare + distanceFare) * peakPercent / 100    (peak hours)
    passengerSurcharge = max(0, passengers - 1) * perPassengerCharge
    totalFare          = max(baseFare + distanceFare + surcharges, minimumFare)

Night and peak windows are evaluated on the ``FARE_TIMEZONE`` wall clock
and both surcharges apply when the windows overlap.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import config
from checkpoints.services.route_reconstructor import RouteReconstructor
from core.date_utils import get_current_utc_time, local_hour, parse_timestamp
from core.exceptions import ValidationError
from core.serialization import serialize_datetime
from db.models import AdditionalCharges, FareConfig
from fares.services.fare_config_service import (
    FARE_REQUESTS,
    FareConfigService,
    parse_vehicle_type,
)

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


def is_hour_in_window(hour: int, start: int, end: int) -> bool:
    """Whether ``hour`` falls in ``[start, end)``, wrapping past midnight.

    ``start == end`` is an empty window.
    """
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


@dataclass(frozen=True)
class FareRules:
    """The pricing fields of a fare config, detached from the database."""

    vehicleType: str
    baseFare: float
    perKmRate: float
    minimumFare: float
    baseDistanceKm: float
    additionalCharges: AdditionalCharges
    configId: str | None = None

    @classmethod
    def from_config(cls, source: FareConfig | dict[str, Any]) -> FareRules:
        if isinstance(source, dict):
            charges = source.get("additionalCharges") or {}
            if not isinstance(charges, AdditionalCharges):
                charges = AdditionalCharges(**charges)
            vehicle_type = source["vehicleType"]
            config_id = source.get("_id") or source.get("id")
            return cls(
                vehicleType=getattr(vehicle_type, "value", vehicle_type),
                baseFare=float(source["baseFare"]),
                perKmRate=float(source["perKmRate"]),
                minimumFare=float(source["minimumFare"]),
                baseDistanceKm=float(source.get("baseDistanceKm") or 0.0),
                additionalCharges=charges,
                configId=str(config_id) if config_id else None,
            )
        return cls(
            vehicleType=source.vehicleType.value,
            baseFare=source.baseFare,
            perKmRate=source.perKmRate,
            minimumFare=source.minimumFare,
            baseDistanceKm=source.baseDistanceKm,
            additionalCharges=source.additionalCharges,
            configId=str(source.id) if source.id else None,
        )


@dataclass(frozen=True)
class FareBreakdown:
    baseFare: float
    distanceFare: float
    nightSurcharge: float
    peakSurcharge: float
    passengerSurcharge: float
    totalFare: float
    vehicleType: str
    distanceKm: float
    passengerCount: int
    bookingTime: datetime | None
    minimumFare: float
    minimumFareApplied: bool
    isNight: bool
    isPeak: bool
    fareConfigId: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Shape the dashboard reads, with amounts rounded to centavos."""
        return {
            "breakdown": {
                "baseFare": round(self.baseFare, 2),
                "distanceFare": round(self.distanceFare, 2),
                "nightSurcharge": round(self.nightSurcharge, 2),
                "peakSurcharge": round(self.peakSurcharge, 2),
                "passengerSurcharge": round(self.passengerSurcharge, 2),
            },
            "totalFare": round(self.totalFare, 2),
            "vehicleType": self.vehicleType,
            "distanceKm": round(self.distanceKm, 3),
            "passengerCount": self.passengerCount,
            "bookingTime": serialize_datetime(self.bookingTime),
            "minimumFare": round(self.minimumFare, 2),
            "minimumFareApplied": self.minimumFareApplied,
            "isNight": self.isNight,
            "isPeak": self.isPeak,
            "fareConfigId": self.fareConfigId,
        }


def _validate_trip(distance_km: Any, passenger_count: Any) -> tuple[float, int]:
    try:
        distance = float(distance_km)
    except (TypeError, ValueError) as e:
        msg = f"distanceKm must be a number, got {distance_km!r}"
        raise ValidationError(msg) from e
    if not math.isfinite(distance) or distance < 0:
        msg = f"distanceKm must be a finite number >= 0, got {distance_km!r}"
        raise ValidationError(msg)
    if isinstance(passenger_count, bool) or not isinstance(passenger_count, int):
        msg = f"passengerCount must be an integer, got {passenger_count!r}"
        raise ValidationError(msg)
    if passenger_count < 1:
        msg = f"passengerCount must be >= 1, got {passenger_count}"
        raise ValidationError(msg)
    return distance, passenger_count


class FareEngine:
    """Prices trips against fare configs."""

    @staticmethod
    def compute(
        fare_config: FareConfig | FareRules | dict[str, Any],
        distance_km: float,
        passenger_count: int = 1,
        booking_time: datetime | None = None,
        *,
        timezone_name: str | None = None,
    ) -> FareBreakdown:
        """
        Price one trip. Pure: the same inputs always give the same breakdown.

        Args:
            fare_config: Config document, rules or a plain dict of config fields
            distance_km: Trip distance, >= 0
            passenger_count: >= 1
            booking_time: Moment used for the night/peak windows; ``None``
                disables both windows
            timezone_name: Wall clock for the windows, ``FARE_TIMEZONE`` by default
        """
        rules = (
            fare_config
            if isinstance(fare_config, FareRules)
            else FareRules.from_config(fare_config)
        )
        distance, passengers = _validate_trip(distance_km, passenger_count)
        charges = rules.additionalCharges

        distance_fare = max(0.0, distance - rules.baseDistanceKm) * rules.perKmRate
        subtotal = rules.baseFare + distance_fare

        is_night = is_peak = False
        if booking_time is not None:
            hour = local_hour(booking_time, timezone_name or config.FARE_TIMEZONE)
            is_night = is_hour_in_window(
                hour,
                charges.nightStartHour,
                charges.nightEndHour,
            )
            is_peak = is_hour_in_window(
                hour,
                charges.peakStartHour,
                charges.peakEndHour,
            )

        night_surcharge = (
            subtotal * charges.nightSurchargePercent / 100 if is_night else 0.0
        )
        peak_surcharge = (
            subtotal * charges.peakHourSurchargePercent / 100 if is_peak else 0.0
        )
        passenger_surcharge = max(0, passengers - 1) * charges.perPassengerCharge

        total = subtotal + night_surcharge + peak_surcharge + passenger_surcharge
        minimum_applied = total < rules.minimumFare

        return FareBreakdown(
            baseFare=rules.baseFare,
            distanceFare=distance_fare,
            nightSurcharge=night_surcharge,
            peakSurcharge=peak_surcharge,
            passengerSurcharge=passenger_surcharge,
            totalFare=rules.minimumFare if minimum_applied else total,
            vehicleType=rules.vehicleType,
            distanceKm=distance,
            passengerCount=passengers,
            bookingTime=booking_time,
            minimumFare=rules.minimumFare,
            minimumFareApplied=minimum_applied,
            isNight=is_night,
            isPeak=is_peak,
            fareConfigId=rules.configId,
        )

    @staticmethod
    async def calculate(
        vehicle_type: str,
        distance_km: float,
        passenger_count: int = 1,
        booking_time: datetime | str | None = None,
    ) -> FareBreakdown:
        """
        Price a trip with the vehicle type's active config.

        The vehicle type is held in ``FARE_REQUESTS`` from before the
        lookup until the breakdown is built, and the config it resolved to
        is held while pricing, so neither can be deleted mid-calculation.

        Raises:
            InvalidVehicleTypeError: Unknown vehicle type
            ValidationError: Negative distance or fewer than one passenger
            NoActiveConfigError: The vehicle type has no active config
        """
        parsed_type = parse_vehicle_type(vehicle_type)
        _validate_trip(distance_km, passenger_count)
        if booking_time is None:
            when = get_current_utc_time()
        else:
            when = parse_timestamp(booking_time)
            if when is None:
                msg = f"Invalid bookingTime: {booking_time!r}"
                raise ValidationError(msg)

        with FARE_REQUESTS.hold(parsed_type.value):
            fare_config = await FareConfigService.get_active(parsed_type)
            with FARE_REQUESTS.hold(str(fare_config.id)):
                breakdown = FareEngine.compute(
                    fare_config,
                    distance_km,
                    passenger_count,
                    when,
                )

        logger.debug(
            "Priced %.3f km %s trip at %.2f",
            breakdown.distanceKm,
            parsed_type.value,
            breakdown.totalFare,
        )
        return breakdown

    @staticmethod
    async def price_ride(ride_id: str) -> FareBreakdown:
        """Price a recorded ride over its reconstructed distance."""
        route, ride = await RouteReconstructor.reconstruct(ride_id)
        if ride is None:
            msg = f"Ride {ride_id} has checkpoints but no ride record to price"
            raise ValidationError(msg, {"rideId": ride_id})
        return await FareEngine.calculate(
            ride.vehicleType.value,
            route.totalDistance,
            ride.passengerCount,
            ride.bookingTime,
        )
