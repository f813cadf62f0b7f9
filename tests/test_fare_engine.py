from datetime import UTC, datetime

import pytest
import pytz

from core.exceptions import InvalidVehicleTypeError, ValidationError
from fares.services.fare_config_service import DEFAULT_FARE_CONFIGS, parse_vehicle_type
from fares.services.fare_engine import FareEngine, FareRules, is_hour_in_window

MANILA = pytz.timezone("Asia/Manila")


def _manila(hour: int, minute: int = 0) -> datetime:
    return MANILA.localize(datetime(2024, 5, 1, hour, minute))


def _default(vehicle_type: str) -> dict:
    for config in DEFAULT_FARE_CONFIGS:
        if config["vehicleType"].value == vehicle_type:
            return config
    raise KeyError(vehicle_type)


TRICYCLE = _default("Tricycle")


@pytest.mark.parametrize(
    ("hour", "expected"),
    [(22, True), (23, True), (0, True), (2, True), (4, True), (5, False), (12, False)],
)
def test_night_window_wraps_past_midnight(hour: int, expected: bool) -> None:
    assert is_hour_in_window(hour, 22, 5) is expected


@pytest.mark.parametrize(
    ("hour", "expected"),
    [(6, False), (7, True), (8, True), (9, False)],
)
def test_same_day_window_is_half_open(hour: int, expected: bool) -> None:
    assert is_hour_in_window(hour, 7, 9) is expected


def test_equal_start_and_end_disables_window() -> None:
    assert not any(is_hour_in_window(hour, 8, 8) for hour in range(24))


def test_tricycle_night_fare() -> None:
    breakdown = FareEngine.compute(TRICYCLE, 5, 1, _manila(23))
    response = breakdown.to_response()

    assert response["breakdown"] == {
        "baseFare": 20.0,
        "distanceFare": 11.2,
        "nightSurcharge": 3.12,
        "peakSurcharge": 0.0,
        "passengerSurcharge": 0.0,
    }
    assert response["totalFare"] == 34.32
    assert response["isNight"] is True
    assert response["isPeak"] is False
    assert response["minimumFareApplied"] is False


def test_short_daytime_trip_pays_base_fare() -> None:
    breakdown = FareEngine.compute(TRICYCLE, 0.5, 1, _manila(12))
    assert breakdown.distanceFare == 0.0
    assert breakdown.to_response()["totalFare"] == 20.0
    assert breakdown.isNight is False


def test_minimum_fare_applies_when_total_is_lower() -> None:
    config = {**TRICYCLE, "baseFare": 10.0, "minimumFare": 25.0}
    breakdown = FareEngine.compute(config, 0.2, 1, _manila(12))
    assert breakdown.totalFare == 25.0
    assert breakdown.minimumFareApplied is True


def test_booking_hour_uses_fare_timezone() -> None:
    # 15:00 UTC is 23:00 in Manila
    utc_time = datetime(2024, 5, 1, 15, 0, tzinfo=UTC)
    assert FareEngine.compute(TRICYCLE, 5, 1, utc_time).isNight is True
    assert (
        FareEngine.compute(TRICYCLE, 5, 1, utc_time, timezone_name="UTC").isNight
        is False
    )


def test_night_and_peak_surcharges_stack() -> None:
    config = {
        **TRICYCLE,
        "additionalCharges": {
            **TRICYCLE["additionalCharges"],
            "nightStartHour": 6,
            "nightEndHour": 10,
            "peakHourSurchargePercent": 5.0,
        },
    }
    breakdown = FareEngine.compute(config, 5, 1, _manila(8))
    assert breakdown.isNight and breakdown.isPeak
    assert breakdown.nightSurcharge == pytest.approx(3.12)
    assert breakdown.peakSurcharge == pytest.approx(1.56)
    assert breakdown.totalFare == pytest.approx(31.2 + 3.12 + 1.56)


def test_passenger_surcharge_counts_extra_passengers() -> None:
    breakdown = FareEngine.compute(TRICYCLE, 1, 3, _manila(12))
    assert breakdown.passengerSurcharge == 10.0
    assert breakdown.totalFare == 30.0


def test_cab_night_surcharge_is_higher() -> None:
    breakdown = FareEngine.compute(_default("Cab"), 3, 1, _manila(2))
    # 40 + 2 km * 13.5 = 67, plus 20 % at night
    assert breakdown.totalFare == pytest.approx(80.4)


def test_missing_booking_time_skips_windows() -> None:
    breakdown = FareEngine.compute(TRICYCLE, 5, 1, None)
    assert not breakdown.isNight
    assert breakdown.totalFare == pytest.approx(31.2)


def test_compute_is_idempotent() -> None:
    rules = FareRules.from_config(TRICYCLE)
    first = FareEngine.compute(rules, 7.3, 2, _manila(23, 30))
    second = FareEngine.compute(rules, 7.3, 2, _manila(23, 30))
    assert first == second
    assert first.to_response() == second.to_response()


def test_amounts_keep_full_precision_until_response() -> None:
    breakdown = FareEngine.compute(TRICYCLE, 1.333, 1, _manila(12))
    assert breakdown.distanceFare == pytest.approx(0.333 * 2.8)
    assert breakdown.distanceFare != round(breakdown.distanceFare, 2)
    assert breakdown.to_response()["breakdown"]["distanceFare"] == 0.93


@pytest.mark.parametrize(
    ("distance", "passengers"),
    [(-1, 1), (float("nan"), 1), ("far", 1), (5, 0), (5, 1.5), (5, True)],
)
def test_compute_rejects_invalid_trips(distance, passengers) -> None:
    with pytest.raises(ValidationError):
        FareEngine.compute(TRICYCLE, distance, passengers, _manila(12))


def test_parse_vehicle_type_is_case_insensitive() -> None:
    assert parse_vehicle_type(" single motorcycle ").value == "Single Motorcycle"
    with pytest.raises(InvalidVehicleTypeError):
        parse_vehicle_type("Jeepney")


def test_response_carries_context() -> None:
    response = FareEngine.compute(
        {**TRICYCLE, "_id": "665f1c2e8a1b2c3d4e5f6a7b"},
        2.5,
        2,
        _manila(23),
    ).to_response()
    assert response["vehicleType"] == "Tricycle"
    assert response["distanceKm"] == 2.5
    assert response["passengerCount"] == 2
    assert response["minimumFare"] == 20.0
    assert response["fareConfigId"] == "665f1c2e8a1b2c3d4e5f6a7b"
    assert response["bookingTime"] == "2024-05-01T15:00:00Z"
