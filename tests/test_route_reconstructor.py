import pytest

from checkpoints.services.route_reconstructor import (
    POINT_CHECKPOINT,
    POINT_INTERPOLATED,
    build_route,
)


def _checkpoint(
    seq: int,
    lat: float,
    lon: float,
    *,
    cumulative: float = 0.0,
    duration: float = 0.0,
    checkpoint_type: str = "ONGOING",
    address: str | None = None,
    interpolation: list[tuple[float, float]] | None = None,
) -> dict:
    return {
        "sequenceNumber": seq,
        "checkpointType": checkpoint_type,
        "location": {"latitude": lat, "longitude": lon},
        "address": address,
        "cumulativeDistance": cumulative,
        "durationFromPrevious": duration,
        "interpolationPoints": [
            {"latitude": a, "longitude": b} for a, b in interpolation or []
        ],
    }


def test_empty_ledger_gives_empty_route() -> None:
    route = build_route([])
    assert route.checkpointCount == 0
    assert route.polyline == []
    assert route.totalDistance == 0.0
    assert route.totalDuration == 0.0
    assert route.geometry is None


def test_single_checkpoint_route() -> None:
    route = build_route([_checkpoint(1, 14.6, 121.0, checkpoint_type="PICKUP")])
    assert route.checkpointCount == 1
    assert route.totalDistance == 0.0
    assert route.totalDuration == 0.0
    assert route.polyline == [
        {
            "latitude": 14.6,
            "longitude": 121.0,
            "kind": POINT_CHECKPOINT,
            "sequenceNumber": 1,
        },
    ]
    assert route.geometry == {"type": "Point", "coordinates": [121.0, 14.6]}


def test_interpolation_points_precede_their_checkpoint() -> None:
    ledger = [
        _checkpoint(1, 0.0, 0.0),
        _checkpoint(
            2,
            0.0,
            0.3,
            cumulative=33.4,
            duration=60,
            interpolation=[(0.0, 0.1), (0.0, 0.2)],
        ),
    ]
    route = build_route(ledger)

    assert [p["kind"] for p in route.polyline] == [
        POINT_CHECKPOINT,
        POINT_INTERPOLATED,
        POINT_INTERPOLATED,
        POINT_CHECKPOINT,
    ]
    assert [p["sequenceNumber"] for p in route.polyline] == [1, 2, 2, 2]
    assert [p["longitude"] for p in route.polyline] == [0.0, 0.1, 0.2, 0.3]
    assert route.geometry["type"] == "LineString"
    assert len(route.geometry["coordinates"]) == 4


def test_totals_come_from_the_ledger() -> None:
    ledger = [
        _checkpoint(1, 0.0, 0.0),
        _checkpoint(2, 0.0, 0.01, cumulative=1.1, duration=30),
        _checkpoint(3, 0.0, 0.02, cumulative=2.2, duration=45.5),
    ]
    route = build_route(ledger)
    assert route.totalDistance == pytest.approx(2.2)
    assert route.totalDuration == pytest.approx(75.5)
    assert route.checkpointCount == 3


def test_input_order_does_not_matter() -> None:
    ledger = [
        _checkpoint(1, 0.0, 0.0),
        _checkpoint(2, 0.0, 0.01, cumulative=1.1, duration=30),
        _checkpoint(3, 0.0, 0.02, cumulative=2.2, duration=30),
    ]
    forward = build_route(ledger)
    shuffled = build_route([ledger[2], ledger[0], ledger[1]])
    assert forward.to_response() == shuffled.to_response()


def test_addresses_from_first_pickup_and_last_dropoff() -> None:
    ledger = [
        _checkpoint(1, 0.0, 0.0, checkpoint_type="ACCEPTED", address="Depot"),
        _checkpoint(2, 0.0, 0.01, checkpoint_type="PICKUP"),
        _checkpoint(3, 0.0, 0.02, checkpoint_type="PICKUP", address="Quiapo"),
        _checkpoint(4, 0.0, 0.03, checkpoint_type="PICKUP", address="Later"),
        _checkpoint(5, 0.0, 0.04, checkpoint_type="DROPOFF", address="Sampaloc"),
        _checkpoint(6, 0.0, 0.05, checkpoint_type="DROPOFF", address="España"),
    ]
    route = build_route(ledger)
    assert route.pickupAddress == "Quiapo"
    assert route.dropoffAddress == "España"


def test_response_rounds_distance() -> None:
    route = build_route(
        [
            _checkpoint(1, 0.0, 0.0),
            _checkpoint(2, 0.0, 0.01, cumulative=1.1119508, duration=5),
        ],
    )
    response = route.to_response()
    assert response["totalDistance"] == 1.112
    assert set(response) == {
        "checkpoints",
        "polyline",
        "totalDistance",
        "totalDuration",
        "checkpointCount",
        "pickupAddress",
        "dropoffAddress",
        "geometry",
    }
