import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from pymongo.errors import DuplicateKeyError

from checkpoints.services import RIDE_LOCKS, CheckpointStore, RouteReconstructor
from core.exceptions import (
    InvalidRideStateError,
    OutOfOrderTimestampError,
    ResourceNotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from db.models import Checkpoint, Place, Ride, RideStatus, VehicleType
from rides.services import RideService

START = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)


async def _ride(**kwargs) -> Ride:
    ride = Ride(
        riderId="rider-1",
        customerId="customer-1",
        vehicleType=VehicleType.TRICYCLE,
        **kwargs,
    )
    await ride.insert()
    return ride


def _location(lat: float, lon: float) -> dict:
    return {"latitude": lat, "longitude": lon}


@pytest.mark.asyncio
async def test_append_derives_ledger_fields(beanie_db) -> None:
    ride = await _ride()
    ride_id = str(ride.id)

    first = await CheckpointStore.append(
        ride_id, "ACCEPTED", _location(14.60, 121.00), START
    )
    second = await CheckpointStore.append(
        ride_id,
        "PICKUP",
        _location(14.61, 121.00),
        (START + timedelta(seconds=45)).isoformat(),
        address="Quiapo",
    )

    assert first.sequenceNumber == 1
    assert first.cumulativeDistance == 0.0
    assert first.riderId == "rider-1"
    assert first.customerId == "customer-1"
    assert second.sequenceNumber == 2
    assert second.distanceFromPrevious == pytest.approx(1.112, abs=1e-3)
    assert second.cumulativeDistance == second.distanceFromPrevious
    assert second.durationFromPrevious == 45.0
    assert len(second.interpolationPoints) == 5
    assert second.clockSkewSeconds > 0
    assert len(RIDE_LOCKS) == 0


@pytest.mark.asyncio
async def test_concurrent_appends_get_gapless_sequence(beanie_db) -> None:
    ride = await _ride()
    ride_id = str(ride.id)

    await asyncio.gather(
        *(
            CheckpointStore.append(
                ride_id,
                "ONGOING",
                _location(14.60 + i * 0.001, 121.00),
                START,
            )
            for i in range(10)
        ),
    )

    ledger = await CheckpointStore.list_by_ride(ride_id)
    assert [cp.sequenceNumber for cp in ledger] == list(range(1, 11))
    cumulative = [cp.cumulativeDistance for cp in ledger]
    assert cumulative == sorted(cumulative)
    assert len(RIDE_LOCKS) == 0


@pytest.mark.asyncio
async def test_rides_keep_independent_sequences(beanie_db) -> None:
    ride_a = await _ride()
    ride_b = await _ride()

    await CheckpointStore.append(str(ride_a.id), "ACCEPTED", _location(0, 0), START)
    await CheckpointStore.append(str(ride_a.id), "PICKUP", _location(0, 0.01), START)
    b_first = await CheckpointStore.append(
        str(ride_b.id), "ACCEPTED", _location(0, 0), START
    )

    assert b_first.sequenceNumber == 1
    assert b_first.cumulativeDistance == 0.0


@pytest.mark.asyncio
async def test_out_of_order_capture_is_rejected(beanie_db) -> None:
    ride = await _ride()
    ride_id = str(ride.id)
    await CheckpointStore.append(ride_id, "ACCEPTED", _location(0, 0), START)

    with pytest.raises(OutOfOrderTimestampError):
        await CheckpointStore.append(
            ride_id,
            "PICKUP",
            _location(0, 0.01),
            START - timedelta(minutes=1),
        )

    assert len(await CheckpointStore.list_by_ride(ride_id)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [RideStatus.COMPLETED, RideStatus.CANCELLED])
async def test_closed_ride_rejects_checkpoints(beanie_db, status) -> None:
    ride = await _ride(status=status)
    with pytest.raises(InvalidRideStateError):
        await CheckpointStore.append(str(ride.id), "ONGOING", _location(0, 0), START)


@pytest.mark.asyncio
async def test_unknown_ride_rejects_checkpoints(beanie_db) -> None:
    with pytest.raises(InvalidRideStateError):
        await CheckpointStore.append(
            "665f1c2e8a1b2c3d4e5f6a7b", "ONGOING", _location(0, 0), START
        )


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_touching_the_store(beanie_db) -> None:
    ride = await _ride()
    ride_id = str(ride.id)

    with pytest.raises(ValidationError):
        await CheckpointStore.append(ride_id, "TELEPORTED", _location(0, 0), START)
    with pytest.raises(ValidationError):
        await CheckpointStore.append(ride_id, "ONGOING", _location(0, 0), "yesterday")
    with pytest.raises(ValidationError):
        await CheckpointStore.append("not-an-id", "ONGOING", _location(0, 0), START)

    assert await Checkpoint.find_all().count() == 0


@pytest.mark.asyncio
async def test_sequence_collision_is_retried(beanie_db, monkeypatch) -> None:
    ride = await _ride()
    ride_id = str(ride.id)
    original_insert = Checkpoint.insert
    calls = {"count": 0}

    async def flaky_insert(self, *args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise DuplicateKeyError("E11000 duplicate key error")
        return await original_insert(self, *args, **kwargs)

    monkeypatch.setattr(Checkpoint, "insert", flaky_insert)

    checkpoint = await CheckpointStore.append(
        ride_id, "ACCEPTED", _location(0, 0), START
    )
    assert checkpoint.sequenceNumber == 1
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_persistent_collisions_surface_as_unavailable(
    beanie_db, monkeypatch
) -> None:
    ride = await _ride()

    async def always_taken(self, *args, **kwargs):
        raise DuplicateKeyError("E11000 duplicate key error")

    monkeypatch.setattr(Checkpoint, "insert", always_taken)

    with pytest.raises(StoreUnavailableError):
        await CheckpointStore.append(str(ride.id), "ACCEPTED", _location(0, 0), START)
    assert len(RIDE_LOCKS) == 0


@pytest.mark.asyncio
async def test_reconstruct_uses_ride_addresses_as_fallback(beanie_db) -> None:
    ride = await _ride(
        pickup=Place(address="Divisoria", latitude=14.6, longitude=120.97),
        drop=Place(address="Intramuros", latitude=14.59, longitude=120.97),
    )
    ride_id = str(ride.id)
    await CheckpointStore.append(ride_id, "PICKUP", _location(14.6, 120.97), START)
    await CheckpointStore.append(
        ride_id,
        "DROPOFF",
        _location(14.59, 120.97),
        START + timedelta(minutes=6),
        address="Gate 3, Intramuros",
    )

    route, loaded = await RouteReconstructor.reconstruct(ride_id)

    assert loaded.id == ride.id
    assert route.checkpointCount == 2
    assert route.pickupAddress == "Divisoria"
    assert route.dropoffAddress == "Gate 3, Intramuros"
    assert route.totalDuration == 360.0
    assert len(route.polyline) == 2 + 5


@pytest.mark.asyncio
async def test_reconstruct_known_ride_without_checkpoints(beanie_db) -> None:
    ride = await _ride()
    route, _ = await RouteReconstructor.reconstruct(str(ride.id))
    assert route.checkpointCount == 0
    assert route.totalDistance == 0.0


@pytest.mark.asyncio
async def test_reconstruct_unknown_ride(beanie_db) -> None:
    with pytest.raises(ResourceNotFoundError):
        await RouteReconstructor.reconstruct("665f1c2e8a1b2c3d4e5f6a7b")


@pytest.mark.asyncio
async def test_closing_a_ride_waits_for_an_append_in_progress(
    beanie_db, monkeypatch
) -> None:
    ride = await _ride()
    ride_id = str(ride.id)
    original_latest = CheckpointStore.latest
    entered = asyncio.Event()
    release = asyncio.Event()

    async def paused_latest(key):
        entered.set()
        await release.wait()
        return await original_latest(key)

    monkeypatch.setattr(CheckpointStore, "latest", paused_latest)

    append_task = asyncio.create_task(
        CheckpointStore.append(ride_id, "DROPOFF", _location(0, 0), START)
    )
    await entered.wait()
    close_task = asyncio.create_task(
        RideService.update_status(ride_id, RideStatus.COMPLETED)
    )
    for _ in range(5):
        await asyncio.sleep(0)
    assert not close_task.done()

    release.set()
    checkpoint = await append_task
    closed = await close_task

    assert checkpoint.sequenceNumber == 1
    assert closed.status is RideStatus.COMPLETED
    assert await Checkpoint.find_all().count() == 1
    with pytest.raises(InvalidRideStateError):
        await CheckpointStore.append(
            ride_id, "DROPOFF", _location(0, 0.01), START + timedelta(minutes=1)
        )
    assert len(RIDE_LOCKS) == 0


@pytest.mark.asyncio
async def test_ride_closed_elsewhere_is_rechecked_before_insert(
    beanie_db, monkeypatch
) -> None:
    ride = await _ride()
    ride_id = str(ride.id)
    original_latest = CheckpointStore.latest

    async def closed_meanwhile(key):
        stored = await Ride.get(ride.id)
        stored.status = RideStatus.CANCELLED
        await stored.save()
        return await original_latest(key)

    async def always_taken(self, *args, **kwargs):
        raise DuplicateKeyError("E11000 duplicate key error")

    monkeypatch.setattr(CheckpointStore, "latest", closed_meanwhile)
    monkeypatch.setattr(Checkpoint, "insert", always_taken)

    with pytest.raises(InvalidRideStateError):
        await CheckpointStore.append(ride_id, "ONGOING", _location(0, 0), START)


@pytest.mark.asyncio
async def test_capture_times_keep_millisecond_precision(beanie_db) -> None:
    ride = await _ride()
    ride_id = str(ride.id)

    first = await CheckpointStore.append(
        ride_id, "ACCEPTED", _location(0, 0), START + timedelta(microseconds=900)
    )
    same_millisecond = await CheckpointStore.append(
        ride_id, "PICKUP", _location(0, 0), START + timedelta(microseconds=500)
    )

    assert first.capturedAt == START
    assert same_millisecond.durationFromPrevious == 0.0
    stored = await CheckpointStore.list_by_ride(ride_id)
    assert [c.durationFromPrevious for c in stored] == [0.0, 0.0]

    with pytest.raises(OutOfOrderTimestampError):
        await CheckpointStore.append(
            ride_id, "ONGOING", _location(0, 0), START - timedelta(microseconds=100)
        )
