"""Versioned fare configuration per vehicle type.

Only one row per vehicle type is active at a time. Replacing a config
retires the active row (``isActive=False``, ``supersededAt`` set) and
inserts a new one, so earlier prices stay explainable.
"""

from __future__ import annotations

import contextlib
import logging
import math
from collections import Counter
from typing import TYPE_CHECKING, Any

from beanie import PydanticObjectId
from bson import ObjectId

from checkpoints.services.ride_locks import KeyedLockRegistry
from core.date_utils import get_current_utc_time
from core.exceptions import (
    ConfigInUseError,
    InvalidVehicleTypeError,
    NoActiveConfigError,
    ResourceNotFoundError,
    ValidationError,
)
from db.manager import db_manager
from db.models import AdditionalCharges, FareConfig, VehicleType

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

logger = logging.getLogger(__name__)

RATE_FIELDS = ("baseFare", "perKmRate", "minimumFare", "baseDistanceKm")
HOUR_FIELDS = (
    "nightStartHour",
    "nightEndHour",
    "peakStartHour",
    "peakEndHour",
)
AMOUNT_FIELDS = (
    "nightSurchargePercent",
    "peakHourSurchargePercent",
    "perPassengerCharge",
)

DEFAULT_FARE_CONFIGS: list[dict[str, Any]] = [
    {
        "vehicleType": VehicleType.TRICYCLE,
        "baseFare": 20.0,
        "perKmRate": 2.8,
        "minimumFare": 20.0,
        "baseDistanceKm": 1.0,
        "additionalCharges": {
            "nightSurchargePercent": 10.0,
            "nightStartHour": 22,
            "nightEndHour": 5,
            "peakHourSurchargePercent": 0.0,
            "peakStartHour": 7,
            "peakEndHour": 9,
            "perPassengerCharge": 5.0,
        },
        "description": "Standard tricycle fare",
    },
    {
        "vehicleType": VehicleType.SINGLE_MOTORCYCLE,
        "baseFare": 15.0,
        "perKmRate": 2.0,
        "minimumFare": 15.0,
        "baseDistanceKm": 1.0,
        "additionalCharges": {
            "nightSurchargePercent": 10.0,
            "nightStartHour": 22,
            "nightEndHour": 5,
            "peakHourSurchargePercent": 0.0,
            "peakStartHour": 7,
            "peakEndHour": 9,
            "perPassengerCharge": 0.0,
        },
        "description": "Standard single motorcycle fare",
    },
    {
        "vehicleType": VehicleType.CAB,
        "baseFare": 40.0,
        "perKmRate": 13.5,
        "minimumFare": 40.0,
        "baseDistanceKm": 1.0,
        "additionalCharges": {
            "nightSurchargePercent": 20.0,
            "nightStartHour": 22,
            "nightEndHour": 5,
            "peakHourSurchargePercent": 0.0,
            "peakStartHour": 7,
            "peakEndHour": 9,
            "perPassengerCharge": 0.0,
        },
        "description": "Standard cab fare",
    },
]


class ConfigUsageRegistry:
    """Counts pricing requests in flight, keyed by vehicle type or config id.

    A request holds its vehicle type while it looks up the active config
    and the config id while it prices with it.
    """

    def __init__(self) -> None:
        self._holders: Counter[str] = Counter()

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        self._holders[key] += 1
        try:
            yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] <= 0:
                del self._holders[key]

    def in_use(self, key: str) -> bool:
        return self._holders.get(key, 0) > 0

    def config_in_use(self, config: FareConfig) -> bool:
        """Whether a pricing request holds ``config`` or may be about to read it."""
        if self.in_use(str(config.id)):
            return True
        return config.isActive and self.in_use(config.vehicleType.value)


FARE_REQUESTS = ConfigUsageRegistry()

# upsert and toggle are serialized per vehicle type
VEHICLE_LOCKS = KeyedLockRegistry()


def parse_vehicle_type(value: Any) -> VehicleType:
    """Resolve a vehicle type name, ignoring case and surrounding spaces."""
    if isinstance(value, VehicleType):
        return value
    name = str(value or "").strip().lower()
    for vehicle_type in VehicleType:
        if vehicle_type.value.lower() == name:
            return vehicle_type
    allowed = ", ".join(v.value for v in VehicleType)
    msg = f"Unknown vehicle type {value!r}; expected one of {allowed}"
    raise InvalidVehicleTypeError(msg)


def parse_config_id(config_id: str) -> PydanticObjectId:
    if not config_id or not ObjectId.is_valid(str(config_id)):
        msg = f"Invalid fare config id: {config_id!r}"
        raise ValidationError(msg)
    return PydanticObjectId(str(config_id))


def _non_negative(name: str, value: Any) -> float:
    if isinstance(value, bool):
        msg = f"{name} must be a number"
        raise ValidationError(msg)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        msg = f"{name} must be a number, got {value!r}"
        raise ValidationError(msg) from e
    if not math.isfinite(number) or number < 0:
        msg = f"{name} must be a finite number >= 0, got {value!r}"
        raise ValidationError(msg)
    return number


def _hour(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = f"{name} must be an hour between 0 and 23, got {value!r}"
        raise ValidationError(msg)
    if value != int(value) or not 0 <= value <= 23:
        msg = f"{name} must be an hour between 0 and 23, got {value!r}"
        raise ValidationError(msg)
    return int(value)


def validate_fare_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a fare config payload.

    Missing surcharge settings take the ``AdditionalCharges`` defaults.
    ``baseDistanceKm`` defaults to 0.

    Raises:
        InvalidVehicleTypeError: Unknown vehicle type
        ValidationError: Negative or non-numeric amounts, hours outside 0-23
    """
    data: dict[str, Any] = {
        "vehicleType": parse_vehicle_type(payload.get("vehicleType")),
    }
    for field in RATE_FIELDS:
        value = payload.get(field)
        if value is None:
            if field == "baseDistanceKm":
                value = 0.0
            else:
                msg = f"{field} is required"
                raise ValidationError(msg)
        data[field] = _non_negative(field, value)

    charges = {
        key: value
        for key, value in (payload.get("additionalCharges") or {}).items()
        if value is not None
    }
    unknown = set(charges) - set(HOUR_FIELDS) - set(AMOUNT_FIELDS)
    if unknown:
        msg = f"Unknown additionalCharges fields: {', '.join(sorted(unknown))}"
        raise ValidationError(msg)
    for field in HOUR_FIELDS:
        if field in charges:
            charges[field] = _hour(field, charges[field])
    for field in AMOUNT_FIELDS:
        if field in charges:
            charges[field] = _non_negative(field, charges[field])
    data["additionalCharges"] = AdditionalCharges(**charges)

    data["isActive"] = bool(payload.get("isActive", True))
    data["description"] = str(payload.get("description") or "")
    return data


class FareConfigService:
    """Service class for fare config versions."""

    @staticmethod
    async def _find_active(
        vehicle_type: VehicleType,
        *,
        exclude_id: PydanticObjectId | None = None,
    ) -> FareConfig | None:
        query: dict[str, Any] = {"vehicleType": vehicle_type.value, "isActive": True}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return await db_manager.execute_with_retry(
            lambda: FareConfig.find_one(query),
            operation_name="find active fare config",
        )

    @staticmethod
    async def _retire(config: FareConfig, now: datetime) -> None:
        config.isActive = False
        config.supersededAt = now
        config.updatedAt = now
        await db_manager.execute_with_retry(
            config.save,
            operation_name="retire fare config",
        )
        logger.info(
            "Retired fare config %s for %s",
            config.id,
            config.vehicleType.value,
        )

    @staticmethod
    async def _reinstate(config: FareConfig, now: datetime) -> None:
        """Undo ``_retire`` after the write that replaced ``config`` failed."""
        config.isActive = True
        config.supersededAt = None
        config.updatedAt = now
        await db_manager.execute_with_retry(
            config.save,
            operation_name="reinstate fare config",
        )
        logger.warning(
            "Reinstated fare config %s for %s after a failed replacement",
            config.id,
            config.vehicleType.value,
        )

    @staticmethod
    async def upsert(payload: dict[str, Any]) -> FareConfig:
        """
        Store a new fare config version for a vehicle type.

        When the new row is active, the current active row (if any) is
        retired first and reinstated if the insert fails. Inactive
        submissions are stored as history only.
        """
        data = validate_fare_payload(payload)
        vehicle_type: VehicleType = data["vehicleType"]

        async with VEHICLE_LOCKS.hold(vehicle_type.value):
            now = get_current_utc_time()
            retired: FareConfig | None = None
            if data["isActive"]:
                retired = await FareConfigService._find_active(vehicle_type)
                if retired is not None:
                    await FareConfigService._retire(retired, now)

            config = FareConfig(**data, createdAt=now, updatedAt=now)
            try:
                await db_manager.execute_with_retry(
                    config.insert,
                    operation_name="insert fare config",
                )
            except Exception:
                if retired is not None:
                    await FareConfigService._reinstate(retired, now)
                raise

        logger.info(
            "Stored %s fare config %s for %s",
            "active" if config.isActive else "inactive",
            config.id,
            vehicle_type.value,
        )
        return config

    @staticmethod
    async def list_configs(include_inactive: bool = False) -> list[FareConfig]:
        query: dict[str, Any] = {} if include_inactive else {"isActive": True}
        configs = await db_manager.execute_with_retry(
            lambda: FareConfig.find(query)
            .sort([("vehicleType", 1), ("createdAt", -1)])
            .to_list(),
            operation_name="list fare configs",
        )
        logger.debug("Loaded %d fare configs", len(configs))
        return configs

    @staticmethod
    async def get(config_id: str) -> FareConfig:
        object_id = parse_config_id(config_id)
        config = await db_manager.execute_with_retry(
            lambda: FareConfig.get(object_id),
            operation_name="get fare config",
        )
        if config is None:
            msg = f"Fare config {config_id} not found"
            raise ResourceNotFoundError(msg, {"id": config_id})
        return config

    @staticmethod
    async def get_active(vehicle_type: VehicleType | str) -> FareConfig:
        vehicle_type = parse_vehicle_type(vehicle_type)
        config = await FareConfigService._find_active(vehicle_type)
        if config is None:
            msg = f"No active fare config for {vehicle_type.value}"
            raise NoActiveConfigError(msg, {"vehicleType": vehicle_type.value})
        return config

    @staticmethod
    async def toggle_active(config_id: str) -> FareConfig:
        """Flip ``isActive``; activating retires the vehicle type's other active row."""
        config = await FareConfigService.get(config_id)
        vehicle_type = config.vehicleType

        async with VEHICLE_LOCKS.hold(vehicle_type.value):
            config = await FareConfigService.get(config_id)
            now = get_current_utc_time()
            previous_state = (config.isActive, config.supersededAt, config.updatedAt)
            other: FareConfig | None = None
            if config.isActive:
                config.isActive = False
            else:
                other = await FareConfigService._find_active(
                    vehicle_type,
                    exclude_id=config.id,
                )
                if other is not None:
                    await FareConfigService._retire(other, now)
                config.isActive = True
                config.supersededAt = None
            config.updatedAt = now
            try:
                await db_manager.execute_with_retry(
                    config.save,
                    operation_name="toggle fare config",
                )
            except Exception:
                config.isActive, config.supersededAt, config.updatedAt = previous_state
                if other is not None:
                    await FareConfigService._reinstate(other, now)
                raise

        logger.info(
            "Fare config %s for %s is now %s",
            config.id,
            vehicle_type.value,
            "active" if config.isActive else "inactive",
        )
        return config

    @staticmethod
    async def delete(config_id: str) -> dict[str, Any]:
        """Hard-delete a config no pricing request is using.

        An active config is also in use while a request for its vehicle
        type is still looking up the active row.
        """
        config = await FareConfigService.get(config_id)
        key = str(config.id)
        if FARE_REQUESTS.config_in_use(config):
            msg = f"Fare config {key} is being used by a pricing request"
            raise ConfigInUseError(msg, {"id": key})

        await db_manager.execute_with_retry(
            config.delete,
            operation_name="delete fare config",
        )
        logger.info("Deleted fare config %s for %s", key, config.vehicleType.value)
        return {"deleted": key, "vehicleType": config.vehicleType.value}

    @staticmethod
    async def initialize_defaults() -> dict[str, Any]:
        """Insert the default config for every vehicle type without an active one."""
        created: list[FareConfig] = []
        skipped: list[str] = []

        for default in DEFAULT_FARE_CONFIGS:
            data = validate_fare_payload(default)
            vehicle_type: VehicleType = data["vehicleType"]
            async with VEHICLE_LOCKS.hold(vehicle_type.value):
                if await FareConfigService._find_active(vehicle_type) is not None:
                    skipped.append(vehicle_type.value)
                    continue
                now = get_current_utc_time()
                config = FareConfig(**data, createdAt=now, updatedAt=now)
                await db_manager.execute_with_retry(
                    config.insert,
                    operation_name="insert default fare config",
                )
                created.append(config)

        logger.info(
            "Initialized default fare configs: %d created, %d skipped",
            len(created),
            len(skipped),
        )
        return {"created": created, "skipped": skipped}
