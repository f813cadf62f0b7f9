import logging

import pytest
from fastapi import HTTPException, status

from core.api import api_route
from core.exceptions import (
    AuthenticationException,
    ConfigInUseError,
    EcoRideException,
    InvalidCoordinateError,
    InvalidRideStateError,
    NoActiveConfigError,
    ResourceNotFoundException,
    StoreUnavailableException,
    ValidationException,
)

logger = logging.getLogger("tests.core_api")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "expected_status", "expected_detail"),
    [
        (ValidationException("bad input"), status.HTTP_400_BAD_REQUEST, "bad input"),
        (
            InvalidCoordinateError("latitude out of range"),
            status.HTTP_400_BAD_REQUEST,
            "latitude out of range",
        ),
        (
            ResourceNotFoundException("missing"),
            status.HTTP_404_NOT_FOUND,
            "missing",
        ),
        (
            NoActiveConfigError("no active config"),
            status.HTTP_404_NOT_FOUND,
            "no active config",
        ),
        (
            InvalidRideStateError("ride closed"),
            status.HTTP_409_CONFLICT,
            "ride closed",
        ),
        (
            ConfigInUseError("config in use"),
            status.HTTP_409_CONFLICT,
            "config in use",
        ),
        (
            AuthenticationException("no auth"),
            status.HTTP_401_UNAUTHORIZED,
            "no auth",
        ),
        (
            StoreUnavailableException("db down"),
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "db down",
        ),
        (
            EcoRideException("unclassified"),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "unclassified",
        ),
    ],
)
async def test_api_route_maps_domain_exceptions(
    exc: Exception,
    expected_status: int,
    expected_detail: str,
) -> None:
    @api_route(logger)
    async def handler():
        raise exc

    with pytest.raises(HTTPException) as raised:
        await handler()

    assert raised.value.status_code == expected_status
    assert raised.value.detail == expected_detail


@pytest.mark.asyncio
async def test_api_route_sets_retry_after_for_unavailable_store() -> None:
    @api_route(logger)
    async def handler():
        raise StoreUnavailableException("db down")

    with pytest.raises(HTTPException) as raised:
        await handler()

    assert raised.value.headers == {"Retry-After": "5"}


@pytest.mark.asyncio
async def test_api_route_allows_http_exception_passthrough() -> None:
    @api_route(logger)
    async def handler():
        raise HTTPException(status_code=418, detail="nope")

    with pytest.raises(HTTPException) as raised:
        await handler()

    assert raised.value.status_code == 418
    assert raised.value.detail == "nope"


@pytest.mark.asyncio
async def test_api_route_wraps_unexpected_exception() -> None:
    @api_route(logger)
    async def handler():
        raise ValueError("boom")

    with pytest.raises(HTTPException) as raised:
        await handler()

    assert raised.value.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert raised.value.detail == "boom"


@pytest.mark.asyncio
async def test_api_route_returns_result() -> None:
    @api_route(logger)
    async def handler(value: int):
        return {"value": value}

    assert await handler(3) == {"value": 3}
