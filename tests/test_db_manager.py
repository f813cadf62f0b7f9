import pytest
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    NetworkTimeout,
    OperationFailure,
)

from core.exceptions import StoreUnavailableError
from db.manager import DatabaseManager, db_manager


def _flaky(failures: list[Exception], result="ok"):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return operation, calls


def test_database_manager_is_singleton() -> None:
    assert DatabaseManager() is db_manager


@pytest.mark.asyncio
async def test_retry_recovers_from_connection_errors() -> None:
    operation, calls = _flaky([AutoReconnect("primary stepped down")])

    assert await db_manager.execute_with_retry(operation, max_attempts=3) == "ok"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_retry_gives_up_with_store_unavailable() -> None:
    operation, calls = _flaky([NetworkTimeout("timed out")] * 3)

    with pytest.raises(StoreUnavailableError) as raised:
        await db_manager.execute_with_retry(
            operation,
            max_attempts=3,
            operation_name="append checkpoint",
        )

    assert calls["count"] == 3
    assert "append checkpoint" in raised.value.message


@pytest.mark.asyncio
async def test_transient_operation_failure_is_retried() -> None:
    operation, calls = _flaky([OperationFailure("interrupted", code=11602)])

    assert await db_manager.execute_with_retry(operation, max_attempts=2) == "ok"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_duplicate_key_propagates_immediately() -> None:
    operation, calls = _flaky([DuplicateKeyError("E11000 duplicate key error")])

    with pytest.raises(DuplicateKeyError):
        await db_manager.execute_with_retry(operation, max_attempts=3)
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_non_transient_operation_failure_propagates() -> None:
    operation, calls = _flaky([OperationFailure("bad query", code=2)])

    with pytest.raises(OperationFailure):
        await db_manager.execute_with_retry(operation, max_attempts=3)
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_connection_error_marks_client_for_reconnect(monkeypatch) -> None:
    monkeypatch.setattr(db_manager, "_connection_healthy", True)
    operation, _ = _flaky([AutoReconnect("primary stepped down")])

    await db_manager.execute_with_retry(operation, max_attempts=2)

    assert db_manager._connection_healthy is False
