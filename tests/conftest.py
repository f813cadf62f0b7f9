import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from db.models import ALL_DOCUMENT_MODELS

AUTH_HEADERS = {"Authorization": "Bearer test-token"}


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_AUTH_TOKEN", "test-token")
    monkeypatch.setenv("MONGODB_DATABASE", "ecoride_test")


@pytest.fixture(autouse=True)
def _no_retry_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    from db.manager import db_manager

    monkeypatch.setattr(db_manager, "_retry_backoff", (0.0,))


@pytest.fixture
async def beanie_db():
    client = AsyncMongoMockClient(tz_aware=True)
    database = client["test_db"]
    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
    return database


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return dict(AUTH_HEADERS)
