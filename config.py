"""Centralized configuration for environment variables.

This module is the single source of truth for configuration used across the
application. Import constants from here rather than calling os.getenv directly
in multiple places. Database connection settings live with the database
manager in ``db/manager.py``.
"""

from __future__ import annotations

import os
from typing import Final

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# --- Checkpoint Store ---
# Synthesized display points stored between consecutive checkpoints
CHECKPOINT_INTERPOLATION_POINTS: Final[int] = max(
    0, _int_env("CHECKPOINT_INTERPOLATION_POINTS", 5)
)
# Attempts before a sequence-number collision is reported as transient
CHECKPOINT_APPEND_MAX_ATTEMPTS: Final[int] = max(
    1, _int_env("CHECKPOINT_APPEND_MAX_ATTEMPTS", 3)
)


# --- Fare Engine ---
# Night/peak windows are evaluated on this wall clock
FARE_TIMEZONE: Final[str] = os.getenv("FARE_TIMEZONE", "Asia/Manila")


# --- API ---
CORS_ALLOWED_ORIGINS: Final[list[str]] = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
PORT: Final[int] = _int_env("PORT", 8080)
LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()


def get_api_auth_token() -> str | None:
    """Return the configured API token, re-reading the environment.

    Tests and long-running workers can rotate the token without reloading
    the module.
    """
    return os.getenv("API_AUTH_TOKEN", "").strip() or None


__all__ = [
    "CHECKPOINT_APPEND_MAX_ATTEMPTS",
    "CHECKPOINT_INTERPOLATION_POINTS",
    "CORS_ALLOWED_ORIGINS",
    "FARE_TIMEZONE",
    "LOG_LEVEL",
    "PORT",
    "get_api_auth_token",
]
