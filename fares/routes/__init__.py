"""Fare API routes."""

from fares.routes import estimates, fare_config

__all__ = ["estimates", "fare_config"]
