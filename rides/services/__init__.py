"""Ride services."""

from rides.services.ride_service import RideService

__all__ = ["RideService"]
