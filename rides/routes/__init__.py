"""Ride API routes."""

from rides.routes import rides

__all__ = ["rides"]
