"""
Centralized exception hierarchy for domain-specific errors.

This module provides custom exception classes that represent specific
error conditions in the application, enabling better error handling and
client-side error recovery.
"""


class EcoRideError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(EcoRideError):
    """Exception raised when data validation fails."""


class InvalidCoordinateError(ValidationError):
    """Exception raised when a latitude/longitude pair is out of range."""


class InvalidVehicleTypeError(ValidationError):
    """Exception raised for a vehicle type with no pricing category."""


class OutOfOrderTimestampError(ValidationError):
    """Exception raised when a checkpoint predates the ride's previous one."""


class ResourceNotFoundError(EcoRideError):
    """Exception raised when a requested resource is not found."""


class NoActiveConfigError(ResourceNotFoundError):
    """Exception raised when a vehicle type has no active fare config."""


class ConflictError(EcoRideError):
    """Exception raised when a request conflicts with current resource state."""


class InvalidRideStateError(ConflictError):
    """Exception raised when a ride cannot accept new checkpoints."""


class ConfigInUseError(ConflictError):
    """Exception raised when deleting a fare config that is pricing a request."""


class StoreUnavailableError(EcoRideError):
    """Exception raised when persistence fails in a way that is safe to retry."""


class AuthenticationError(EcoRideError):
    """Exception raised when authentication fails."""


EcoRideException = EcoRideError
ValidationException = ValidationError
ResourceNotFoundException = ResourceNotFoundError
ConflictException = ConflictError
StoreUnavailableException = StoreUnavailableError
AuthenticationException = AuthenticationError
