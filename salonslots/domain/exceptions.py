"""
Domain-specific exception hierarchy for the salonslots application.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class InvalidArgument(BookingError, ValueError):
    """Raised when availability inputs are malformed."""


class NotFound(BookingError):
    """Raised when a referenced provider, service or booking does not exist."""


class ServiceInactive(BookingError):
    """Raised when a service exists but is no longer offered."""


class SlotConflict(BookingError):
    """Raised when the requested time is no longer available."""


class InvalidTransition(BookingError):
    """Raised when a booking cannot move to the requested status."""


class StoreError(BookingError):
    """Raised when the backing store cannot be read or written."""


class ConfigurationError(BookingError):
    """Raised when the configuration file is missing or invalid."""
