"""
Error types raised by the booking core and the booking service.

The API layer maps each of these to an HTTP status; the core itself never
logs or swallows them.
"""
from typing import List, Optional


class BookingError(Exception):
    """Base class for booking failures."""

    default_message = "Booking error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class InvalidIntervalError(BookingError):
    """Return instant not after pickup, or malformed date/time input."""

    default_message = "Return date and time must be after pickup date and time"


class BookingConflictError(BookingError):
    """Requested window overlaps a confirmed or active booking."""

    default_message = "Vehicle is not available for the selected dates and times"

    def __init__(self, conflicts: Optional[List] = None, message: Optional[str] = None) -> None:
        self.conflicts = list(conflicts or [])
        super().__init__(message)


class StillConflictingError(BookingError):
    """A pending booking no longer fits at confirmation time."""

    default_message = "Vehicle is no longer available for the selected dates"

    def __init__(self, conflicts: Optional[List] = None, message: Optional[str] = None) -> None:
        self.conflicts = list(conflicts or [])
        super().__init__(message)


class InvalidTransitionError(BookingError):
    default_message = "Booking cannot move to the requested status"


class CapacityExhaustedError(BookingError):
    default_message = "No free booking number could be allocated"


class DuplicateBookingNumberError(BookingError):
    default_message = "Booking number already exists"


class VehicleBusyError(BookingError):
    """Concurrent bookings kept changing the vehicle's schedule."""

    default_message = "Vehicle schedule is being updated, please retry"


class NotFoundError(BookingError):
    default_message = "Resource not found"
