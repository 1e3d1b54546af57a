"""Errors raised by the managers, each with the HTTP status it maps to."""

from typing import Optional


class RentalAppError(Exception):
    """Base class for all errors the API turns into a JSON response."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RentalAppError):
    """Malformed or missing request data."""

    status_code = 400
    default_message = "Invalid input"


class InvalidDateRange(ValidationError):
    """Raised when the end date is not after the start date."""

    default_message = "End date must be after start date"


class AmountMismatch(ValidationError):
    """Raised when a payment amount differs from the rental total."""

    default_message = "Payment amount does not match rental total"


class NotFound(RentalAppError):
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    default_message = "User not found"


class CarNotFound(NotFound):
    default_message = "Car not found"


class RentalNotFound(NotFound):
    default_message = "Rental not found"


class PaymentNotFound(NotFound):
    default_message = "Payment not found"


class Conflict(RentalAppError):
    status_code = 400
    default_message = "Conflict"


class AlreadyPaid(Conflict):
    default_message = "Rental already paid"


class PersistenceError(RentalAppError):
    """Raised when the record store rejects or fails a read or write."""

    status_code = 500
    default_message = "Database error"


class Unauthorized(RentalAppError):
    status_code = 401
    default_message = "Unauthorized"
