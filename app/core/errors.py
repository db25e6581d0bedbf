"""Domain errors raised by the services.

Routes never build error responses for these by hand: app.main registers a
single handler that renders ``{"detail": ..., "code": ...}`` with the
error's status code.
"""
from enum import Enum


class ErrorCode(Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ALREADY_ACTIVE = "ALREADY_ACTIVE"
    NOT_ACTIVE = "NOT_ACTIVE"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DUPLICATE_ACTIVE_BOOKING = "DUPLICATE_ACTIVE_BOOKING"
    OUTSTANDING_DUES = "OUTSTANDING_DUES"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    BOOKING_ID_UNAVAILABLE = "BOOKING_ID_UNAVAILABLE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    status_code = 400

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code.value}


class ValidationError(DomainError):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message)


class NotFoundError(DomainError):
    status_code = 404

    def __init__(self, entity: str) -> None:
        super().__init__(ErrorCode.NOT_FOUND, f"{entity} not found")
        self.entity = entity


class ForbiddenError(DomainError):
    status_code = 403

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message)


class InvalidTransitionError(DomainError):
    """Raised when a booking (or ledger entry) is not in a state that allows the action.

    ``current_status`` is surfaced to the caller so it can reconcile.
    """

    status_code = 409

    def __init__(self, current_status: str, action: str, code: ErrorCode = ErrorCode.INVALID_TRANSITION) -> None:
        super().__init__(code, f"Cannot {action}: status is {current_status}")
        self.current_status = current_status
        self.action = action

    def to_dict(self) -> dict:
        return {**super().to_dict(), "currentStatus": self.current_status}


class BookingExpiredError(DomainError):
    status_code = 409

    def __init__(self, booking_id: str) -> None:
        super().__init__(ErrorCode.BOOKING_EXPIRED, "Booking has expired")
        self.booking_id = booking_id


class CapacityExceededError(DomainError):
    status_code = 409

    def __init__(self, message: str = "No spots available on this floor") -> None:
        super().__init__(ErrorCode.CAPACITY_EXCEEDED, message)


class DuplicateActiveBookingError(DomainError):
    status_code = 409

    def __init__(self) -> None:
        super().__init__(ErrorCode.DUPLICATE_ACTIVE_BOOKING, "You already have an active booking")


class OutstandingDuesError(DomainError):
    status_code = 409

    def __init__(self, due_amount: int) -> None:
        super().__init__(
            ErrorCode.OUTSTANDING_DUES,
            "You have unpaid dues. Please clear them before making a new booking.",
        )
        self.due_amount = due_amount


class InsufficientFundsError(DomainError):
    """Only raised by explicit wallet operations; exit settlement routes a shortfall to dues."""

    status_code = 400

    def __init__(self, balance: int, amount: int) -> None:
        super().__init__(ErrorCode.INSUFFICIENT_FUNDS, "Insufficient wallet balance")
        self.balance = balance
        self.amount = amount


class EmailTakenError(DomainError):
    status_code = 409

    def __init__(self, email: str) -> None:
        super().__init__(ErrorCode.EMAIL_TAKEN, "A user with this email already exists")
        self.email = email


class BookingIdUnavailableError(DomainError):
    """Every candidate booking id collided; the client may simply retry."""

    status_code = 503

    def __init__(self, attempts: int) -> None:
        super().__init__(ErrorCode.BOOKING_ID_UNAVAILABLE, "Could not allocate a booking id, please retry")
        self.attempts = attempts
