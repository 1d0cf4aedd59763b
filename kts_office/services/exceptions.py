from typing import Iterable


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when the hosted backend returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class ConflictError(DownstreamServiceError):
    """Raised when a write violates a unique constraint in the backend."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message, status_code=409, cause=cause)


class NotFoundError(ServiceError):
    """Raised when a requested record does not exist."""


class PermissionDeniedError(ServiceError):
    """Raised when the acting admin lacks the capability for an action."""

    def __init__(self, action: str):
        super().__init__(f"You don't have permission to perform '{action}'")
        self.action = action


class CouponRejectedError(ServiceError):
    """Raised when a coupon cannot be applied.

    ``reason`` is ``"invalid"`` for unknown, inactive or expired codes and
    ``"limit_reached"`` when the usage cap has been hit.
    """

    MESSAGES = {
        "invalid": "This coupon is invalid or expired.",
        "limit_reached": "This coupon has reached its limit.",
    }

    def __init__(self, reason: str):
        super().__init__(self.MESSAGES.get(reason, "This coupon cannot be applied."))
        self.reason = reason


class BookingValidationError(ServiceError):
    """Raised when required booking input is missing or not acceptable."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields = list(fields)


class InvalidTransitionError(ServiceError):
    """Raised when a state change is not allowed from the current state."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move from '{current}' to '{target}'")
        self.current = current
        self.target = target
