from fastapi import HTTPException

from kts_office.services.exceptions import (
    BookingValidationError,
    ConflictError,
    CouponRejectedError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
)


def to_http_error(exc: ServiceError) -> HTTPException:
    """Translate a service failure into the HTTP error returned to the caller."""

    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, BookingValidationError):
        return HTTPException(status_code=422, detail={"message": str(exc), "fields": exc.fields})
    if isinstance(exc, CouponRejectedError):
        return HTTPException(status_code=422, detail={"message": str(exc), "reason": exc.reason})
    if isinstance(exc, (InvalidTransitionError, ConflictError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))
