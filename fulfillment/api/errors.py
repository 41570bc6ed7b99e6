from fastapi import HTTPException, status

from fulfillment.services.exceptions import (
    FulfillmentError,
    InvalidRequestError,
    OutOfStockError,
    LockConflictError,
    LockTimeoutError,
    ConstraintViolationError,
    StorageFailureError,
)

_STATUS_CODES = {
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    OutOfStockError: status.HTTP_409_CONFLICT,
    LockConflictError: status.HTTP_409_CONFLICT,
    LockTimeoutError: status.HTTP_409_CONFLICT,
    ConstraintViolationError: status.HTTP_409_CONFLICT,
    StorageFailureError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: FulfillmentError) -> HTTPException:
    """Translate a service error into the HTTP response callers see."""
    status_code = _STATUS_CODES.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(status_code=status_code, detail=str(error), headers=headers)
