# orderflow/adapters/api/errors.py
from fastapi import HTTPException, status

from orderflow.core.domain.exceptions import (
    DomainError,
    DuplicateTransactionError,
    InvalidCursorError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderValidationError,
    UploadNotReplaceableError,
)

_STATUS_BY_ERROR = (
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateTransactionError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (UploadNotReplaceableError, status.HTTP_409_CONFLICT),
    (OrderValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidCursorError, status.HTTP_400_BAD_REQUEST),
)


def to_http_exception(exc: DomainError) -> HTTPException:
    """Maps a domain error to the HTTP status the API promises for it."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
