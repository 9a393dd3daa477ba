"""
Translation of domain errors into HTTP errors
"""
from fastapi import HTTPException, status

from app.exceptions import (
    FeedbackError,
    OrderError,
    OrderNotFoundError,
    OrderValidationError,
    PaymentLinkError,
    PersistenceError,
    ProviderCodeNotFoundError,
    ReconciliationLookupError,
    StateTransitionError,
)

STATUS_CODES = {
    OrderValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrderNotFoundError: status.HTTP_404_NOT_FOUND,
    ProviderCodeNotFoundError: status.HTTP_404_NOT_FOUND,
    StateTransitionError: status.HTTP_409_CONFLICT,
    FeedbackError: status.HTTP_409_CONFLICT,
    ReconciliationLookupError: status.HTTP_502_BAD_GATEWAY,
    PaymentLinkError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error(error: OrderError) -> HTTPException:
    """HTTPException carrying the error's structured detail"""
    status_code = STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    if isinstance(error, PaymentLinkError) and not error.retryable:
        status_code = status.HTTP_409_CONFLICT
    return HTTPException(status_code=status_code, detail=error.to_detail())
