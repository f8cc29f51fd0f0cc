"""
Error mapping - Ledger exceptions to HTTP responses.
"""

from fastapi import HTTPException, status
from structlog import get_logger

from app.exceptions import (
    BillingError,
    ConflictError,
    DataIntegrityError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidRequestError,
    NoSubscriptionError,
    ResourceNotFoundError,
    SubscriptionInactiveError,
    WriteVerificationError,
)
from app.observability import metrics

logger = get_logger(__name__)


def http_error(exc: BillingError) -> HTTPException:
    """
    Translate a ledger exception into the HTTPException a route should raise.

    Usage:
        except BillingError as exc:
            raise http_error(exc) from exc
    """
    if isinstance(exc, InsufficientPointsError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": str(exc),
                "required": exc.required,
                "available": exc.available,
            },
        )
    if isinstance(exc, NoSubscriptionError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(exc))
    if isinstance(exc, (SubscriptionInactiveError, ForbiddenError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ResourceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, InvalidRequestError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    if isinstance(exc, (WriteVerificationError, DataIntegrityError)):
        logger.error("ledger_write_failed", error=str(exc), error_type=type(exc).__name__)
        metrics.record_error(type(exc).__name__, "http_request")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Ledger write failed. Please retry.",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
