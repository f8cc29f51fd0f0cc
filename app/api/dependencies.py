"""
FastAPI Dependencies - Service-to-service authentication.

Every ledger route is called by trusted backends (web app, scheduler), which
present the shared INTERNAL_API_KEY in the X-API-Key header.
"""

import secrets

from fastapi import Header, HTTPException, status
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError

logger = get_logger(__name__)


def verify_internal_api_key(api_key: str | None) -> None:
    """
    Check a presented key against the configured shared secret.

    Raises:
        AuthenticationError: Missing or wrong key
    """
    if not api_key:
        raise AuthenticationError("Missing X-API-Key header")
    if not secrets.compare_digest(api_key.encode(), settings.internal_api_key.encode()):
        raise AuthenticationError("Invalid API key")


async def require_api_key(
    x_api_key: str | None = Header(None, description="Internal API key"),
) -> None:
    """
    FastAPI dependency to validate the X-API-Key header.

    Usage:
        @router.post("/v1/internal/points/expire", dependencies=[Depends(require_api_key)])

    Raises:
        HTTPException 401 if missing or invalid
    """
    try:
        verify_internal_api_key(x_api_key)
    except AuthenticationError as exc:
        logger.warning("api_key_rejected", reason=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "ApiKey"},
        ) from exc
