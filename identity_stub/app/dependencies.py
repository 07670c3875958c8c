import logging
import secrets

from fastapi import Header, HTTPException, status

from . import config

logger = logging.getLogger(__name__)


def verify_service_secret(x_service_secret: str | None = Header(None)) -> str:
    """
    Only callers presenting the shared service secret may verify tokens or
    report usage. Compared in constant time.
    """
    expected = config.settings.SERVICE_SECRET
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: SERVICE_SECRET not set",
        )
    if x_service_secret is None or not secrets.compare_digest(x_service_secret, expected):
        logger.warning("Rejected call with missing or wrong X-Service-Secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid service secret")
    return x_service_secret
