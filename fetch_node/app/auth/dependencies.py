"""
FastAPI dependencies for agent authentication.

Both authenticated endpoints share the same gate: a Bearer token in the
Authorization header, verified through the node's TokenVerifier.
"""

import logging
from typing import Optional

from fastapi import Request

from ..errors import AuthError
from ..models import VerificationResult
from ..state import AppState, get_app_state

logger = logging.getLogger(__name__)


BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an Authorization header value.

    The scheme match is case-sensitive. "Bearer " with nothing after it yields
    an empty token, which the verifier rejects as "No token provided".

    Returns:
        Token string, or None when the header is absent or not Bearer
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):]


async def authenticate(request: Request, missing_header_message: str) -> VerificationResult:
    """
    Resolve the calling agent or raise AuthError.

    Args:
        request: Incoming request
        missing_header_message: Error text when no Bearer header is present

    Returns:
        A valid VerificationResult

    Raises:
        AuthError: Header missing/malformed, or the token was not accepted
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthError(missing_header_message)

    state: AppState = get_app_state(request)
    result = await state.verifier.verify(token)

    if not result.valid:
        raise AuthError(result.error or "Invalid token")

    return result


async def require_fetch_agent(request: Request) -> VerificationResult:
    """Dependency for POST /v1/fetch."""
    return await authenticate(request, "Missing or invalid Authorization header")


async def require_usage_agent(request: Request) -> VerificationResult:
    """Dependency for GET /v1/usage."""
    return await authenticate(request, "Unauthorized")
