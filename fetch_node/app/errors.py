"""
Error taxonomy for the proxy node.

Every rejection on the request path is raised as a GatewayError subclass and
rendered by the application's exception handler as {"error": message, **details}
with the subclass's HTTP status.
"""

from typing import Any, Dict, Optional

from fastapi import status


class GatewayError(Exception):
    """Base exception for request-path failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_content(self) -> Dict[str, Any]:
        """Convert to the JSON body returned to the caller."""
        content: Dict[str, Any] = {"error": self.message}
        content.update(self.details)
        return content


class AuthError(GatewayError):
    """Missing or invalid token, including an unreachable identity service."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_ERROR"


class PaymentError(GatewayError):
    """Agent cannot afford the request."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "PAYMENT_REQUIRED"


class ValidationError(GatewayError):
    """Malformed fetch payload."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class BlockedHostError(ValidationError):
    """Target host is on the internal-network block list."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "BLOCKED_HOST"


class UpstreamTimeout(GatewayError):
    """Outbound call exceeded its deadline."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "UPSTREAM_TIMEOUT"

    def __init__(self, latency_ms: int, message: str = "Request timeout"):
        self.latency_ms = latency_ms
        super().__init__(message)


class UpstreamError(GatewayError):
    """Outbound call failed before a response arrived."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, latency_ms: int):
        self.latency_ms = latency_ms
        super().__init__(message)
