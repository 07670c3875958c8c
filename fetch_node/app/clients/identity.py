"""
Identity Service Client
=======================

Owns both outbound calls the node makes to the identity/billing service:

- POST /v1/services/verify : exchange a bearer token for identity facts
- POST /v1/services/usage  : submit a batch of usage records

Every request carries the X-Service-Secret header. Failures are raised as
IdentityServiceError; callers decide whether that means "deny" (verification)
or "retry later" (usage).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import UsageRecord, VerificationResult

logger = logging.getLogger(__name__)


VERIFY_OPERATION = "proxy_request"
VERIFY_QUANTITY = 1


class IdentityServiceError(Exception):
    """Identity service unreachable, or answered with something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class IdentityClient:
    """
    Thin async client for the identity/billing service.

    The underlying httpx.AsyncClient is owned by the caller (created in the
    application lifespan) so tests can hand in one backed by a mock transport.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self._http = http_client
        self._settings = settings

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Service-Secret": self._settings.SERVICE_SECRET,
        }

    async def verify(self, token: str) -> VerificationResult:
        """
        Ask the identity service about a token.

        The body is decoded whatever the HTTP status, since rejections come
        back as {"valid": false, "error": ...} with a 4xx status.

        Args:
            token: Bearer token exactly as presented by the agent

        Returns:
            VerificationResult parsed from the response body

        Raises:
            IdentityServiceError: On transport failure or an undecodable body
        """
        payload = {
            "token": token,
            "service": self._settings.SERVICE_NAME,
            "operation": VERIFY_OPERATION,
            "quantity": VERIFY_QUANTITY,
        }

        try:
            response = await self._http.post(
                self._settings.verify_url,
                json=payload,
                headers=self._headers(),
                timeout=self._settings.IDENTITY_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise IdentityServiceError(f"Verify request failed: {e}") from e

        try:
            data = response.json()
            return VerificationResult.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise IdentityServiceError(
                f"Undecodable verify response: {e}",
                status_code=response.status_code,
            ) from e

    async def submit_usage(self, records: List[UsageRecord]) -> Dict[str, Any]:
        """
        Submit one batch of usage records.

        Args:
            records: Records drained from the usage ledger

        Returns:
            Acknowledgement body ({processed, total_credits_deducted}), or an
            empty dict if the service answered 2xx with a non-JSON body

        Raises:
            IdentityServiceError: On transport failure or a non-2xx status
        """
        payload = {
            "service": self._settings.SERVICE_NAME,
            "region": self._settings.KEYFETCH_REGION,
            "records": [record.model_dump() for record in records],
        }

        try:
            response = await self._http.post(
                self._settings.usage_url,
                json=payload,
                headers=self._headers(),
                timeout=self._settings.IDENTITY_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise IdentityServiceError(f"Usage request failed: {e}") from e

        if not response.is_success:
            raise IdentityServiceError(
                f"Usage report rejected: {response.text}",
                status_code=response.status_code,
            )

        try:
            ack = response.json()
        except ValueError:
            logger.warning("Usage acknowledgement was not JSON")
            return {}

        return ack if isinstance(ack, dict) else {}
