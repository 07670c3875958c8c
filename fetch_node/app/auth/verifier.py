"""
Token verification with a positive-result TTL cache.

Repeated calls from the same agent should not cost a round trip to the
identity service on every request, so accepted tokens are remembered for a
short window. Rejections are never remembered: a failing token is re-checked
every time, and a one-off backend error can never be cached as accepted.

The identity service being unreachable is treated as a rejection (fail
closed), never as authorization.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..clients.identity import IdentityClient, IdentityServiceError
from ..models import VerificationResult

logger = logging.getLogger(__name__)


NO_TOKEN = "No token provided"
SERVICE_UNAVAILABLE = "Authentication service unavailable"


@dataclass(frozen=True)
class CacheEntry:
    result: VerificationResult
    expires_at: float


class TokenVerifier:
    """
    Resolves bearer tokens to VerificationResults, caching accepted ones.

    Lookups and inserts are synchronous, so on a single event loop a
    read-then-write on the cache cannot interleave with another coroutine.
    """

    def __init__(
        self,
        client: IdentityClient,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Identity service client used on cache misses
            ttl_seconds: Lifetime of a cached positive result
            clock: Monotonic time source, injectable for tests
        """
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    def _lookup(self, token: str) -> Optional[VerificationResult]:
        entry = self._cache.get(token)
        if entry and entry.expires_at > self._clock():
            return entry.result
        return None

    async def verify(self, token: str) -> VerificationResult:
        """
        Verify a token, consulting the cache first.

        Args:
            token: Bearer token string (may be empty)

        Returns:
            VerificationResult; never raises for backend failures
        """
        if not token:
            return VerificationResult.rejected(NO_TOKEN)

        cached = self._lookup(token)
        if cached is not None:
            return cached

        try:
            result = await self._client.verify(token)
        except IdentityServiceError as e:
            logger.error(
                f"Identity service verification error: {e}",
                extra={"status_code": e.status_code},
            )
            return VerificationResult.rejected(SERVICE_UNAVAILABLE)

        if result.valid and not result.agent_id:
            logger.error("Identity service accepted a token without an agent_id")
            return VerificationResult.rejected(SERVICE_UNAVAILABLE)

        if result.valid:
            self._cache[token] = CacheEntry(
                result=result,
                expires_at=self._clock() + self._ttl_seconds,
            )
        else:
            logger.info(
                "Token rejected by identity service",
                extra={"reason": result.error},
            )

        return result
