"""
Application state container.

Holds the node's long-lived service objects. One AppState is built per
application and attached as app.state.app_state; routes reach it through
get_app_state() rather than module globals.
"""

import logging
from typing import Optional

import httpx
from fastapi import HTTPException, Request, status

from .auth.verifier import TokenVerifier
from .clients.identity import IdentityClient
from .config import Settings
from .proxy.forwarder import Forwarder
from .usage.ledger import UsageLedger

logger = logging.getLogger(__name__)


class AppState:
    """
    Shared resources for one node process.

    Lifecycle:
        start() launches the periodic usage flush.
        stop() runs the final flush, then closes the HTTP clients it owns.
    """

    def __init__(
        self,
        settings: Settings,
        identity_http: Optional[httpx.AsyncClient] = None,
        target_http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Node configuration
            identity_http: Client for the identity service (created if omitted)
            target_http: Client for outbound fetches (created if omitted)
        """
        self.settings = settings
        self._owns_identity_http = identity_http is None
        self._owns_target_http = target_http is None

        self.identity_http = identity_http or httpx.AsyncClient()
        self.target_http = target_http or httpx.AsyncClient(follow_redirects=True)

        self.identity_client = IdentityClient(self.identity_http, settings)
        self.verifier = TokenVerifier(
            self.identity_client,
            ttl_seconds=settings.TOKEN_CACHE_TTL_SECONDS,
        )
        self.ledger = UsageLedger(
            self.identity_client,
            interval_seconds=settings.usage_report_interval_seconds,
            max_pending=settings.MAX_PENDING_USAGE,
        )
        self.forwarder = Forwarder(self.target_http, user_agent=settings.USER_AGENT)

    @property
    def region(self) -> str:
        return self.settings.KEYFETCH_REGION

    async def start(self) -> None:
        self.ledger.start()

    async def stop(self) -> None:
        try:
            await self.ledger.stop()
        finally:
            self.verifier.clear()
            if self._owns_target_http:
                await self.target_http.aclose()
            if self._owns_identity_http:
                await self.identity_http.aclose()
            logger.info("Closed outbound HTTP clients")


def get_app_state(request: Request) -> AppState:
    """
    Dependency to get the node's AppState.

    Raises:
        HTTPException: 503 if the application has no state attached
    """
    app_state = getattr(request.app.state, "app_state", None)
    if app_state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Node not initialized",
        )
    return app_state
