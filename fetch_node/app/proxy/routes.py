"""
Proxy Routes - Agent Request Forwarding
========================================

This module implements the agent-facing endpoints of a regional node.

Request Flow (POST /v1/fetch):
------------------------------
1. Bearer token verified through the node's TokenVerifier (dependency)
2. Agent must be able to afford the call (402 otherwise)
3. Body parsed and validated: url required, URL must parse, host must not be
   on the internal block list
4. Outbound call executed by the Forwarder with a clamped timeout
5. One usage record queued for every completed forward attempt, including
   upstream error statuses, timeouts and transport failures
6. Normalized envelope returned

Endpoints:
----------
- POST /v1/fetch: Forward an HTTP request on the agent's behalf
- GET /v1/usage: Agent balance and pending usage on this node
- GET /v1/regions: Static region catalog
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ..auth.dependencies import require_fetch_agent, require_usage_agent
from ..errors import (
    BlockedHostError,
    PaymentError,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from ..models import (
    ErrorResponse,
    FetchResponse,
    UsageMetadata,
    UsageRecord,
    UsageStatsResponse,
    VerificationResult,
)
from ..regions import is_known_region, regions_payload
from ..state import AppState, get_app_state
from .forwarder import (
    clamp_timeout,
    is_blocked_host,
    normalize_method,
    parse_target_url,
)

logger = logging.getLogger(__name__)

USAGE_OPERATION = "proxy_request"

# Create router
proxy_router = APIRouter(prefix="/v1")


# ============================================================================
# Payload Parsing
# ============================================================================

async def read_fetch_payload(request: Request) -> Dict[str, Any]:
    """
    Read the fetch body as a JSON object.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")

    return payload


def validate_fetch_payload(payload: Dict[str, Any]):
    """
    Apply the fetch payload rules in order.

    Returns:
        Parsed target URL parts

    Raises:
        ValidationError: Missing url, unparseable url, bad headers
        BlockedHostError: Host is on the internal block list
    """
    if not payload.get("url"):
        raise ValidationError("Missing required field: url")

    target = parse_target_url(payload["url"])

    headers = payload.get("headers")
    if headers is not None and not isinstance(headers, dict):
        raise ValidationError("Invalid headers")

    if is_blocked_host(target.hostname):
        raise BlockedHostError("Internal URLs not allowed")

    return target


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.post(
    "/fetch",
    response_model=FetchResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def proxy_fetch(
    request: Request,
    agent: VerificationResult = Depends(require_fetch_agent),
    app_state: AppState = Depends(get_app_state),
) -> FetchResponse:
    """
    Forward an HTTP request on behalf of the authenticated agent.

    Returns:
        FetchResponse envelope with the target's status, headers and body

    Raises:
        PaymentError, ValidationError, BlockedHostError: Rejected before forwarding
        UpstreamTimeout, UpstreamError: Forward attempted and failed (usage recorded)
    """
    settings = app_state.settings

    if agent.can_afford is False:
        raise PaymentError(
            "Insufficient credits",
            details={
                "balance": agent.balance,
                "cost_per_request": agent.cost_per_unit,
            },
        )

    payload = await read_fetch_payload(request)
    target = validate_fetch_payload(payload)

    method = normalize_method(payload.get("method"))
    timeout_ms = clamp_timeout(payload.get("timeout"), settings.MAX_FETCH_TIMEOUT_MS)

    requested_region = payload.get("region")
    if requested_region and requested_region != app_state.region:
        # Region selection happens at the edge; whatever reaches this node is served here
        logger.info(
            "Requested region differs from serving region",
            extra={
                "requested": requested_region,
                "serving": app_state.region,
                "known_region": is_known_region(requested_region),
            },
        )

    logger.info(
        "Forwarding request",
        extra={
            "agent_id": agent.agent_id,
            "method": method,
            "target_domain": target.hostname,
            "timeout_ms": timeout_ms,
        },
    )

    try:
        result = await app_state.forwarder.forward(
            payload["url"].strip(),
            method=method,
            headers=payload.get("headers"),
            body=payload.get("body"),
            timeout_ms=timeout_ms,
        )
    except (UpstreamTimeout, UpstreamError) as e:
        _record_usage(app_state, agent, target.hostname, e.latency_ms, e.status_code, 0)
        e.details.update({"region": app_state.region, "latency_ms": e.latency_ms})
        raise

    _record_usage(
        app_state, agent, target.hostname, result.latency_ms, result.status, result.bytes
    )

    return FetchResponse(
        status=result.status,
        headers=result.headers,
        body=result.body,
        region=app_state.region,
        latency_ms=result.latency_ms,
    )


def _record_usage(
    app_state: AppState,
    agent: VerificationResult,
    target_domain: str,
    latency_ms: int,
    status_code: int,
    body_bytes: int,
) -> None:
    app_state.ledger.record(
        UsageRecord(
            agent_id=agent.agent_id,
            operation=USAGE_OPERATION,
            quantity=1,
            metadata=UsageMetadata(
                region=app_state.region,
                target_domain=target_domain,
                latency_ms=latency_ms,
                status=status_code,
                bytes=body_bytes,
            ),
        )
    )


@proxy_router.get(
    "/usage",
    response_model=UsageStatsResponse,
    responses={401: {"model": ErrorResponse}},
)
async def usage_stats(
    agent: VerificationResult = Depends(require_usage_agent),
    app_state: AppState = Depends(get_app_state),
) -> UsageStatsResponse:
    """
    Report the agent's balance and its records still pending on this node.
    """
    return UsageStatsResponse(
        agent_id=agent.agent_id,
        email=agent.email,
        balance=agent.balance,
        region=app_state.region,
        pending_records=app_state.ledger.pending_for(agent.agent_id),
        cost_per_request=agent.cost_per_unit,
    )


@proxy_router.get("/regions")
async def list_regions(app_state: AppState = Depends(get_app_state)) -> Dict[str, Any]:
    """Static region catalog plus the region this node serves."""
    return regions_payload(app_state.region)
