"""
Data Models Module

This module defines Pydantic models for the data that flows through the node:

- Identity models (verification results from the identity service)
- Usage models (records queued for batched billing)
- Proxy models (fetch response envelope)
- System models (health, usage stats)
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Identity Models
# ============================================================================

class VerificationResult(BaseModel):
    """Identity and affordability facts for one bearer token."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    valid: bool = Field(..., description="Whether the token is accepted")
    agent_id: Optional[str] = Field(None, description="Agent identifier, present iff valid")
    email: Optional[str] = Field(None, description="Agent contact email")
    balance: Optional[float] = Field(None, description="Current credit balance")
    cost_per_unit: Optional[float] = Field(None, description="Credits charged per request")
    can_afford: Optional[bool] = Field(None, description="Whether the next request is affordable")
    error: Optional[str] = Field(None, description="Rejection reason, present iff invalid")

    @classmethod
    def rejected(cls, reason: str) -> "VerificationResult":
        return cls(valid=False, error=reason)


# ============================================================================
# Usage Models
# ============================================================================

class UsageMetadata(BaseModel):
    """Per-call details attached to a usage record."""
    region: str
    target_domain: str
    latency_ms: int
    status: int
    bytes: int


class UsageRecord(BaseModel):
    """One billable proxy call queued for reporting."""
    agent_id: str
    operation: str = Field(default="proxy_request")
    quantity: int = Field(default=1, ge=1)
    timestamp: str = Field(default_factory=lambda: utc_timestamp())
    metadata: UsageMetadata


# ============================================================================
# Proxy Models
# ============================================================================

class FetchResponse(BaseModel):
    """Envelope returned for a completed forward."""
    status: int = Field(..., description="HTTP status of the target response")
    headers: Dict[str, str] = Field(default_factory=dict, description="Target response headers")
    body: str = Field(..., description="Target response body as text")
    region: str = Field(..., description="Region that served the request")
    latency_ms: int = Field(..., description="Outbound call latency in milliseconds")


class UsageStatsResponse(BaseModel):
    """Body of GET /v1/usage."""
    agent_id: Optional[str]
    email: Optional[str]
    balance: Optional[float]
    region: str
    pending_records: int
    cost_per_request: Optional[float]


# ============================================================================
# System Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    region: str = Field(..., description="Region served by this node")
    timestamp: str = Field(default_factory=lambda: utc_timestamp())
    pending_usage_records: int = Field(..., description="Usage records awaiting flush")


class ErrorResponse(BaseModel):
    """Error envelope; extra keys (balance, region, latency_ms) ride alongside."""
    model_config = ConfigDict(extra="allow")

    error: str


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
