"""
Forwarding Engine
=================

Executes the outbound HTTP call on an agent's behalf and normalizes the
result into a ForwardResult.

Safety constraints:
-------------------
1. Target host checked against a literal block list (localhost, 127.0.0.1,
   10.*, 192.168.*) after IPv4 spellings such as 127.1 or 0x7f000001 are
   normalized to dotted quads. This is a best-effort guard only: 172.16.0.0/12,
   link-local, IPv6 loopback and DNS rebinding are not covered.
2. Caller timeout clamped to MAX_FETCH_TIMEOUT_MS and enforced as a total
   deadline over connect, send and body read.
3. No retries: a timeout or transport failure is terminal for that call.
"""

import asyncio
import json
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import SplitResult, urlsplit

import httpx

from ..errors import UpstreamError, UpstreamTimeout, ValidationError

logger = logging.getLogger(__name__)


BLOCKED_HOSTS = ("localhost", "127.0.0.1")
BLOCKED_HOST_PREFIXES = ("10.", "192.168.")
BODYLESS_METHODS = ("GET", "HEAD")


@dataclass
class ForwardResult:
    """Normalized outcome of a completed outbound call."""
    status: int
    headers: Dict[str, str]
    body: str
    bytes: int
    latency_ms: int


# ============================================================================
# Request Preparation
# ============================================================================

def parse_target_url(url: Any) -> SplitResult:
    """
    Parse a caller-supplied target URL.

    Raises:
        ValidationError: If the URL is not a string with a scheme and host
    """
    if not isinstance(url, str):
        raise ValidationError("Invalid URL")

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        _ = parts.port  # raises on a malformed port
        httpx.URL(url.strip())
    except (ValueError, httpx.InvalidURL):
        raise ValidationError("Invalid URL")

    if not parts.scheme or not hostname:
        raise ValidationError("Invalid URL")

    return parts


def normalize_host(hostname: str) -> str:
    """
    Lower-cased hostname, with shorthand, decimal and hex IPv4 spellings
    (127.1, 2130706433, 0x7f000001) rewritten as dotted quads.
    """
    host = hostname.lower().rstrip(".")
    try:
        return socket.inet_ntoa(socket.inet_aton(host))
    except (OSError, ValueError):
        return host


def is_blocked_host(hostname: str) -> bool:
    """Literal-prefix internal network check on the normalized hostname."""
    host = normalize_host(hostname)
    return host in BLOCKED_HOSTS or host.startswith(BLOCKED_HOST_PREFIXES)


def clamp_timeout(value: Any, maximum: int) -> int:
    """
    Clamp a caller timeout (ms) to (0, maximum].

    Missing, non-numeric and non-positive values mean "use the maximum".
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return maximum
    if value <= 0:
        return maximum
    return int(min(value, maximum))


def normalize_method(value: Any) -> str:
    if not value or not isinstance(value, str):
        return "GET"
    return value.strip().upper()


def build_outbound_headers(
    user_agent: str,
    caller_headers: Optional[Dict[str, Any]] = None,
) -> httpx.Headers:
    """
    Default identifying User-Agent, overridable by the caller.

    Caller header names are matched case-insensitively.
    """
    headers = httpx.Headers({"User-Agent": user_agent})
    for name, value in (caller_headers or {}).items():
        headers[str(name)] = value if isinstance(value, str) else str(value)
    return headers


def encode_body(method: str, body: Any) -> Optional[str]:
    """Request body to send, or None for GET/HEAD or an empty body."""
    if method in BODYLESS_METHODS or body is None or body == "":
        return None
    if isinstance(body, str):
        return body
    return json.dumps(body)


def flatten_headers(headers: httpx.Headers) -> Dict[str, str]:
    """
    One string per header name.

    Repeated headers collapse into a single comma-joined value; callers
    cannot tell them apart afterwards.
    """
    return {name: value for name, value in headers.items()}


# ============================================================================
# Forwarder
# ============================================================================

class Forwarder:
    """
    Executes outbound calls with a shared httpx.AsyncClient.

    The client is owned by the application lifespan so tests can substitute
    one built on httpx.MockTransport.
    """

    def __init__(self, http_client: httpx.AsyncClient, user_agent: str):
        self._http = http_client
        self._user_agent = user_agent

    async def forward(
        self,
        target_url: str,
        method: str = "GET",
        headers: Optional[Dict[str, Any]] = None,
        body: Any = None,
        timeout_ms: int = 30000,
    ) -> ForwardResult:
        """
        Perform the outbound call.

        Preconditions (URL parsed, host allowed, timeout clamped) are the
        caller's responsibility.

        Args:
            target_url: Absolute URL to call
            method: Upper-case HTTP method
            headers: Caller-supplied request headers
            body: Caller-supplied body (string or JSON-serializable)
            timeout_ms: Total deadline for the call

        Returns:
            ForwardResult for any HTTP response, including error statuses

        Raises:
            UpstreamTimeout: The deadline passed before the body was read
            UpstreamError: Any other transport failure
        """
        outbound_headers = build_outbound_headers(self._user_agent, headers)
        content = encode_body(method, body)
        timeout_seconds = timeout_ms / 1000.0

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._http.request(
                    method,
                    target_url,
                    headers=outbound_headers,
                    content=content,
                    timeout=timeout_seconds,
                ),
                timeout=timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            latency_ms = _elapsed_ms(start)
            logger.warning(
                "Outbound request timeout",
                extra={"method": method, "timeout_ms": timeout_ms, "latency_ms": latency_ms},
            )
            raise UpstreamTimeout(latency_ms=latency_ms)
        except httpx.HTTPError as e:
            latency_ms = _elapsed_ms(start)
            logger.warning(
                f"Outbound request failed: {e}",
                extra={"method": method, "latency_ms": latency_ms},
            )
            raise UpstreamError(str(e) or type(e).__name__, latency_ms=latency_ms)

        latency_ms = _elapsed_ms(start)
        return ForwardResult(
            status=response.status_code,
            headers=flatten_headers(response.headers),
            body=response.text,
            bytes=len(response.content),
            latency_ms=latency_ms,
        )


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))
