"""
Authentication Package

Agents authenticate with an opaque bearer token issued by the external
identity/billing service. The node never interprets the token itself.

Modules:
- verifier: TokenVerifier, the positive-result TTL cache in front of the
  identity service
- dependencies: Bearer extraction and FastAPI dependencies for the
  authenticated endpoints

The authentication flow:
1. Agent sends Authorization: Bearer <token>
2. Node checks its cache; on a miss it asks the identity service
3. Accepted results are cached for the TTL; rejections are not
4. Identity service failures are reported as 401, never as authorization
"""

from .verifier import TokenVerifier

__all__ = ["TokenVerifier"]
