"""
Clients Package

Outbound clients for services the node depends on.

Modules:
- identity: verify and usage-ingestion calls to the identity/billing service
"""

from .identity import IdentityClient, IdentityServiceError

__all__ = [
    "IdentityClient",
    "IdentityServiceError",
]
