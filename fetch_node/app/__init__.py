"""
KeyFetch Proxy Node Application
===============================

Regional node of the KeyFetch forwarding gateway.

Packages:
    - auth: Bearer token verification with a positive-result TTL cache
    - clients: Identity/billing service client
    - proxy: Forwarding engine and the /v1 routes
    - usage: Usage ledger with periodic, forced and shutdown flushes

Modules:
    - config: Environment-derived settings
    - regions: Region catalog and edge location lookup
    - state: AppState, the per-process container for the services above
    - main: Application factory and lifespan
"""

__version__ = "1.0.0"
