"""
Proxy Package
=============

This package implements the agent-facing forwarding surface of a regional
node and the engine that performs the outbound calls.

Main Components:
----------------
- routes.py: FastAPI router with /v1/fetch, /v1/usage, /v1/regions
- forwarder.py: Forwarder and the request preparation helpers

Security Features:
------------------
- Bearer token verification with fail-closed identity lookups
- Literal-prefix internal host block list
- Outbound timeout clamped to a configured maximum

Usage:
------
    from fetch_node.app.proxy.routes import proxy_router
    app.include_router(proxy_router)
"""

from .forwarder import Forwarder, ForwardResult

__all__ = ["Forwarder", "ForwardResult"]
