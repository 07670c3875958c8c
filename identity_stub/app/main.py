"""
Identity service stub.

Answers the two calls a KeyFetch node makes to the identity/billing service
from an in-memory account table. For local development:

    SERVICE_SECRET=dev-service-secret uvicorn identity_stub.app.main:app --port 4000
    IDENTITY_API_URL=http://localhost:4000 uvicorn fetch_node.app.main:app --port 3000
"""

from fastapi import FastAPI

from . import routes
from .accounts import get_account_store

app = FastAPI(title="Identity Service Stub", version="1.0.0")

app.include_router(routes.services_router, tags=["Services"])


@app.get("/health", tags=["System"])
async def health():
    store = get_account_store()
    return {"status": "ok", "accounts": len(store), "cost_per_unit": store.cost_per_unit}
