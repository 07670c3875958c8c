import logging
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .accounts import AccountStore, get_account_store
from .dependencies import verify_service_secret

logger = logging.getLogger(__name__)

services_router = APIRouter(
    prefix="/v1/services",
    dependencies=[Depends(verify_service_secret)],
)


class VerifyRequest(BaseModel):
    token: str
    service: str
    operation: str = "proxy_request"
    quantity: int = Field(default=1, ge=1)


class UsageRequest(BaseModel):
    service: str
    region: str
    records: List[dict] = Field(default_factory=list)


@services_router.post("/verify")
async def verify_token(
    payload: VerifyRequest,
    store: AccountStore = Depends(get_account_store),
):
    """Resolve a bearer token to the agent it belongs to."""
    account = store.by_token(payload.token)
    if account is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"valid": False, "error": "Invalid token"},
        )
    return store.describe(account, payload.quantity)


@services_router.post("/usage")
async def ingest_usage(
    payload: UsageRequest,
    store: AccountStore = Depends(get_account_store),
):
    processed, deducted = store.charge(payload.records)
    logger.info(
        f"Usage batch from {payload.service}/{payload.region}: "
        f"{processed}/{len(payload.records)} records, {deducted} credits"
    )
    return {"processed": processed, "total_credits_deducted": deducted}
