"""FastAPI dependencies for the admin API.

Shared clients live on ``app.state`` and are handed to routes through
Depends(). Every route requires an admin bearer token.
"""

import secrets

import structlog
from fastapi import Depends, HTTPException, Request

from finops.api.schemas import AssistantBody
from finops.assistant import Assistant, AssistantReply, OpenAIClient
from finops.config import get_settings
from finops.halaxy import HalaxyClient
from finops.store import PostgrestStore, StoreError
from finops.up import UpClient
from finops.xero.client import XeroClient

logger = structlog.get_logger(__name__)

HALAXY_NOT_CONFIGURED = "Halaxy credentials not configured (HALAXY_CLIENT_ID / HALAXY_CLIENT_SECRET)"


async def get_xero(request: Request) -> XeroClient:
    """Get XeroClient from app state."""
    return request.app.state.xero


async def get_optional_halaxy(request: Request) -> HalaxyClient | None:
    """HalaxyClient, or None when Halaxy is not configured."""
    return request.app.state.halaxy


async def get_halaxy(halaxy: HalaxyClient | None = Depends(get_optional_halaxy)) -> HalaxyClient:
    if halaxy is None:
        raise HTTPException(status_code=500, detail=HALAXY_NOT_CONFIGURED)
    return halaxy


async def get_up(request: Request) -> UpClient:
    return request.app.state.up


async def get_store(request: Request) -> PostgrestStore:
    return request.app.state.store


async def get_llm() -> OpenAIClient:
    """New OpenAI client per request; raises ConfigurationError without a key."""
    return OpenAIClient()


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_admin(
    request: Request, store: PostgrestStore = Depends(get_store)
) -> str:
    """Resolve the caller to a user identity or raise 401.

    A token equal to ADMIN_API_TOKEN is accepted as ``admin``; anything else
    must be a valid Supabase session token.
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    admin_token = get_settings().admin_api_token
    if admin_token and secrets.compare_digest(token, admin_token.get_secret_value()):
        return "admin"

    try:
        return await store.verify_user(token)
    except StoreError as e:
        logger.warning("admin_auth_failed", status=e.status_code)
        raise HTTPException(status_code=401, detail="Unauthorized") from e


async def run_assistant(assistant: Assistant, body: AssistantBody) -> AssistantReply:
    if not body.messages:
        raise HTTPException(status_code=400, detail="messages array required")
    return await assistant.run([m.model_dump() for m in body.messages])
