"""Xero admin routes: health, bulk invoice operations, audit and assistant."""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from finops.api.deps import get_llm, get_xero, require_admin, run_assistant
from finops.api.schemas import (
    AssistantBody,
    BulkDeleteBody,
    InvoiceCleanupBody,
    InvoiceNumbersBody,
)
from finops.assistant import XERO_TOOLS, Assistant, OpenAIClient, XeroToolExecutor, xero_system_prompt
from finops.audit import get_audit_log
from finops.config import ConfigurationError, get_settings
from finops.operations import bulk_delete, bulk_void, invoice_cleanup, paid_wipe
from finops.xero.client import XeroAPIError, XeroClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/xero", tags=["xero"])


@router.get("/health")
async def health(user: str = Depends(require_admin), xero: XeroClient = Depends(get_xero)):
    try:
        data = await xero.get_organisation()
    except (XeroAPIError, ConfigurationError) as e:
        logger.warning("xero_health_failed", error=str(e))
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    organisations = data.get("Organisations") or [{}]
    return {"ok": True, "organisation_name": organisations[0].get("Name")}


@router.post("/bulk-void")
async def bulk_void_route(
    body: InvoiceNumbersBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await bulk_void(xero, body.invoice_numbers, body.dry_run, user)


@router.post("/bulk-delete")
async def bulk_delete_route(
    body: BulkDeleteBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await bulk_delete(xero, body.cutoff_date, body.dry_run, user, fetch_only=body.fetch_only)


@router.post("/paid-wipe")
async def paid_wipe_route(
    body: InvoiceNumbersBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await paid_wipe(xero, body.invoice_numbers, body.dry_run, user)


@router.post("/invoice-cleanup")
async def invoice_cleanup_route(
    body: InvoiceCleanupBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await invoice_cleanup(xero, body.to_request(), user)


@router.get("/audit")
async def audit(
    limit: int = Query(50, ge=1, le=500),
    action: str | None = None,
    user: str = Depends(require_admin),
):
    """Most recent audit entries, newest first."""
    return get_audit_log().recent(limit=limit, action=action)


@router.post("/assistant")
async def assistant(
    body: AssistantBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
    llm: OpenAIClient = Depends(get_llm),
):
    return await run_assistant(
        Assistant(
            llm,
            XeroToolExecutor(xero),
            XERO_TOOLS,
            xero_system_prompt(),
            max_steps=get_settings().assistant_max_steps,
        ),
        body,
    )
