"""Xero accounting API client with OAuth token caching and rate-limit pacing."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import structlog

from finops.config import get_settings, require_setting
from finops.xero.models import (
    AllocationRef,
    BankDeposit,
    BatchTransferOutcome,
    BulkDeleteOutcome,
    BulkDeleteResult,
    BulkVoidOutcome,
    ClearingTransaction,
    DeleteAction,
    InvoiceRef,
    InvoiceSummary,
    InvoiceWithPayments,
    OperationResult,
    PurgeItem,
    PurgeResult,
    TransferRequest,
    TransferResult,
    VoidResult,
)
from finops.xero.parsing import (
    build_bank_txn_where,
    contact_clause,
    first_item,
    invoice_number_clause,
    parse_retry_after,
    parse_xero_date,
    to_decimal,
    validation_messages,
    xero_datetime,
)

logger = structlog.get_logger(__name__)

XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_API_BASE = "https://api.xero.com/api.xro/2.0"
XERO_SCOPES = "accounting.transactions accounting.settings accounting.contacts"

PAGE_SIZE = 100
VOID_BATCH_SIZE = 25
LOOKUP_CHUNK_SIZE = 25
BATCH_DELAY = 1.5
VOID_BATCH_DELAY = 2.0
SHORT_PAUSE = 0.3
TOKEN_EXPIRY_MARGIN = timedelta(seconds=30)

INVOICE_STATUSES_FOR_CLEANUP = ("DRAFT", "SUBMITTED", "AUTHORISED", "PAID")
FEE_CONTACT_NAME = "Halaxy Merchant Fees"

# endpoint -> (id key, max list pages scanned when the invoice has no applied refs)
_ALLOCATION_SOURCES = {
    "CreditNotes": ("CreditNoteID", 5),
    "Overpayments": ("OverpaymentID", 3),
    "Prepayments": ("PrepaymentID", 3),
}

Sleep = Callable[[float], Awaitable[Any]]


class XeroAPIError(Exception):
    """Base exception for Xero API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(XeroAPIError):
    """Token request rejected."""

    pass


class RateLimitError(XeroAPIError):
    """Rate limit exceeded."""

    pass


def _error_text(response: httpx.Response, limit: int = 300) -> str:
    text = response.text or ""
    return text[:limit] if text else "empty response"


def dry_run_void(invoice_numbers: list[str]) -> list[VoidResult]:
    """Echo the list back without calling Xero."""
    return [VoidResult(n, True, "Would be voided (dry run)") for n in invoice_numbers]


def delete_action_for_status(status: str) -> DeleteAction:
    """DRAFT/SUBMITTED invoices are deleted, AUTHORISED are voided, the rest skipped."""
    upper = status.upper()
    if upper in ("DRAFT", "SUBMITTED"):
        return DeleteAction.DELETED
    if upper == "AUTHORISED":
        return DeleteAction.VOIDED
    return DeleteAction.SKIPPED


def dry_run_delete(invoices: list[InvoiceSummary]) -> list[BulkDeleteResult]:
    """What bulk delete would do, without calling Xero."""
    results = []
    for inv in invoices:
        action = delete_action_for_status(inv.status)
        if action is DeleteAction.DELETED:
            message, success = "Would be deleted (dry run)", True
        elif action is DeleteAction.VOIDED:
            message, success = "Would be voided (dry run)", True
        else:
            message, success = f'Cannot delete/void: status "{inv.status.upper()}"', False
        results.append(
            BulkDeleteResult(inv.invoice_number, inv.invoice_id, action, success, message)
        )
    return results


class XeroClient:
    """Async client for the Xero accounting API.

    Mutations that act on one document at a time return result objects
    instead of raising, so bulk callers can record per-item failures.
    Reads raise XeroAPIError on any non-success status.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        tenant_id: str | None = None,
        nab_account_id: str | None = None,
        clearing_account_id: str | None = None,
        savings_account_id: str | None = None,
        api_base: str = XERO_API_BASE,
        token_url: str = XERO_TOKEN_URL,
        sleep: Sleep = asyncio.sleep,
    ):
        settings = get_settings()
        self.api_base = api_base.rstrip("/")
        self._token_url = token_url
        self._client_id = client_id or settings.xero_client_id
        self._client_secret = client_secret or settings.xero_client_secret
        self._refresh_token = refresh_token or settings.xero_refresh_token
        self._tenant_id = tenant_id or settings.xero_tenant_id
        self.nab_account_id = nab_account_id or settings.xero_nab_account_id
        self.clearing_account_id = clearing_account_id or settings.xero_clearing_account_id
        self.savings_account_id = savings_account_id or settings.xero_savings_account_id
        self._timeout = settings.http_timeout
        self._max_retries = settings.http_max_retries
        self._sleep = sleep

        self._access_token: str | None = None
        self._token_expires_at: datetime | None = None
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_base,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "XeroClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def pause(self, seconds: float) -> None:
        """Rate-limit pause shared by multi-step workflows."""
        await self._sleep(seconds)

    # === Authentication ===

    async def fetch_token(self) -> str:
        """Obtain a new access token.

        Uses the refresh_token grant when a refresh token is configured,
        otherwise the client_credentials grant of a custom connection.
        """
        client_id = require_setting(self._client_id, "XERO_CLIENT_ID")
        client_secret = require_setting(self._client_secret, "XERO_CLIENT_SECRET")
        refresh_token = (
            self._refresh_token.get_secret_value()
            if hasattr(self._refresh_token, "get_secret_value")
            else self._refresh_token
        )

        if refresh_token:
            form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        else:
            form = {"grant_type": "client_credentials", "scope": XERO_SCOPES}

        client = await self._get_client()
        response = await client.post(
            self._token_url,
            data=form,
            auth=(client_id, client_secret),
            headers={"Accept": "application/json"},
        )
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Xero token request failed ({response.status_code}): {_error_text(response)}",
                status_code=response.status_code,
            )

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = datetime.now(UTC) + timedelta(
            seconds=int(data.get("expires_in", 1800))
        )
        # Refresh tokens rotate on every use
        if data.get("refresh_token"):
            self._refresh_token = data["refresh_token"]

        logger.info("xero_token_obtained", grant=form["grant_type"], expires_in=data.get("expires_in"))
        return self._access_token

    async def _ensure_authenticated(self) -> None:
        async with self._lock:
            if (
                not self._access_token
                or self._token_expires_at is None
                or datetime.now(UTC) >= self._token_expires_at - TOKEN_EXPIRY_MARGIN
            ):
                await self.fetch_token()

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        # Custom connections are bound to one org; OAuth apps must name the tenant
        if self._tenant_id:
            headers["xero-tenant-id"] = self._tenant_id
        return headers

    # === Transport ===

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """Send an authenticated request and return the raw response."""
        await self._ensure_authenticated()
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning("xero_request_retry", path=path, attempt=retry_count + 1, error=str(e))
                await self._sleep(2**retry_count)
                return await self._send(method, path, params, json, retry_count + 1)
            raise XeroAPIError(f"Request failed: {e}") from e

        if response.status_code == 401 and retry_count < 1:
            # Token revoked or expired mid-flight
            await self.fetch_token()
            return await self._send(method, path, params, json, retry_count + 1)

        return response

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )
        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": _error_text(response, 500)}
            raise XeroAPIError(
                f"Xero {path} {response.status_code}: {_error_text(response)}",
                status_code=response.status_code,
                details=error_detail,
            )

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request, raising on error statuses."""
        response = await self._send(method, path, params, json)
        self._raise_for_status(response, path)
        return response.json() if response.content else {}

    async def _get_pages(
        self,
        path: str,
        key: str,
        params: dict[str, Any],
        max_pages: int | None = None,
    ) -> list[dict[str, Any]]:
        """Follow Xero's page parameter while pages come back full."""
        items: list[dict[str, Any]] = []
        page = 1
        while max_pages is None or page <= max_pages:
            data = await self._request("GET", path, params={**params, "page": page})
            batch = data.get(key) or []
            items.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1
            await self._sleep(BATCH_DELAY)
        return items

    # === Invoice lookup ===

    async def get_invoices_by_numbers_with_status(
        self, invoice_numbers: list[str]
    ) -> list[InvoiceSummary]:
        """Resolve invoice numbers to summaries, 25 numbers per where clause."""
        result: list[InvoiceSummary] = []
        for start in range(0, len(invoice_numbers), LOOKUP_CHUNK_SIZE):
            chunk = invoice_numbers[start : start + LOOKUP_CHUNK_SIZE]
            where = " OR ".join(invoice_number_clause(n) for n in chunk)
            data = await self._request("GET", "/Invoices", params={"where": where})
            result.extend(InvoiceSummary.from_xero(inv) for inv in data.get("Invoices") or [])
            if start + LOOKUP_CHUNK_SIZE < len(invoice_numbers):
                await self._sleep(SHORT_PAUSE)
        return result

    async def get_invoices_by_numbers(self, invoice_numbers: list[str]) -> list[InvoiceRef]:
        summaries = await self.get_invoices_by_numbers_with_status(invoice_numbers)
        return [s.ref for s in summaries]

    async def get_invoice_by_id(self, invoice_id: str) -> InvoiceWithPayments | None:
        """Fetch a full invoice (the list endpoint omits payments). None if not found."""
        path = f"/Invoices/{invoice_id}"
        response = await self._send("GET", path)
        if response.status_code == 404:
            return None
        self._raise_for_status(response, path)
        inv = first_item(response.json(), "Invoices")
        return InvoiceWithPayments.from_xero(inv) if inv else None

    async def get_invoice_by_number(self, invoice_number: str) -> InvoiceWithPayments | None:
        data = await self._request(
            "GET", "/Invoices", params={"where": invoice_number_clause(invoice_number)}
        )
        inv = first_item(data, "Invoices")
        if not inv or not inv.get("InvoiceID"):
            return None
        return await self.get_invoice_by_id(inv["InvoiceID"])

    # === Voiding ===

    async def void_invoices_batch(self, invoices: list[InvoiceRef]) -> list[VoidResult]:
        """Void up to one batch of invoices in a single request.

        SummarizeErrors=false makes a 400 carry per-invoice Elements so the
        offending invoices can be named.
        """
        if not invoices:
            return []

        body = {
            "Invoices": [
                {"InvoiceID": ref.invoice_id, "InvoiceNumber": ref.invoice_number, "Status": "VOIDED"}
                for ref in invoices
            ]
        }
        response = await self._send(
            "POST", "/Invoices", params={"SummarizeErrors": "false"}, json=body
        )

        if response.status_code >= 400:
            message = self._void_failure_message(response, invoices)
            logger.warning("void_batch_failed", status=response.status_code, size=len(invoices))
            return [VoidResult(ref.invoice_number, False, message) for ref in invoices]

        returned = {inv.get("InvoiceID"): inv for inv in response.json().get("Invoices") or []}
        results = []
        for ref in invoices:
            inv = returned.get(ref.invoice_id)
            if inv is None:
                results.append(VoidResult(ref.invoice_number, False, "Not found in response"))
            elif inv.get("HasErrors"):
                results.append(
                    VoidResult(ref.invoice_number, False, validation_messages(inv) or "Unknown error")
                )
            else:
                results.append(VoidResult(ref.invoice_number, True, "Voided"))
        return results

    @staticmethod
    def _void_failure_message(response: httpx.Response, invoices: list[InvoiceRef]) -> str:
        message = f"Xero API {response.status_code}: {_error_text(response, 200)}"
        if response.status_code != 400:
            return message
        try:
            payload = response.json()
        except ValueError:
            return message
        elements = payload.get("Elements") if isinstance(payload, dict) else None
        if not elements:
            return message

        id_to_number = {ref.invoice_id: ref.invoice_number for ref in invoices}
        failed = [e.get("InvoiceNumber") or id_to_number.get(e.get("InvoiceID")) for e in elements]
        unique = list(dict.fromkeys(n for n in failed if n))
        validation = validation_messages(elements[0]) or "Validation failed."
        return f"Cannot void invoice(s): {', '.join(unique)}. {validation} Exclude these and retry."

    async def _void_in_batches(self, refs: list[InvoiceRef], delay: float) -> list[VoidResult]:
        results: list[VoidResult] = []
        for start in range(0, len(refs), VOID_BATCH_SIZE):
            chunk = refs[start : start + VOID_BATCH_SIZE]
            batch = await self.void_invoices_batch(chunk)

            # A whole-batch rejection usually hides one bad invoice; isolate it
            if len(chunk) > 1 and batch and all(not r.success for r in batch):
                logger.info("void_batch_retrying_individually", size=len(chunk))
                batch = []
                for index, ref in enumerate(chunk):
                    batch.extend(await self.void_invoices_batch([ref]))
                    if index < len(chunk) - 1:
                        await self._sleep(SHORT_PAUSE)

            results.extend(batch)
            if start + VOID_BATCH_SIZE < len(refs):
                await self._sleep(delay)
        return results

    async def bulk_void_invoices(self, invoice_numbers: list[str]) -> BulkVoidOutcome:
        """Resolve numbers to ids and void them in batches.

        Numbers Xero does not know are reported first as failures.
        """
        resolved = await self.get_invoices_by_numbers(invoice_numbers)
        found = {ref.invoice_number.upper(): ref for ref in resolved}

        not_found = [
            VoidResult(n, False, "Invoice not found in Xero")
            for n in invoice_numbers
            if n.upper() not in found
        ]
        to_void = [found[n.upper()] for n in invoice_numbers if n.upper() in found]
        if not to_void:
            return BulkVoidOutcome(results=not_found)

        results = await self._void_in_batches(to_void, BATCH_DELAY)
        logger.info(
            "bulk_void_complete",
            requested=len(invoice_numbers),
            not_found=len(not_found),
            voided=sum(1 for r in results if r.success),
        )
        return BulkVoidOutcome(results=not_found + results)

    async def bulk_void_invoices_with_ids(self, invoices: list[InvoiceRef]) -> BulkVoidOutcome:
        """Void invoices whose ids are already known, skipping the lookup."""
        if not invoices:
            return BulkVoidOutcome(results=[])
        return BulkVoidOutcome(results=await self._void_in_batches(invoices, VOID_BATCH_DELAY))

    # === Reports & queries ===

    async def get_profit_and_loss(
        self, from_date: str | None = None, to_date: str | None = None
    ) -> dict[str, Any]:
        params = {k: v for k, v in {"fromDate": from_date, "toDate": to_date}.items() if v}
        return await self._request("GET", "/Reports/ProfitAndLoss", params=params or None)

    async def get_balance_sheet(self, as_at: str | None = None) -> dict[str, Any]:
        return await self._request(
            "GET", "/Reports/BalanceSheet", params={"date": as_at} if as_at else None
        )

    async def get_trial_balance(self, as_at: str | None = None) -> dict[str, Any]:
        return await self._request(
            "GET", "/Reports/TrialBalance", params={"date": as_at} if as_at else None
        )

    async def get_bank_summary(
        self, from_date: str | None = None, to_date: str | None = None
    ) -> dict[str, Any]:
        params = {k: v for k, v in {"fromDate": from_date, "toDate": to_date}.items() if v}
        return await self._request("GET", "/Reports/BankSummary", params=params or None)

    async def list_invoices(
        self,
        status: str | None = None,
        contact_ids: list[str] | None = None,
        where: str | None = None,
        order: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if status:
            params["Statuses"] = status
        if contact_ids:
            params["ContactIDs"] = ",".join(contact_ids)
        if where:
            params["where"] = where
        if order:
            params["order"] = order
        return await self._request("GET", "/Invoices", params=params or None)

    async def list_contacts(self, where: str | None = None) -> dict[str, Any]:
        return await self._request("GET", "/Contacts", params={"where": where} if where else None)

    async def get_organisation(self) -> dict[str, Any]:
        return await self._request("GET", "/Organisation")

    # === Payments & allocations ===

    async def delete_payment(self, payment_id: str) -> OperationResult:
        """Remove a payment from its invoice.

        Payments created through batch payments or receipts cannot be
        deleted over the API; Xero reports those as validation errors.
        """
        response = await self._send("POST", f"/Payments/{payment_id}", json={"Status": "DELETED"})
        if response.status_code >= 400:
            return OperationResult(False, f"Xero API {response.status_code}: {_error_text(response)}")
        payment = first_item(response.json(), "Payments")
        if payment and payment.get("HasErrors"):
            return OperationResult(False, validation_messages(payment) or "Validation error")
        return OperationResult(True, "Payment removed", resource_id=payment_id)

    async def _source_allocations(self, endpoint: str, source_id: str) -> list[tuple[str, str | None]]:
        """(allocation id, invoice id) pairs of one credit note / prepayment / overpayment."""
        response = await self._send("GET", f"/{endpoint}/{source_id}")
        if response.status_code >= 400:
            return []
        source = first_item(response.json(), endpoint)
        if not source:
            return []
        return [
            (a["AllocationID"], (a.get("Invoice") or {}).get("InvoiceID"))
            for a in source.get("Allocations") or []
            if a.get("AllocationID")
        ]

    async def _allocations_to_invoice(
        self,
        endpoint: str,
        invoice_id: str,
        contact_id: str | None,
        applied: list[AllocationRef] | None,
    ) -> list[AllocationRef]:
        result: list[AllocationRef] = []
        for ref in applied or []:
            if ref.allocation_id:
                result.append(ref)
                continue
            for allocation_id, target in await self._source_allocations(endpoint, ref.source_id):
                if target == invoice_id:
                    result.append(AllocationRef(ref.source_id, allocation_id))
        if result:
            return result

        id_key, max_pages = _ALLOCATION_SOURCES[endpoint]
        where = 'Status=="AUTHORISED"'
        if contact_id:
            where = f"{where} AND {contact_clause(contact_id)}"

        for page in range(1, max_pages + 1):
            response = await self._send("GET", f"/{endpoint}", params={"where": where, "page": page})
            if response.status_code >= 400:
                break
            items = response.json().get(endpoint) or []
            for item in items:
                source_id = item.get(id_key)
                allocations = item.get("Allocations")
                if not allocations:
                    # List responses can omit allocations; fetch the document
                    pairs = await self._source_allocations(endpoint, source_id)
                else:
                    pairs = [
                        (a.get("AllocationID"), (a.get("Invoice") or {}).get("InvoiceID"))
                        for a in allocations
                    ]
                for allocation_id, target in pairs:
                    if allocation_id and target == invoice_id:
                        result.append(AllocationRef(source_id, allocation_id))
            if len(items) < PAGE_SIZE:
                break
            await self._sleep(SHORT_PAUSE)
        return result

    async def get_credit_note_allocations_to_invoice(
        self,
        invoice_id: str,
        contact_id: str | None = None,
        applied: list[AllocationRef] | None = None,
    ) -> list[AllocationRef]:
        return await self._allocations_to_invoice("CreditNotes", invoice_id, contact_id, applied)

    async def get_overpayment_allocations_to_invoice(
        self,
        invoice_id: str,
        contact_id: str | None = None,
        applied: list[AllocationRef] | None = None,
    ) -> list[AllocationRef]:
        return await self._allocations_to_invoice("Overpayments", invoice_id, contact_id, applied)

    async def get_prepayment_allocations_to_invoice(
        self,
        invoice_id: str,
        contact_id: str | None = None,
        applied: list[AllocationRef] | None = None,
    ) -> list[AllocationRef]:
        return await self._allocations_to_invoice("Prepayments", invoice_id, contact_id, applied)

    async def _delete_allocation(
        self, endpoint: str, source_id: str, allocation_id: str, success_message: str
    ) -> OperationResult:
        response = await self._send("DELETE", f"/{endpoint}/{source_id}/Allocations/{allocation_id}")
        if response.status_code >= 400:
            return OperationResult(False, f"Xero API {response.status_code}: {_error_text(response)}")
        return OperationResult(True, success_message, resource_id=allocation_id)

    async def delete_credit_note_allocation(
        self, credit_note_id: str, allocation_id: str
    ) -> OperationResult:
        return await self._delete_allocation(
            "CreditNotes", credit_note_id, allocation_id, "Credit note allocation removed"
        )

    async def delete_overpayment_allocation(
        self, overpayment_id: str, allocation_id: str
    ) -> OperationResult:
        return await self._delete_allocation(
            "Overpayments", overpayment_id, allocation_id, "Allocation removed"
        )

    async def delete_prepayment_allocation(
        self, prepayment_id: str, allocation_id: str
    ) -> OperationResult:
        return await self._delete_allocation(
            "Prepayments", prepayment_id, allocation_id, "Allocation removed"
        )

    # === Clearing account ===

    async def get_unreconciled_bank_transactions(
        self, account_id: str, from_date: str, to_date: str
    ) -> list[BankDeposit]:
        where = build_bank_txn_where(account_id, from_date, to_date, ['Type=="RECEIVE"'])
        data = await self._request("GET", "/BankTransactions", params={"where": where})
        deposits = [BankDeposit.from_xero(t) for t in data.get("BankTransactions") or []]
        return [d for d in deposits if not d.is_reconciled]

    async def get_clearing_transactions(
        self, clearing_account_id: str, from_date: str, to_date: str
    ) -> list[ClearingTransaction]:
        where = build_bank_txn_where(clearing_account_id, from_date, to_date)
        data = await self._request("GET", "/BankTransactions", params={"where": where})
        return [ClearingTransaction.from_xero(t) for t in data.get("BankTransactions") or []]

    async def create_spend_money(
        self,
        clearing_account_id: str,
        fee_amount: Decimal,
        fee_account_code: str,
        txn_date: str,
        reference: str | None = None,
    ) -> OperationResult:
        """Record merchant fees as a SPEND transaction out of the clearing account."""
        body = {
            "Type": "SPEND",
            "BankAccount": {"AccountID": clearing_account_id},
            "Contact": {"Name": FEE_CONTACT_NAME},
            "Date": txn_date,
            "Reference": reference or f"CLEARING-FEE-{txn_date}",
            "LineItems": [
                {
                    "Description": f"Merchant processing fee {txn_date}",
                    "Quantity": 1,
                    "UnitAmount": f"{fee_amount:.2f}",
                    "AccountCode": fee_account_code,
                    "TaxType": "INPUT",
                }
            ],
        }
        response = await self._send("PUT", "/BankTransactions", json=body)
        if response.status_code >= 400:
            return OperationResult(
                False, f"Spend Money failed ({response.status_code}): {_error_text(response)}"
            )
        txn = first_item(response.json(), "BankTransactions")
        if txn and txn.get("HasErrors"):
            return OperationResult(
                False, validation_messages(txn) or "Validation error creating Spend Money"
            )
        return OperationResult(
            True,
            f"Spend Money created for ${fee_amount:.2f} (merchant fee)",
            resource_id=(txn or {}).get("BankTransactionID"),
        )

    async def create_bank_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        txn_date: str,
        reference: str | None = None,
    ) -> OperationResult:
        body: dict[str, Any] = {
            "FromBankAccount": {"AccountID": from_account_id},
            "ToBankAccount": {"AccountID": to_account_id},
            "Amount": f"{amount:.2f}",
            "Date": txn_date,
        }
        if reference:
            body["Reference"] = reference

        response = await self._send("PUT", "/BankTransfers", json=body)
        if response.status_code >= 400:
            return OperationResult(
                False, f"Bank transfer failed ({response.status_code}): {_error_text(response)}"
            )
        transfer = first_item(response.json(), "BankTransfers")
        if transfer and transfer.get("HasErrors"):
            return OperationResult(
                False, validation_messages(transfer) or "Validation error creating bank transfer"
            )
        label = f" ({reference})" if reference else ""
        return OperationResult(
            True,
            f"Bank transfer created: ${amount:.2f}{label}",
            resource_id=(transfer or {}).get("BankTransferID"),
        )

    async def apply_clearing(
        self,
        bank_transaction_id: str,
        clearing_transaction_ids: list[str],
        fee_amount: Decimal = Decimal("0"),
        fee_account_code: str | None = None,
    ) -> OperationResult:
        """Sweep a matched deposit from the clearing account into NAB.

        An optional merchant fee is posted as Spend Money first; the transfer
        is always for the deposit amount that actually reached the bank.
        """
        if not self.nab_account_id or not self.clearing_account_id:
            return OperationResult(
                False, "XERO_NAB_ACCOUNT_ID and XERO_CLEARING_ACCOUNT_ID env vars are required"
            )

        response = await self._send("GET", f"/BankTransactions/{bank_transaction_id}")
        if response.status_code >= 400:
            return OperationResult(False, f"Failed to fetch bank transaction: {response.status_code}")
        txn = first_item(response.json(), "BankTransactions") or {}
        deposit_amount = to_decimal(txn.get("Total"))
        txn_date = parse_xero_date(txn.get("Date")) or date.today().isoformat()

        if deposit_amount <= 0:
            return OperationResult(False, "Bank transaction amount is zero or negative")

        if fee_amount > 0:
            if not fee_account_code:
                return OperationResult(False, "feeAccountCode is required when feeAmount > 0")
            fee_result = await self.create_spend_money(
                self.clearing_account_id, fee_amount, fee_account_code, txn_date
            )
            if not fee_result.success:
                return OperationResult(False, f"Fee posting failed: {fee_result.message}")

        transfer = await self.create_bank_transfer(
            self.clearing_account_id, self.nab_account_id, deposit_amount, txn_date
        )
        if not transfer.success:
            return transfer

        parts = [f"Bank transfer created for ${deposit_amount:.2f}"]
        if fee_amount > 0:
            parts.append(f"fee of ${fee_amount:.2f} posted to {fee_account_code}")
        parts.append(f"covering {len(clearing_transaction_ids)} clearing transaction(s)")
        logger.info(
            "clearing_applied",
            bank_transaction_id=bank_transaction_id,
            amount=str(deposit_amount),
            fee=str(fee_amount),
        )
        return OperationResult(True, "; ".join(parts), resource_id=transfer.resource_id)

    async def create_batch_bank_transfers(
        self,
        items: list[TransferRequest],
        target_account_id: str | None = None,
    ) -> BatchTransferOutcome:
        """Transfer each item from clearing to the target account (NAB by default), one at a time."""
        destination = target_account_id or self.nab_account_id
        if not self.clearing_account_id or not destination:
            message = "XERO_CLEARING_ACCOUNT_ID and target account ID are required"
            return BatchTransferOutcome(
                total=len(items),
                succeeded=0,
                failed=len(items),
                results=[TransferResult(item.reference, False, message) for item in items],
            )

        results: list[TransferResult] = []
        for index, item in enumerate(items):
            outcome = await self.create_bank_transfer(
                self.clearing_account_id, destination, item.amount, item.date, item.reference
            )
            results.append(
                TransferResult(item.reference, outcome.success, outcome.message, outcome.resource_id)
            )
            if index < len(items) - 1:
                await self._sleep(BATCH_DELAY)

        succeeded = sum(1 for r in results if r.success)
        return BatchTransferOutcome(
            total=len(items),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    # === Bulk delete before cutoff ===

    async def fetch_invoices_before_date(self, cutoff_date: str) -> list[InvoiceSummary]:
        """All DRAFT, SUBMITTED, AUTHORISED and PAID invoices dated before the cutoff."""
        before = f"Date<{xero_datetime(cutoff_date)}"
        invoices: list[InvoiceSummary] = []
        for status in INVOICE_STATUSES_FOR_CLEANUP:
            rows = await self._get_pages(
                "/Invoices",
                "Invoices",
                {"where": f'{before} AND Status=="{status}"', "order": "Date ASC"},
            )
            invoices.extend(InvoiceSummary.from_xero(inv) for inv in rows)
        logger.info("invoices_before_date_fetched", cutoff=cutoff_date, count=len(invoices))
        return invoices

    async def delete_or_void_invoice(self, invoice: InvoiceSummary) -> BulkDeleteResult:
        action = delete_action_for_status(invoice.status)
        if action is DeleteAction.SKIPPED:
            return BulkDeleteResult(
                invoice.invoice_number,
                invoice.invoice_id,
                action,
                False,
                f'Cannot delete/void invoice with status "{invoice.status.upper()}"',
            )

        body = {
            "InvoiceID": invoice.invoice_id,
            "InvoiceNumber": invoice.invoice_number,
            "Status": action.value,
        }
        response = await self._send("POST", f"/Invoices/{invoice.invoice_id}", json=body)
        if response.status_code >= 400:
            return BulkDeleteResult(
                invoice.invoice_number,
                invoice.invoice_id,
                action,
                False,
                f"Xero API {response.status_code}: {_error_text(response, 200)}",
            )

        updated = first_item(response.json(), "Invoices")
        if updated and updated.get("HasErrors"):
            return BulkDeleteResult(
                invoice.invoice_number,
                invoice.invoice_id,
                action,
                False,
                validation_messages(updated) or "Unknown validation error",
            )
        message = "Deleted" if action is DeleteAction.DELETED else "Voided"
        return BulkDeleteResult(invoice.invoice_number, invoice.invoice_id, action, True, message)

    async def bulk_delete_invoices(self, invoices: list[InvoiceSummary]) -> BulkDeleteOutcome:
        """Delete or void each invoice in turn, pausing after every page-sized run."""
        results: list[BulkDeleteResult] = []
        for index, invoice in enumerate(invoices):
            results.append(await self.delete_or_void_invoice(invoice))
            if (index + 1) % PAGE_SIZE == 0 and index + 1 < len(invoices):
                await self._sleep(BATCH_DELAY)
        return BulkDeleteOutcome(results=results)

    # === Account purge ===

    async def purge_account_before(
        self, account_id: str, cutoff_date: str, dry_run: bool = True
    ) -> PurgeResult:
        """Delete an account's AUTHORISED bank transactions dated before the cutoff.

        Reconciled transactions cannot be deleted through the API and are
        skipped. A live run stops at the first failed deletion.
        """
        where = (
            f'BankAccount.AccountID=guid("{account_id}") AND Status=="AUTHORISED" '
            f"AND Date<{xero_datetime(cutoff_date)}"
        )
        rows = await self._get_pages(
            "/BankTransactions", "BankTransactions", {"where": where, "order": "Date ASC"}
        )
        items = [
            PurgeItem(
                bank_transaction_id=t.get("BankTransactionID") or "",
                date=parse_xero_date(t.get("Date")),
                amount=to_decimal(t.get("Total")),
                reference=t.get("Reference") or "",
                type=t.get("Type") or "",
                is_reconciled=bool(t.get("IsReconciled")),
            )
            for t in rows
        ]
        deletable = [i for i in items if not i.is_reconciled]
        result = PurgeResult(
            account_id=account_id,
            cutoff_date=cutoff_date,
            dry_run=dry_run,
            found=len(items),
            skipped=len(items) - len(deletable),
            total_amount=sum((i.amount for i in deletable), Decimal("0")),
            items=items,
        )
        if dry_run:
            return result

        for index, item in enumerate(deletable):
            response = await self._send(
                "POST",
                f"/BankTransactions/{item.bank_transaction_id}",
                json={"BankTransactionID": item.bank_transaction_id, "Status": "DELETED"},
            )
            if response.status_code >= 400:
                item.message = f"Xero API {response.status_code}: {_error_text(response, 200)}"
            else:
                updated = first_item(response.json(), "BankTransactions")
                if updated and updated.get("HasErrors"):
                    item.message = validation_messages(updated) or "Validation error"
                else:
                    item.deleted = True
                    item.message = "Deleted"
                    result.deleted += 1

            if not item.deleted:
                result.errors.append(
                    {"bank_transaction_id": item.bank_transaction_id, "message": item.message or ""}
                )
                result.stopped_early = True
                logger.warning("purge_stopped", account_id=account_id, failed=item.bank_transaction_id)
                break
            if (index + 1) % PAGE_SIZE == 0 and index + 1 < len(deletable):
                await self._sleep(BATCH_DELAY)

        return result
