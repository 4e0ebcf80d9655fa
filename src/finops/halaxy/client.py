"""Halaxy FHIR API client."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import structlog

from finops.config import get_settings, require_setting
from finops.halaxy.models import HalaxyInvoice, HalaxyPayment, is_medicare_method

logger = structlog.get_logger(__name__)

HALAXY_TOKEN_URL = "https://au-api.halaxy.com/main/oauth/token"
HALAXY_API_BASE = "https://au-api.halaxy.com/main"
PAGE_SIZE = 100
ENRICH_CONCURRENCY = 10
# Tokens live 60 minutes
TOKEN_TTL = timedelta(minutes=50)
USER_AGENT = "finops-toolkit/0.1"

Sleep = Callable[[float], Awaitable[Any]]


class HalaxyAPIError(Exception):
    """Base exception for Halaxy API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


def _has_next_page(bundle: dict[str, Any]) -> bool:
    return any(link.get("relation") == "next" for link in bundle.get("link") or [])


def _entries(bundle: dict[str, Any]) -> list[dict[str, Any]]:
    return [e.get("resource") or {} for e in bundle.get("entry") or []]


class HalaxyClient:
    """Async client for Halaxy invoices and payment transactions."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_base: str = HALAXY_API_BASE,
        token_url: str = HALAXY_TOKEN_URL,
        sleep: Sleep = asyncio.sleep,
    ):
        settings = get_settings()
        self.api_base = api_base.rstrip("/")
        self._token_url = token_url
        self._client_id = client_id or settings.halaxy_client_id
        self._client_secret = client_secret or settings.halaxy_client_secret
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
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HalaxyClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _get_token(self) -> str:
        async with self._lock:
            if (
                self._access_token
                and self._token_expires_at
                and datetime.now(UTC) < self._token_expires_at
            ):
                return self._access_token

            form = {
                "grant_type": "client_credentials",
                "client_id": require_setting(self._client_id, "HALAXY_CLIENT_ID"),
                "client_secret": require_setting(self._client_secret, "HALAXY_CLIENT_SECRET"),
            }
            client = await self._get_client()
            response = await client.post(self._token_url, data=form)
            if response.status_code >= 400:
                raise HalaxyAPIError(
                    f"Halaxy token request failed ({response.status_code}): {response.text}",
                    status_code=response.status_code,
                )

            self._access_token = response.json()["access_token"]
            self._token_expires_at = datetime.now(UTC) + TOKEN_TTL
            logger.info("halaxy_token_obtained")
            return self._access_token

    async def _headers(self) -> dict[str, str]:
        token = await self._get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _send(
        self, path: str, params: dict[str, Any] | None = None, retry_count: int = 0
    ) -> httpx.Response:
        """GET with backoff on transport errors and one token refresh on 401."""
        client = await self._get_client()
        try:
            response = await client.get(path, params=params, headers=await self._headers())
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "halaxy_request_retry", path=path, attempt=retry_count + 1, error=str(e)
                )
                await self._sleep(2**retry_count)
                return await self._send(path, params, retry_count + 1)
            raise HalaxyAPIError(f"Request failed: {e}") from e

        if response.status_code == 401 and retry_count < 1:
            self._access_token = None
            return await self._send(path, params, retry_count + 1)
        return response

    async def _get(
        self, path: str, label: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        response = await self._send(path, params)
        if response.status_code >= 400 and response.status_code != 404:
            raise HalaxyAPIError(
                f"Halaxy {label} {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response

    async def _get_bundle(self, path: str, label: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self._get(path, label, params)
        if response.status_code == 404:
            raise HalaxyAPIError(f"Halaxy {label} 404: {response.text[:300]}", status_code=404)
        return response.json()

    async def _paged(
        self, path: str, label: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Collect resources while pages come back full and link to a next page."""
        resources: list[dict[str, Any]] = []
        offset = 0
        while True:
            bundle = await self._get_bundle(
                path, label, {"_count": PAGE_SIZE, "_offset": offset, **params}
            )
            entries = _entries(bundle)
            resources.extend(entries)
            if len(entries) < PAGE_SIZE or not _has_next_page(bundle):
                break
            offset += PAGE_SIZE
        return resources

    # === Invoices ===

    async def get_invoices(self, from_date: str, to_date: str) -> list[HalaxyInvoice]:
        """Invoices dated within the range.

        The FHIR endpoint takes only a lower bound on ``date``; the upper
        bound is applied here.
        """
        resources = await self._paged("/Invoice", "Invoices", {"date": f"ge{from_date}"})
        invoices = [HalaxyInvoice.from_fhir(r) for r in resources]
        return [inv for inv in invoices if inv.date <= to_date]

    async def get_invoice(self, invoice_id: str) -> HalaxyInvoice | None:
        response = await self._get(f"/Invoice/{invoice_id}", "Invoice")
        if response.status_code == 404:
            return None
        return HalaxyInvoice.from_fhir(response.json())

    # === Payments ===

    async def get_payment_transactions(self, from_date: str, to_date: str) -> list[HalaxyPayment]:
        resources = await self._paged(
            "/PaymentTransaction", "Payments", {"created": f"ge{from_date}"}
        )
        payments = [HalaxyPayment.from_fhir(r) for r in resources]
        return [p for p in payments if p.created_date <= to_date]

    async def get_payments_by_invoice(self, invoice_id: str) -> list[HalaxyPayment]:
        bundle = await self._get_bundle(
            "/PaymentTransaction",
            "PaymentsByInvoice",
            {"_count": PAGE_SIZE, "invoice": f"Invoice/{invoice_id}"},
        )
        return [HalaxyPayment.from_fhir(r) for r in _entries(bundle)]

    async def enrich_payments_with_invoices(
        self, payments: list[HalaxyPayment]
    ) -> list[HalaxyPayment]:
        """Attach invoice number and patient name, fetching each invoice once."""
        invoice_ids = list(dict.fromkeys(p.invoice_id for p in payments if p.invoice_id))
        invoices: dict[str, HalaxyInvoice] = {}

        for start in range(0, len(invoice_ids), ENRICH_CONCURRENCY):
            batch = invoice_ids[start : start + ENRICH_CONCURRENCY]
            fetched = await asyncio.gather(*(self.get_invoice(i) for i in batch))
            for invoice_id, invoice in zip(batch, fetched):
                if invoice:
                    invoices[invoice_id] = invoice

        for payment in payments:
            invoice = invoices.get(payment.invoice_id)
            if invoice:
                payment.invoice_number = invoice.identifier
                payment.patient_name = invoice.title

        logger.debug("halaxy_payments_enriched", payments=len(payments), invoices=len(invoices))
        return payments

    async def get_braintree_payments(self, from_date: str, to_date: str) -> list[HalaxyPayment]:
        """Card payments, the ones that flow through the clearing account into NAB."""
        payments = await self.get_payment_transactions(from_date, to_date)
        braintree = [p for p in payments if p.method == "Braintree" and p.type == "Payment"]
        return await self.enrich_payments_with_invoices(braintree)

    async def get_medicare_payments(self, from_date: str, to_date: str) -> list[HalaxyPayment]:
        payments = await self.get_payment_transactions(from_date, to_date)
        medicare = [p for p in payments if p.type == "Payment" and is_medicare_method(p.method)]
        return await self.enrich_payments_with_invoices(medicare)
