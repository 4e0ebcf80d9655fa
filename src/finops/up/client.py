"""Up Bank API client."""

from typing import Any

import httpx
import structlog

from finops.config import get_settings, require_setting

logger = structlog.get_logger(__name__)

UP_API_BASE = "https://api.up.com.au/api/v1"
PAGE_SIZE = 100


class UpAPIError(Exception):
    """Base exception for Up Bank API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class UpClient:
    """Async client for the Up Bank personal banking API.

    Resources are returned as the raw JSON:API dicts; the budget sync maps
    them to table rows.
    """

    def __init__(self, token: str | None = None, api_base: str = UP_API_BASE):
        settings = get_settings()
        self.api_base = api_base.rstrip("/")
        self._token = token or settings.up_api_token
        self._timeout = settings.http_timeout
        self._client: httpx.AsyncClient | None = None

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

    async def __aenter__(self) -> "UpClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        token = require_setting(self._token, "UP_API_TOKEN")
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    async def _get(
        self, url: str, label: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.get(url, params=params, headers=self._get_headers())
        if response.status_code >= 400:
            raise UpAPIError(
                f"Up {label} {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response.json()

    async def ping(self) -> dict[str, Any]:
        """Check the token. Never raises on an HTTP failure."""
        client = await self._get_client()
        response = await client.get("/util/ping", headers=self._get_headers())
        if response.status_code >= 400:
            logger.warning("up_ping_failed", status=response.status_code)
            return {"ok": False}
        return {"ok": True, "meta": response.json().get("meta")}

    async def get_accounts(self) -> list[dict[str, Any]]:
        data = await self._get("/accounts", "accounts", {"page[size]": PAGE_SIZE})
        return data.get("data") or []

    async def get_categories(self) -> list[dict[str, Any]]:
        """Up does not paginate categories."""
        data = await self._get("/categories", "categories")
        return data.get("data") or []

    async def get_transactions(
        self,
        since: str | None = None,
        until: str | None = None,
        status: str | None = None,
        page_size: int = PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        """All transactions matching the filters, following ``links.next``."""
        params: dict[str, Any] = {"page[size]": page_size}
        if since:
            params["filter[since]"] = since
        if until:
            params["filter[until]"] = until
        if status:
            params["filter[status]"] = status

        transactions: list[dict[str, Any]] = []
        url: str | None = "/transactions"
        query: dict[str, Any] | None = params
        while url:
            data = await self._get(url, "transactions", query)
            transactions.extend(data.get("data") or [])
            url = (data.get("links") or {}).get("next")
            # The next link already carries the cursor and filters
            query = None
        logger.info("up_transactions_fetched", count=len(transactions), since=since)
        return transactions
