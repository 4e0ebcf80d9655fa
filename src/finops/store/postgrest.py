"""Thin table client for Supabase PostgREST."""

from typing import Any

import httpx
import structlog

from finops.config import get_settings, require_setting

logger = structlog.get_logger(__name__)

# (column, "op.value") pairs, e.g. ("settled_at", "gte.2024-01-01")
Filters = list[tuple[str, str]]


class StoreError(Exception):
    """A PostgREST or auth request failed."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


def in_filter(values: list[str]) -> str:
    """PostgREST ``in.(...)`` operator with quoted values."""
    quoted = ",".join('"{}"'.format(v.replace('"', "")) for v in values)
    return f"in.({quoted})"


class PostgrestStore:
    """Async access to Supabase tables with the service-role key."""

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        anon_key: str | None = None,
    ):
        settings = get_settings()
        self._url = url or settings.supabase_url
        self._service_key = service_key or settings.supabase_service_role_key
        self._anon_key = anon_key or settings.supabase_anon_key
        self._timeout = settings.http_timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            base_url = require_setting(self._url, "SUPABASE_URL").rstrip("/")
            self._client = httpx.AsyncClient(
                base_url=base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PostgrestStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        key = require_setting(self._service_key, "SUPABASE_SERVICE_ROLE_KEY")
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"/rest/v1/{table}",
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )
        except httpx.RequestError as e:
            raise StoreError(f"{table} request failed: {e}") from e

        if response.status_code >= 400:
            try:
                details = response.json() if response.content else {}
            except ValueError:
                details = {"raw": response.text[:500]}
            message = details.get("message") if isinstance(details, dict) else None
            logger.error("store_request_failed", table=table, method=method, status=response.status_code)
            raise StoreError(
                f"{table} {method} failed: {message or response.text[:300]}",
                status_code=response.status_code,
                details=details,
            )
        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Rows of a table. ``order`` is a PostgREST order list such as ``settled_at.desc``."""
        params: list[tuple[str, str]] = [("select", columns), *(filters or [])]
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        return await self._request("POST", table, json=rows, prefer="return=representation")

    async def update(
        self, table: str, values: dict[str, Any], filters: Filters
    ) -> list[dict[str, Any]]:
        if not filters:
            raise StoreError(f"{table} update requires at least one filter")
        return await self._request(
            "PATCH", table, params=list(filters), json=values, prefer="return=representation"
        )

    async def delete(self, table: str, filters: Filters) -> None:
        if not filters:
            raise StoreError(f"{table} delete requires at least one filter")
        await self._request("DELETE", table, params=list(filters), prefer="return=minimal")

    async def upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        on_conflict: str,
        returning: bool = False,
    ) -> list[dict[str, Any]]:
        """Insert or merge on the conflict column.

        Columns absent from the payload keep their stored values. The stored
        rows come back only when ``returning`` is set.
        """
        if not rows:
            return []
        return await self._request(
            "POST",
            table,
            params=[("on_conflict", on_conflict)],
            json=rows,
            prefer="resolution=merge-duplicates,"
            + ("return=representation" if returning else "return=minimal"),
        )

    async def verify_user(self, access_token: str) -> str:
        """Resolve a Supabase session token to the user's email (or id)."""
        anon_key = require_setting(self._anon_key, "SUPABASE_ANON_KEY")
        client = await self._get_client()
        response = await client.get(
            "/auth/v1/user",
            headers={"apikey": anon_key, "Authorization": f"Bearer {access_token}"},
        )
        if response.status_code >= 400:
            raise StoreError("Unauthorized", status_code=response.status_code)
        user = response.json()
        identity = user.get("email") or user.get("id")
        if not identity:
            raise StoreError("Unauthorized", status_code=401)
        return identity
