"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("XERO_CLIENT_ID", "xero-client-id")
os.environ.setdefault("XERO_CLIENT_SECRET", "xero-client-secret")
os.environ.setdefault("XERO_TENANT_ID", "tenant-123")
os.environ.setdefault("XERO_NAB_ACCOUNT_ID", "nab-account")
os.environ.setdefault("XERO_CLEARING_ACCOUNT_ID", "clearing-account")
os.environ.setdefault("XERO_SAVINGS_ACCOUNT_ID", "savings-account")
os.environ.setdefault("XERO_FEE_ACCOUNT_CODE", "404")
os.environ.setdefault("UP_API_TOKEN", "up:yeah:test-token")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("ADMIN_API_TOKEN", "admin-token")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")


def make_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """Build a mock httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data if json_data is not None else {}
    response.text = text
    response.content = b"{}" if json_data is not None else text.encode()
    response.headers = headers or {}
    return response


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def xero_client(mock_httpx_client):
    """XeroClient with a live token, no-op sleeps and a mocked transport."""
    from finops.xero.client import XeroClient

    client = XeroClient(sleep=AsyncMock())
    client._access_token = "access-token"
    client._token_expires_at = datetime.now(UTC) + timedelta(hours=1)
    client._client = mock_httpx_client
    return client


@pytest.fixture(autouse=True)
def clear_audit_log():
    """Each test starts with an empty audit log."""
    from finops.audit import get_audit_log

    get_audit_log().clear()
    yield
    get_audit_log().clear()


@pytest.fixture
def braintree_payment():
    """Factory for successful Braintree HalaxyPayment objects."""
    from decimal import Decimal

    from finops.halaxy.models import HalaxyPayment

    def _make(
        payment_id: str,
        amount: str,
        created: str,
        invoice_number: str | None = None,
        method: str = "Braintree",
        type: str = "Payment",
    ) -> HalaxyPayment:
        return HalaxyPayment(
            id=payment_id,
            created=f"{created}T10:00:00+10:00",
            method=method,
            type=type,
            amount=Decimal(amount),
            invoice_id=f"inv-{payment_id}",
            invoice_number=invoice_number,
            patient_name=f"Patient {payment_id}" if invoice_number else None,
        )

    return _make


@pytest.fixture
def clearing_txn():
    """Factory for ClearingTransaction objects."""
    from decimal import Decimal

    from finops.xero.models import ClearingTransaction

    def _make(
        txn_id: str,
        amount: str,
        date: str,
        reference: str = "",
        txn_type: str | None = "RECEIVE",
    ) -> ClearingTransaction:
        return ClearingTransaction(
            transaction_id=txn_id,
            date=date,
            amount=Decimal(amount),
            invoice_number=reference,
            reference=reference,
            txn_type=txn_type,
        )

    return _make


@pytest.fixture
def deposit():
    """Factory for BankDeposit objects."""
    from decimal import Decimal

    from finops.xero.models import BankDeposit

    def _make(txn_id: str, amount: str, date: str, reference: str = "") -> BankDeposit:
        return BankDeposit(
            bank_transaction_id=txn_id, date=date, amount=Decimal(amount), reference=reference
        )

    return _make
