"""Xero accounting API client and types."""

from finops.xero.client import (
    AuthenticationError,
    RateLimitError,
    XeroAPIError,
    XeroClient,
    dry_run_delete,
    dry_run_void,
)
from finops.xero.models import (
    BankDeposit,
    ClearingTransaction,
    DeleteAction,
    InvoiceSummary,
    InvoiceWithPayments,
    OperationResult,
    TransferRequest,
)

__all__ = [
    "AuthenticationError",
    "BankDeposit",
    "ClearingTransaction",
    "DeleteAction",
    "InvoiceSummary",
    "InvoiceWithPayments",
    "OperationResult",
    "RateLimitError",
    "TransferRequest",
    "XeroAPIError",
    "XeroClient",
    "dry_run_delete",
    "dry_run_void",
]
