"""Bulk ledger workflows with dry runs and audit logging."""

from finops.operations.cleanup import invoice_cleanup, verify_invoices
from finops.operations.clearing import (
    SummaryQuery,
    clearing_apply,
    clearing_purge,
    clearing_summary,
    clearing_transfers,
)
from finops.operations.invoices import bulk_delete, bulk_void, paid_wipe, unpay_invoice
from finops.operations.validation import InvalidRequestError

__all__ = [
    "InvalidRequestError",
    "SummaryQuery",
    "bulk_delete",
    "bulk_void",
    "clearing_apply",
    "clearing_purge",
    "clearing_summary",
    "clearing_transfers",
    "invoice_cleanup",
    "paid_wipe",
    "unpay_invoice",
    "verify_invoices",
]
