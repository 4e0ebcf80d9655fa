"""Request and response shapes of the bulk-operation workflows."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from finops.xero.models import InvoiceSummary


class CleanupAction(str, Enum):
    DELETE = "DELETE"
    VOID = "VOID"
    UNPAY_VOID = "UNPAY_VOID"
    SKIP = "SKIP"


class CleanupStep(str, Enum):
    UNPAY = "unpay"
    VOID = "void"
    DELETE = "delete"
    ALL = "all"


@dataclass
class InvoiceError:
    invoice_number: str
    message: str


@dataclass
class BulkVoidResponse:
    total: int
    attempted: int
    voided: int
    skipped: int
    errors: list[InvoiceError]
    dry_run: bool
    stopped_early: bool = False
    user: str | None = None


@dataclass
class BulkDeleteResponse:
    cutoff_date: str
    total_found: int
    deleted: int
    voided: int
    skipped: int
    errors: list[InvoiceError]
    dry_run: bool
    stopped_early: bool = False
    user: str | None = None
    invoices: list[InvoiceSummary] | None = None


@dataclass
class RemovedPayments:
    invoice_number: str
    payment_ids: list[str]


@dataclass
class PaidWipeResponse:
    total: int
    attempted: int
    voided: int
    skipped: int
    errors: list[InvoiceError]
    payments_removed: list[RemovedPayments]
    dry_run: bool
    stopped_early: bool = False
    user: str | None = None


@dataclass
class CleanupRequest:
    """Parameters of one invoice-cleanup call.

    ``input_mode`` is ``fetch`` (everything before ``cutoff_date``) or
    ``csv`` (the given ``invoice_numbers``).
    """

    input_mode: str | None = None
    cutoff_date: str | None = None
    invoice_numbers: list[str] | None = None
    dry_run: bool = False
    step: CleanupStep = CleanupStep.ALL
    verify_only: bool = False
    batch_limit: int = 50
    expected_by_invoice: dict[str, str] | None = None


@dataclass
class CleanupItem:
    invoice_number: str
    invoice_id: str
    date: str
    total: Decimal
    status: str
    action: CleanupAction


@dataclass
class CleanupResultItem:
    invoice_number: str
    action: CleanupAction
    success: bool
    message: str | None = None


@dataclass
class CleanupResponse:
    input_mode: str
    cutoff_date: str | None
    invoices: list[CleanupItem]
    to_delete: int
    to_void: int
    to_unpay_void: int
    skipped: int
    deleted: int = 0
    voided: int = 0
    payments_removed: int = 0
    errors: list[InvoiceError] = field(default_factory=list)
    dry_run: bool = False
    stopped_early: bool = False
    user: str | None = None
    results: list[CleanupResultItem] | None = None
    partial: bool = False
    remaining_invoice_numbers: list[str] | None = None


@dataclass
class VerifiedInvoice:
    invoice_number: str
    status: str
    expected: str | None
    ok: bool


@dataclass
class CleanupVerifyResponse:
    verified: list[VerifiedInvoice]


@dataclass
class ClearingApplyResponse:
    bank_transaction_id: str
    matched: int
    total: Decimal
    success: bool
    message: str
    dry_run: bool
