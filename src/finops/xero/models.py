"""Xero domain types used by the client and the bulk operations."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from finops.xero.parsing import parse_xero_date, to_decimal


class DeleteAction(str, Enum):
    """Outcome category of a delete-or-void call."""

    DELETED = "DELETED"
    VOIDED = "VOIDED"
    SKIPPED = "SKIPPED"


@dataclass
class InvoiceRef:
    """An invoice number resolved to its Xero id."""

    invoice_number: str
    invoice_id: str


@dataclass
class InvoiceSummary:
    """Invoice as returned by the Invoices list endpoint."""

    invoice_id: str
    invoice_number: str
    date: str
    due_date: str
    status: str
    type: str
    contact: str
    total: Decimal
    amount_due: Decimal

    @classmethod
    def from_xero(cls, inv: dict[str, Any]) -> "InvoiceSummary":
        contact = inv.get("Contact") or {}
        return cls(
            invoice_id=inv.get("InvoiceID") or "",
            invoice_number=inv.get("InvoiceNumber") or "",
            date=parse_xero_date(inv.get("Date")),
            due_date=parse_xero_date(inv.get("DueDate")),
            status=inv.get("Status") or "",
            type=inv.get("Type") or "",
            contact=contact.get("Name") or "",
            total=to_decimal(inv.get("Total")),
            amount_due=to_decimal(inv.get("AmountDue")),
        )

    @property
    def ref(self) -> InvoiceRef:
        return InvoiceRef(self.invoice_number, self.invoice_id)


@dataclass
class PaymentRef:
    payment_id: str
    amount: Decimal
    date: str


@dataclass
class AllocationRef:
    """A credit note, prepayment or overpayment allocated to an invoice."""

    source_id: str
    allocation_id: str | None = None


def _applied(items: list[dict[str, Any]] | None, id_key: str) -> list[AllocationRef]:
    # Xero is inconsistent about ID vs Id casing on nested documents
    refs = []
    for item in items or []:
        source_id = item.get(f"{id_key}ID") or item.get(f"{id_key}Id")
        if source_id:
            refs.append(
                AllocationRef(
                    source_id=source_id,
                    allocation_id=item.get("AllocationID") or item.get("AllocationId"),
                )
            )
    return refs


@dataclass
class InvoiceWithPayments:
    """Full invoice including payments and applied allocations."""

    invoice_id: str
    invoice_number: str
    status: str
    date: str
    contact_id: str | None = None
    payments: list[PaymentRef] = field(default_factory=list)
    applied_credit_notes: list[AllocationRef] = field(default_factory=list)
    applied_prepayments: list[AllocationRef] = field(default_factory=list)
    applied_overpayments: list[AllocationRef] = field(default_factory=list)

    @classmethod
    def from_xero(cls, inv: dict[str, Any]) -> "InvoiceWithPayments":
        contact = inv.get("Contact") or {}
        return cls(
            invoice_id=inv.get("InvoiceID") or "",
            invoice_number=inv.get("InvoiceNumber") or "",
            status=inv.get("Status") or "",
            date=parse_xero_date(inv.get("Date")),
            contact_id=contact.get("ContactID"),
            payments=[
                PaymentRef(
                    payment_id=p.get("PaymentID") or "",
                    amount=to_decimal(p.get("Amount")),
                    date=p.get("Date") or "",
                )
                for p in inv.get("Payments") or []
            ],
            applied_credit_notes=_applied(inv.get("CreditNotes"), "CreditNote"),
            applied_prepayments=_applied(inv.get("Prepayments"), "Prepayment"),
            applied_overpayments=_applied(inv.get("Overpayments"), "Overpayment"),
        )

    @property
    def has_allocations(self) -> bool:
        return bool(
            self.applied_credit_notes or self.applied_prepayments or self.applied_overpayments
        )


@dataclass
class VoidResult:
    invoice_number: str
    success: bool
    message: str


@dataclass
class BulkVoidOutcome:
    results: list[VoidResult]
    stopped_early: bool = False


@dataclass
class BulkDeleteResult:
    invoice_number: str
    invoice_id: str
    action: DeleteAction
    success: bool
    message: str


@dataclass
class BulkDeleteOutcome:
    results: list[BulkDeleteResult]
    stopped_early: bool = False


@dataclass
class OperationResult:
    """Outcome of a single ledger mutation."""

    success: bool
    message: str
    resource_id: str | None = None


@dataclass
class BankDeposit:
    """Unreconciled RECEIVE transaction in a real bank account."""

    bank_transaction_id: str
    date: str
    amount: Decimal
    reference: str = ""
    is_reconciled: bool = False

    @classmethod
    def from_xero(cls, txn: dict[str, Any]) -> "BankDeposit":
        return cls(
            bank_transaction_id=txn.get("BankTransactionID") or "",
            date=parse_xero_date(txn.get("Date")),
            amount=to_decimal(txn.get("Total")),
            reference=txn.get("Reference") or "",
            is_reconciled=bool(txn.get("IsReconciled")),
        )


@dataclass
class ClearingTransaction:
    """Transaction staged in the clearing account.

    The ``halaxy_*`` fields are filled in by legacy-mode enrichment.
    """

    transaction_id: str
    date: str
    amount: Decimal
    invoice_number: str = ""
    reference: str = ""
    txn_type: str | None = None
    contact_name: str | None = None
    halaxy_invoice_number: str | None = None
    halaxy_patient_name: str | None = None
    halaxy_payment_method: str | None = None
    halaxy_amount: Decimal | None = None
    halaxy_match_type: str | None = None

    @classmethod
    def from_xero(cls, txn: dict[str, Any]) -> "ClearingTransaction":
        contact = txn.get("Contact") or {}
        reference = txn.get("Reference") or ""
        return cls(
            transaction_id=txn.get("BankTransactionID") or "",
            date=parse_xero_date(txn.get("Date")),
            amount=to_decimal(txn.get("Total")),
            invoice_number=reference,
            reference=reference,
            txn_type=txn.get("Type") or None,
            contact_name=contact.get("Name") or None,
        )


@dataclass
class TransferRequest:
    """One clearing item to sweep into the destination bank account."""

    clearing_transaction_id: str
    amount: Decimal
    date: str
    reference: str


@dataclass
class TransferResult:
    reference: str
    success: bool
    message: str
    transfer_id: str | None = None


@dataclass
class BatchTransferOutcome:
    total: int
    succeeded: int
    failed: int
    results: list[TransferResult]


@dataclass
class PurgeItem:
    bank_transaction_id: str
    date: str
    amount: Decimal
    reference: str
    type: str
    is_reconciled: bool
    deleted: bool = False
    message: str | None = None


@dataclass
class PurgeResult:
    """Result of removing an account's bank transactions before a cutoff."""

    account_id: str
    cutoff_date: str
    dry_run: bool
    found: int
    deleted: int = 0
    skipped: int = 0
    total_amount: Decimal = Decimal("0")
    errors: list[dict[str, str]] = field(default_factory=list)
    stopped_early: bool = False
    items: list[PurgeItem] = field(default_factory=list)
