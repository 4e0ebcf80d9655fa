"""Request bodies. Fields accept camelCase aliases as well as snake_case names."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictBool, field_validator
from pydantic.alias_generators import to_camel

from finops.operations.models import CleanupRequest, CleanupStep
from finops.xero.models import TransferRequest


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _stringify_numbers(value: Any) -> Any:
    # Spreadsheet exports send numeric invoice numbers
    if isinstance(value, list):
        return [
            str(v) if isinstance(v, int | float) and not isinstance(v, bool) else v for v in value
        ]
    return value


# ── Xero bulk operations ─────────────────────────────────────────────────


class InvoiceNumbersBody(CamelModel):
    invoice_numbers: list[str] | None = None
    dry_run: bool = False

    @field_validator("invoice_numbers", mode="before")
    @classmethod
    def numbers_as_text(cls, value: Any) -> Any:
        return _stringify_numbers(value)


class BulkDeleteBody(CamelModel):
    cutoff_date: str | None = None
    dry_run: bool = False
    fetch_only: bool = False


class InvoiceCleanupBody(CamelModel):
    input_mode: str | None = None
    cutoff_date: str | None = None
    invoice_numbers: list[str] | None = None
    dry_run: bool = False
    step: CleanupStep = CleanupStep.ALL
    verify_only: bool = False
    batch_limit: int = 50
    expected_by_invoice: dict[str, str] | None = None

    @field_validator("invoice_numbers", mode="before")
    @classmethod
    def numbers_as_text(cls, value: Any) -> Any:
        return _stringify_numbers(value)

    def to_request(self) -> CleanupRequest:
        return CleanupRequest(**self.model_dump())


# ── Clearing ─────────────────────────────────────────────────────────────


class ClearingApplyBody(CamelModel):
    bank_transaction_id: str | None = None
    clearing_transaction_ids: list[str] | None = None
    dry_run: bool = False
    fee_amount: Decimal = Decimal("0")
    fee_account_code: str | None = None


class TransferItem(CamelModel):
    clearing_transaction_id: str
    amount: Decimal
    date: str
    reference: str = ""

    def to_request(self) -> TransferRequest:
        return TransferRequest(self.clearing_transaction_id, self.amount, self.date, self.reference)


class ClearingTransfersBody(CamelModel):
    items: list[TransferItem] = []
    target_account_id: str | None = None
    dry_run: bool = False


class ClearingPurgeBody(CamelModel):
    account_id: str | None = None
    cutoff_date: str | None = None
    dry_run: bool = True


class ReportSummaryBody(CamelModel):
    from_date: str | None = None
    to_date: str | None = None
    date: str | None = None
    tolerance: int | None = None


# ── Budget ───────────────────────────────────────────────────────────────


class RuleCreateBody(CamelModel):
    pattern: str | None = None
    category_up_id: str | None = None
    merchant_label: str | None = None
    is_active: bool = True


class RuleUpdateBody(CamelModel):
    id: str | None = None
    pattern: str | None = None
    category_up_id: str | None = None
    merchant_label: str | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_unset=True)


class RecordIdBody(CamelModel):
    id: str | None = None


class RuleApplyBody(CamelModel):
    month: str | None = None


class LimitBody(CamelModel):
    category_up_id: str | None = None
    monthly_limit_cents: int | None = None


class RecordBody(CamelModel):
    id: str | None = None
    name: str | None = None
    account_up_id: str | None = None
    is_active: bool | None = None
    notes: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_unset=True)


class RecurringBody(RecordBody):
    type: str | None = None
    amount_cents: int | None = None
    frequency: str | None = None
    category_up_id: str | None = None
    next_due_date: str | None = None


class DebtBody(RecordBody):
    lender: str | None = None
    balance_cents: int | None = None
    interest_rate: float | None = None
    compounding: str | None = None
    min_payment_cents: int | None = None
    payment_frequency: str | None = None
    due_day: int | None = None
    priority: int | None = None


class EnvelopeBody(CamelModel):
    id: str | None = None
    name: str | None = None
    sort_order: int | None = None
    monthly_allocation_cents: int | None = None
    colour: str | None = None
    is_active: bool | None = None
    categories: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id", "categories"}, exclude_unset=True)


class BusinessFlagBody(CamelModel):
    transaction_up_id: str | None = None
    is_business: StrictBool | None = None
    notes: str | None = None


class BusinessRuleBody(CamelModel):
    pattern: str | None = None
    merchant_name: str | None = None
    category: str | None = None


# ── Assistant ────────────────────────────────────────────────────────────


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class AssistantBody(BaseModel):
    messages: list[ChatMessage] = []
