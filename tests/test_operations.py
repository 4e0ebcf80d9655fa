"""Tests for the bulk invoice and clearing workflows."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from finops.audit import get_audit_log
from finops.config import ConfigurationError
from finops.operations import (
    InvalidRequestError,
    SummaryQuery,
    bulk_delete,
    bulk_void,
    clearing_apply,
    clearing_purge,
    clearing_summary,
    clearing_transfers,
    invoice_cleanup,
    paid_wipe,
    unpay_invoice,
)
from finops.operations.clearing import parse_tolerance
from finops.operations.cleanup import categorise
from finops.operations.models import (
    CleanupAction,
    CleanupRequest,
    CleanupResponse,
    CleanupStep,
    CleanupVerifyResponse,
    InvoiceError,
    RemovedPayments,
)
from finops.reconciliation.models import (
    ClearingSummary,
    MedicareReconciliationResult,
    ReconciliationGuide,
    ReconciliationResult,
)
from finops.xero.models import (
    AllocationRef,
    BatchTransferOutcome,
    BulkDeleteOutcome,
    BulkDeleteResult,
    BulkVoidOutcome,
    DeleteAction,
    InvoiceSummary,
    InvoiceWithPayments,
    OperationResult,
    PaymentRef,
    PurgeResult,
    TransferRequest,
    TransferResult,
    VoidResult,
)


@pytest.fixture
def xero():
    """Mocked XeroClient with configured account ids."""
    client = AsyncMock()
    client.nab_account_id = "nab-account"
    client.clearing_account_id = "clearing-account"
    client.savings_account_id = "savings-account"
    return client


@pytest.fixture
def halaxy():
    """Mocked HalaxyClient."""
    client = AsyncMock()
    client.enrich_payments_with_invoices = AsyncMock(side_effect=lambda payments: payments)
    return client


def _summary(number: str, status: str) -> InvoiceSummary:
    return InvoiceSummary(
        invoice_id=f"id-{number}",
        invoice_number=number,
        date="2023-06-01",
        due_date="2023-06-15",
        status=status,
        type="ACCREC",
        contact="Patient",
        total=Decimal("120.00"),
        amount_due=Decimal("0"),
    )


def _paid(number: str, *payment_ids: str) -> InvoiceWithPayments:
    return InvoiceWithPayments(
        invoice_id=f"id-{number}",
        invoice_number=number,
        status="PAID",
        date="2023-06-01",
        contact_id="contact-1",
        payments=[PaymentRef(p, Decimal("120.00"), "2023-06-02") for p in payment_ids],
    )


class TestBulkVoid:
    """Tests for bulk_void."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("numbers", [[], ["", "  "], "INV-1", None])
    async def test_invalid_numbers(self, xero, numbers):
        with pytest.raises(InvalidRequestError) as exc_info:
            await bulk_void(xero, numbers, False, "admin")

        assert exc_info.value.field == "invoiceNumbers"

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_calls(self, xero):
        response = await bulk_void(xero, ["INV-1", "INV-2"], True, "admin")

        assert response.dry_run is True
        assert response.total == 2
        assert response.skipped == 2
        assert response.attempted == 0
        xero.bulk_void_invoices.assert_not_awaited()
        assert len(get_audit_log()) == 0

    @pytest.mark.asyncio
    async def test_live_run_is_audited(self, xero):
        xero.bulk_void_invoices.return_value = BulkVoidOutcome(
            [VoidResult("INV-1", True, "Voided"), VoidResult("INV-2", False, "Payment exists")]
        )

        response = await bulk_void(xero, [" INV-1 ", "INV-2", "INV-1"], False, "admin")

        xero.bulk_void_invoices.assert_awaited_once_with(["INV-1", "INV-2"])
        assert response.attempted == 2
        assert response.voided == 1
        assert response.errors == [InvoiceError("INV-2", "Payment exists")]

        entry = get_audit_log().recent()[0]
        assert entry.action == "bulk-void"
        assert entry.user == "admin"
        assert entry.details["voided"] == 1
        assert entry.details["failed"] == 1


class TestBulkDelete:
    """Tests for bulk_delete."""

    @pytest.mark.asyncio
    async def test_invalid_cutoff(self, xero):
        with pytest.raises(InvalidRequestError) as exc_info:
            await bulk_delete(xero, "2024-02-30", True, "admin")

        assert str(exc_info.value) == "cutoffDate must be a valid ISO date (YYYY-MM-DD)"
        xero.fetch_invoices_before_date.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_only_lists_invoices(self, xero):
        invoices = [_summary("INV-1", "DRAFT")]
        xero.fetch_invoices_before_date.return_value = invoices

        response = await bulk_delete(xero, "2024-01-01", False, "admin", fetch_only=True)

        assert response.total_found == 1
        assert response.invoices == invoices
        assert response.dry_run is True
        xero.bulk_delete_invoices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dry_run_counts_actions(self, xero):
        xero.fetch_invoices_before_date.return_value = [
            _summary("INV-1", "DRAFT"),
            _summary("INV-2", "AUTHORISED"),
            _summary("INV-3", "PAID"),
        ]

        response = await bulk_delete(xero, "2024-01-01", True, "admin")

        assert (response.deleted, response.voided, response.skipped) == (1, 1, 1)
        assert response.errors == []
        xero.bulk_delete_invoices.assert_not_awaited()
        assert len(get_audit_log()) == 0

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, xero):
        xero.fetch_invoices_before_date.return_value = []

        response = await bulk_delete(xero, "2024-01-01", False, "admin")

        assert response.total_found == 0
        xero.bulk_delete_invoices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_live_run(self, xero):
        invoices = [_summary("INV-1", "DRAFT"), _summary("INV-2", "AUTHORISED")]
        xero.fetch_invoices_before_date.return_value = invoices
        xero.bulk_delete_invoices.return_value = BulkDeleteOutcome(
            [
                BulkDeleteResult("INV-1", "id-INV-1", DeleteAction.DELETED, True, "Deleted"),
                BulkDeleteResult("INV-2", "id-INV-2", DeleteAction.VOIDED, False, "Locked period"),
            ],
            stopped_early=True,
        )

        response = await bulk_delete(xero, "2024-01-01", False, "admin")

        assert response.deleted == 1
        assert response.voided == 0
        assert response.errors == [InvoiceError("INV-2", "Locked period")]
        assert response.stopped_early is True
        entry = get_audit_log().recent()[0]
        assert entry.action == "bulk-delete"
        assert entry.details["cutoff_date"] == "2024-01-01"


class TestUnpayInvoice:
    """Tests for payment and allocation removal."""

    @pytest.mark.asyncio
    async def test_stops_at_failed_payment(self, xero):
        xero.delete_payment.side_effect = [
            OperationResult(True, "Payment deleted"),
            OperationResult(False, "Payment is reconciled"),
        ]

        outcome = await unpay_invoice(xero, _paid("INV-1", "p1", "p2", "p3"))

        assert outcome.success is False
        assert outcome.message == "Payment removal failed: Payment is reconciled"
        assert outcome.payment_ids == ["p1"]
        assert xero.delete_payment.await_count == 2

    @pytest.mark.asyncio
    async def test_pauses_between_payments(self, xero):
        xero.delete_payment.return_value = OperationResult(True, "Payment deleted")

        outcome = await unpay_invoice(xero, _paid("INV-1", "p1", "p2"), payment_pause=0.5)

        assert outcome.success is True
        assert outcome.payment_ids == ["p1", "p2"]
        assert xero.pause.await_count == 2

    @pytest.mark.asyncio
    async def test_removes_credit_note_allocations(self, xero):
        invoice = _paid("INV-1")
        invoice.applied_credit_notes = [AllocationRef("cn-1")]
        xero.get_credit_note_allocations_to_invoice.return_value = [
            AllocationRef("cn-1", "alloc-1"),
            AllocationRef("cn-2"),
        ]
        xero.delete_credit_note_allocation.return_value = OperationResult(True, "Removed")

        outcome = await unpay_invoice(xero, invoice)

        assert outcome.success is True
        xero.get_credit_note_allocations_to_invoice.assert_awaited_once_with(
            "id-INV-1", "contact-1", invoice.applied_credit_notes
        )
        xero.delete_credit_note_allocation.assert_awaited_once_with("cn-1", "alloc-1")
        xero.get_prepayment_allocations_to_invoice.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allocation_failure(self, xero):
        invoice = _paid("INV-1")
        invoice.applied_overpayments = [AllocationRef("op-1", "alloc-9")]
        xero.get_overpayment_allocations_to_invoice.return_value = invoice.applied_overpayments
        xero.delete_overpayment_allocation.return_value = OperationResult(False, "Not allowed")

        outcome = await unpay_invoice(xero, invoice)

        assert outcome.success is False
        assert outcome.message == "Allocation removal failed: Not allowed"


class TestPaidWipe:
    """Tests for paid_wipe."""

    @pytest.mark.asyncio
    async def test_dry_run(self, xero):
        response = await paid_wipe(xero, ["INV-1"], True, "admin")

        assert response.dry_run is True
        xero.get_invoice_by_number.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unpays_then_voids_all(self, xero):
        xero.get_invoice_by_number.side_effect = [_paid("INV-1", "p1"), _paid("INV-2", "p2")]
        xero.delete_payment.return_value = OperationResult(True, "Payment deleted")
        xero.bulk_void_invoices.return_value = BulkVoidOutcome(
            [VoidResult("INV-1", True, "Voided"), VoidResult("INV-2", True, "Voided")]
        )

        response = await paid_wipe(xero, ["INV-1", "INV-2"], False, "admin")

        xero.bulk_void_invoices.assert_awaited_once_with(["INV-1", "INV-2"])
        assert response.voided == 2
        assert response.stopped_early is False
        assert response.payments_removed == [
            RemovedPayments("INV-1", ["p1"]),
            RemovedPayments("INV-2", ["p2"]),
        ]
        xero.pause.assert_awaited_with(0.2)

    @pytest.mark.asyncio
    async def test_stops_at_first_missing_invoice(self, xero):
        xero.get_invoice_by_number.side_effect = [_paid("INV-1", "p1"), None]
        xero.delete_payment.return_value = OperationResult(True, "Payment deleted")
        xero.bulk_void_invoices.return_value = BulkVoidOutcome([VoidResult("INV-1", True, "Voided")])

        response = await paid_wipe(xero, ["INV-1", "INV-2", "INV-3"], False, "admin")

        assert xero.get_invoice_by_number.await_count == 2
        xero.bulk_void_invoices.assert_awaited_once_with(["INV-1"])
        assert response.attempted == 1
        assert response.voided == 1
        assert response.errors == [InvoiceError("INV-2", "Invoice not found in Xero")]
        assert response.stopped_early is True

        entry = get_audit_log().recent()[0]
        assert entry.action == "paid-wipe"
        assert entry.details["payments_removed"] == 1


class TestInvoiceCleanup:
    """Tests for the multi-step cleanup workflow."""

    def test_categorise(self):
        assert categorise(_summary("A", "DRAFT")) is CleanupAction.DELETE
        assert categorise(_summary("A", "SUBMITTED")) is CleanupAction.DELETE
        assert categorise(_summary("A", "AUTHORIZED")) is CleanupAction.VOID
        assert categorise(_summary("A", "Awaiting  Payment")) is CleanupAction.VOID
        assert categorise(_summary("A", "PAID")) is CleanupAction.UNPAY_VOID
        assert categorise(_summary("A", "VOIDED")) is CleanupAction.SKIP

    @pytest.mark.asyncio
    async def test_invalid_input_mode(self, xero):
        with pytest.raises(InvalidRequestError) as exc_info:
            await invoice_cleanup(xero, CleanupRequest(input_mode="excel"), "admin")

        assert exc_info.value.field == "inputMode"

    @pytest.mark.asyncio
    async def test_fetch_mode_needs_cutoff(self, xero):
        with pytest.raises(InvalidRequestError):
            await invoice_cleanup(xero, CleanupRequest(input_mode="fetch"), "admin")

    @pytest.mark.asyncio
    async def test_csv_mode_needs_numbers(self, xero):
        with pytest.raises(InvalidRequestError):
            await invoice_cleanup(xero, CleanupRequest(input_mode="csv", invoice_numbers=[" "]), "admin")

    @pytest.mark.asyncio
    async def test_dry_run_categorises(self, xero):
        xero.fetch_invoices_before_date.return_value = [
            _summary("INV-1", "DRAFT"),
            _summary("INV-2", "AUTHORISED"),
            _summary("INV-3", "AWAITING PAYMENT"),
            _summary("INV-4", "PAID"),
            _summary("INV-5", "VOIDED"),
        ]

        response = await invoice_cleanup(
            xero, CleanupRequest(input_mode="fetch", cutoff_date="2024-01-01", dry_run=True), "admin"
        )

        assert isinstance(response, CleanupResponse)
        assert response.dry_run is True
        assert (response.to_delete, response.to_void, response.to_unpay_void, response.skipped) == (
            1,
            2,
            1,
            1,
        )
        assert response.cutoff_date == "2024-01-01"
        xero.bulk_void_invoices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_run_with_batch_limit(self, xero):
        xero.get_invoices_by_numbers_with_status.return_value = [
            _summary("INV-A", "AUTHORISED"),
            _summary("INV-P1", "PAID"),
            _summary("INV-P2", "PAID"),
            _summary("INV-D", "DRAFT"),
        ]
        xero.get_invoice_by_number.return_value = _paid("INV-P1", "pay-1")
        xero.delete_payment.return_value = OperationResult(True, "Payment deleted")
        xero.bulk_void_invoices.return_value = BulkVoidOutcome(
            [VoidResult("INV-A", True, "Voided"), VoidResult("INV-P1", True, "Voided")]
        )
        xero.bulk_delete_invoices.return_value = BulkDeleteOutcome(
            [BulkDeleteResult("INV-D", "id-INV-D", DeleteAction.DELETED, True, "Deleted")]
        )

        response = await invoice_cleanup(
            xero,
            CleanupRequest(
                input_mode="csv",
                invoice_numbers=["INV-A", "INV-P1", "INV-P2", "INV-D"],
                batch_limit=1,
            ),
            "admin",
        )

        xero.get_invoice_by_number.assert_awaited_once_with("INV-P1")
        xero.bulk_void_invoices.assert_awaited_once_with(["INV-A", "INV-P1"])
        deleted_batch = xero.bulk_delete_invoices.call_args.args[0]
        assert [i.invoice_number for i in deleted_batch] == ["INV-D"]
        assert response.voided == 2
        assert response.deleted == 1
        assert response.payments_removed == 1
        assert response.partial is True
        assert response.remaining_invoice_numbers == ["INV-P2"]
        assert response.stopped_early is False
        assert response.cutoff_date is None
        assert [(r.invoice_number, r.action) for r in response.results] == [
            ("INV-P1", CleanupAction.UNPAY_VOID),
            ("INV-A", CleanupAction.VOID),
            ("INV-P1", CleanupAction.VOID),
            ("INV-D", CleanupAction.DELETE),
        ]
        assert get_audit_log().recent()[0].action == "invoice-cleanup"

    @pytest.mark.asyncio
    async def test_unpay_failure_stops_later_steps(self, xero):
        xero.get_invoices_by_numbers_with_status.return_value = [
            _summary("INV-A", "AUTHORISED"),
            _summary("INV-P1", "PAID"),
            _summary("INV-D", "DRAFT"),
        ]
        xero.get_invoice_by_number.return_value = None

        response = await invoice_cleanup(
            xero,
            CleanupRequest(input_mode="csv", invoice_numbers=["INV-A", "INV-P1", "INV-D"]),
            "admin",
        )

        assert response.stopped_early is True
        assert response.errors == [InvoiceError("INV-P1", "Invoice not found in Xero")]
        xero.bulk_void_invoices.assert_not_awaited()
        xero.bulk_delete_invoices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_void_step_rereads_statuses(self, xero):
        xero.get_invoices_by_numbers_with_status.side_effect = [
            [_summary("INV-1", "PAID")],
            [_summary("INV-1", "AUTHORISED")],
        ]
        xero.bulk_void_invoices.return_value = BulkVoidOutcome([VoidResult("INV-1", True, "Voided")])

        response = await invoice_cleanup(
            xero,
            CleanupRequest(input_mode="csv", invoice_numbers=["INV-1"], step=CleanupStep.VOID),
            "admin",
        )

        xero.get_invoice_by_number.assert_not_awaited()
        xero.bulk_void_invoices.assert_awaited_once_with(["INV-1"])
        assert response.voided == 1

    @pytest.mark.asyncio
    async def test_verify_only(self, xero):
        xero.get_invoices_by_numbers_with_status.return_value = [
            _summary("INV-1", "VOIDED"),
            _summary("INV-3", "AUTHORIZED"),
            _summary("INV-4", "PAID"),
        ]

        response = await invoice_cleanup(
            xero,
            CleanupRequest(
                verify_only=True,
                invoice_numbers=["INV-1", "INV-2", "INV-3", "INV-4"],
                expected_by_invoice={"INV-1": "voided", "INV-2": "Not Found", "INV-4": "VOIDED"},
            ),
            "admin",
        )

        assert isinstance(response, CleanupVerifyResponse)
        assert [(v.invoice_number, v.status, v.ok) for v in response.verified] == [
            ("INV-1", "VOIDED", True),
            ("INV-2", "not found", True),
            ("INV-3", "AUTHORISED", True),
            ("INV-4", "PAID", False),
        ]


class TestClearingSummary:
    """Tests for the clearing summary mode selection."""

    def test_parse_tolerance(self):
        assert parse_tolerance(None) == 500
        assert parse_tolerance("", 200) == 200
        assert parse_tolerance("250.6") == 251
        assert parse_tolerance("-5") == 0
        with pytest.raises(InvalidRequestError):
            parse_tolerance("lots")

    @pytest.mark.asyncio
    async def test_dates_required(self, xero):
        with pytest.raises(InvalidRequestError):
            await clearing_summary(xero, None, SummaryQuery(date="01/03/2024"))

    @pytest.mark.asyncio
    async def test_accounts_required(self, xero):
        xero.nab_account_id = None

        with pytest.raises(ConfigurationError) as exc_info:
            await clearing_summary(xero, None, SummaryQuery(date="2024-03-01"))

        assert exc_info.value.env_name == "XERO_NAB_ACCOUNT_ID"

    @pytest.mark.asyncio
    async def test_legacy_without_halaxy(self, xero, deposit, clearing_txn):
        xero.get_unreconciled_bank_transactions.return_value = [deposit("d1", "100.00", "2024-03-01")]
        xero.get_clearing_transactions.return_value = [clearing_txn("c1", "100.00", "2024-03-01")]

        summary = await clearing_summary(xero, None, SummaryQuery(date="2024-03-01"))

        assert isinstance(summary, ClearingSummary)
        assert summary.date == "2024-03-01"
        assert summary.tolerance_cents == 500
        assert len(summary.deposits) == 1
        assert summary.halaxy_enriched is False
        xero.get_unreconciled_bank_transactions.assert_awaited_once_with(
            "nab-account", "2024-03-01", "2024-03-01"
        )
        xero.get_clearing_transactions.assert_awaited_once_with(
            "clearing-account", "2024-03-01", "2024-03-01"
        )

    @pytest.mark.asyncio
    async def test_three_way_by_default_with_halaxy(self, xero, halaxy):
        xero.get_unreconciled_bank_transactions.return_value = []
        xero.get_clearing_transactions.return_value = []
        halaxy.get_braintree_payments.return_value = []

        result = await clearing_summary(
            xero, halaxy, SummaryQuery(from_date="2024-03-01", to_date="2024-03-07")
        )

        assert isinstance(result, ReconciliationResult)
        halaxy.get_braintree_payments.assert_awaited_once_with("2024-03-01", "2024-03-07")

    @pytest.mark.asyncio
    async def test_halaxy_false_uses_legacy(self, xero, halaxy):
        xero.get_unreconciled_bank_transactions.return_value = []
        xero.get_clearing_transactions.return_value = []

        summary = await clearing_summary(
            xero, halaxy, SummaryQuery(from_date="2024-03-01", to_date="2024-03-07", halaxy="false")
        )

        assert isinstance(summary, ClearingSummary)
        assert summary.date == "2024-03-01 to 2024-03-07"
        halaxy.get_payment_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_legacy_survives_enrichment_failure(self, xero, halaxy, clearing_txn):
        xero.get_unreconciled_bank_transactions.return_value = []
        xero.get_clearing_transactions.return_value = [clearing_txn("c1", "10.00", "2024-03-01")]
        halaxy.get_payment_transactions.side_effect = RuntimeError("Halaxy down")

        summary = await clearing_summary(
            xero, halaxy, SummaryQuery(date="2024-03-01", mode="legacy")
        )

        assert summary.halaxy_enriched is False
        assert summary.sync_gaps is None
        assert [t.transaction_id for t in summary.unmatched_clearing] == ["c1"]

    @pytest.mark.asyncio
    async def test_legacy_enriched(self, xero, halaxy, clearing_txn, braintree_payment):
        xero.get_unreconciled_bank_transactions.return_value = []
        xero.get_clearing_transactions.return_value = [clearing_txn("c1", "10.00", "2024-03-01")]
        halaxy.get_payment_transactions.return_value = [
            braintree_payment("p1", "10.00", "2024-03-01")
        ]

        summary = await clearing_summary(
            xero, halaxy, SummaryQuery(date="2024-03-01", mode="legacy")
        )

        assert summary.halaxy_enriched is True
        assert summary.unmatched_clearing[0].halaxy_match_type == "amount-only"

    @pytest.mark.asyncio
    async def test_guide_mode(self, xero, halaxy, braintree_payment):
        halaxy.get_payment_transactions.return_value = [
            braintree_payment("p1", "100.00", "2024-03-01", invoice_number="INV-1"),
            braintree_payment("p2", "100.00", "2024-03-01", type="Refund"),
        ]

        guide = await clearing_summary(xero, halaxy, SummaryQuery(date="2024-03-01", mode="guide"))

        assert isinstance(guide, ReconciliationGuide)
        assert guide.payment_count == 1
        enriched_arg = halaxy.enrich_payments_with_invoices.call_args.args[0]
        assert [p.id for p in enriched_arg] == ["p1"]
        xero.get_clearing_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", ["guide", "medicare", "threeway"])
    async def test_halaxy_modes_need_halaxy(self, xero, mode):
        with pytest.raises(InvalidRequestError) as exc_info:
            await clearing_summary(xero, None, SummaryQuery(date="2024-03-01", mode=mode))

        assert "Halaxy credentials not configured" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_medicare_mode(self, xero, halaxy, braintree_payment):
        xero.get_unreconciled_bank_transactions.return_value = []
        xero.get_clearing_transactions.return_value = []
        halaxy.get_medicare_payments.return_value = [
            braintree_payment("m1", "38.75", "2024-03-01", method="Medicare"),
            braintree_payment("m2", "41.20", "2024-03-01", method="Medicare"),
        ]

        result = await clearing_summary(
            xero, halaxy, SummaryQuery(date="2024-03-01", mode="medicare")
        )

        assert isinstance(result, MedicareReconciliationResult)
        assert result.halaxy_payment_count == 2
        assert result.halaxy_payment_total == Decimal("79.95")
        xero.get_unreconciled_bank_transactions.assert_awaited_once_with(
            "savings-account", "2024-03-01", "2024-03-01"
        )


class TestClearingApply:
    """Tests for clearing_apply."""

    @pytest.mark.asyncio
    async def test_ids_required(self, xero):
        with pytest.raises(InvalidRequestError):
            await clearing_apply(xero, "bt-1", [], False, "admin")

    @pytest.mark.asyncio
    async def test_dry_run(self, xero):
        response = await clearing_apply(xero, "bt-1", ["c1", "c2"], True, "admin")

        assert response.dry_run is True
        assert response.matched == 2
        assert response.message == "Dry run: would link 2 clearing transactions to deposit bt-1"
        xero.apply_clearing.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_live_uses_default_fee_account(self, xero):
        xero.apply_clearing.return_value = OperationResult(True, "Bank transfer created for $97.10")

        response = await clearing_apply(
            xero, "bt-1", ["c1"], False, "admin", fee_amount=Decimal("2.90")
        )

        xero.apply_clearing.assert_awaited_once_with(
            "bt-1", ["c1"], fee_amount=Decimal("2.90"), fee_account_code="404"
        )
        assert response.success is True
        assert response.total == Decimal("0")
        entry = get_audit_log().recent()[0]
        assert entry.action == "clearing-apply"
        assert entry.details["fee"] == "2.90"


class TestClearingTransfers:
    """Tests for clearing_transfers."""

    @pytest.fixture
    def items(self):
        return [
            TransferRequest("c1", Decimal("97.10"), "2024-03-01", "INV-1"),
            TransferRequest("c2", Decimal("48.55"), "2024-03-01", "INV-2"),
        ]

    @pytest.mark.asyncio
    async def test_items_required(self, xero):
        with pytest.raises(InvalidRequestError):
            await clearing_transfers(xero, [], None, False, "admin")

    @pytest.mark.asyncio
    async def test_dry_run(self, xero, items):
        outcome = await clearing_transfers(xero, items, None, True, "admin")

        assert outcome.succeeded == 2
        assert outcome.results[0].message == "Would transfer $97.10 (dry run)"
        xero.create_batch_bank_transfers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_live_is_audited(self, xero, items):
        xero.create_batch_bank_transfers.return_value = BatchTransferOutcome(
            total=2,
            succeeded=1,
            failed=1,
            results=[
                TransferResult("INV-1", True, "Bank transfer created: $97.10 (INV-1)", "bt-9"),
                TransferResult("INV-2", False, "Account archived"),
            ],
        )

        outcome = await clearing_transfers(xero, items, "savings-account", False, "admin")

        xero.create_batch_bank_transfers.assert_awaited_once_with(items, "savings-account")
        assert outcome.failed == 1
        entry = get_audit_log().recent()[0]
        assert entry.action == "clearing-transfers"
        assert entry.details["amount"] == "145.65"


class TestClearingPurge:
    """Tests for clearing_purge."""

    @pytest.mark.asyncio
    async def test_cutoff_required(self, xero):
        with pytest.raises(InvalidRequestError):
            await clearing_purge(xero, "savings", None, "admin")

    @pytest.mark.asyncio
    async def test_account_shortcut_dry_run(self, xero):
        xero.purge_account_before.return_value = PurgeResult(
            account_id="savings-account", cutoff_date="2024-01-01", dry_run=True, found=3
        )

        result = await clearing_purge(xero, "savings", "2024-01-01", "admin")

        xero.purge_account_before.assert_awaited_once_with("savings-account", "2024-01-01", True)
        assert result.found == 3
        assert len(get_audit_log()) == 0

    @pytest.mark.asyncio
    async def test_live_is_audited(self, xero):
        xero.purge_account_before.return_value = PurgeResult(
            account_id="acc-raw", cutoff_date="2024-01-01", dry_run=False, found=2, deleted=2
        )

        await clearing_purge(xero, "acc-raw", "2024-01-01", "admin", dry_run=False)

        xero.purge_account_before.assert_awaited_once_with("acc-raw", "2024-01-01", False)
        entry = get_audit_log().recent()[0]
        assert entry.action == "account-purge"
        assert entry.details["deleted"] == 2

    @pytest.mark.asyncio
    async def test_unresolved_account(self, xero):
        xero.clearing_account_id = None

        with pytest.raises(InvalidRequestError) as exc_info:
            await clearing_purge(xero, "clearing", "2024-01-01", "admin")

        assert exc_info.value.field == "accountId"
