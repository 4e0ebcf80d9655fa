"""Halaxy FHIR resources reduced to the fields reconciliation needs."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from finops.xero.parsing import to_decimal


def _text(resource: dict[str, Any], key: str, attr: str = "text") -> str:
    value = resource.get(key)
    if isinstance(value, dict):
        return str(value.get(attr) or "")
    return ""


def _money(resource: dict[str, Any], key: str) -> Decimal:
    value = resource.get(key)
    return to_decimal(value.get("value") if isinstance(value, dict) else None)


@dataclass
class HalaxyInvoice:
    id: str
    identifier: str
    date: str
    status: str
    payor_type: str
    title: str
    practitioner_ref: str
    total_net: Decimal
    total_gross: Decimal
    total_balance: Decimal
    total_tax: Decimal
    total_paid: Decimal

    @classmethod
    def from_fhir(cls, resource: dict[str, Any]) -> "HalaxyInvoice":
        identifiers = resource.get("identifier") or []
        identifier = identifiers[0].get("value") if identifiers else ""
        return cls(
            id=str(resource.get("id") or ""),
            identifier=str(identifier or ""),
            date=str(resource.get("date") or ""),
            status=str(resource.get("status") or ""),
            payor_type=_text(resource, "payorType"),
            title=str(resource.get("title") or ""),
            practitioner_ref=_text(resource, "practitioner", "reference"),
            total_net=_money(resource, "totalNet"),
            total_gross=_money(resource, "totalGross"),
            total_balance=_money(resource, "totalBalance"),
            total_tax=_money(resource, "totalTax"),
            total_paid=_money(resource, "totalPaid"),
        )


@dataclass
class HalaxyPayment:
    """A PaymentTransaction. ``invoice_number`` and ``patient_name`` are filled by enrichment."""

    id: str
    created: str
    method: str
    type: str
    amount: Decimal
    invoice_id: str
    invoice_number: str | None = None
    patient_name: str | None = None

    @classmethod
    def from_fhir(cls, resource: dict[str, Any]) -> "HalaxyPayment":
        # "Invoice/12345" -> "12345"
        invoice_ref = _text(resource, "invoice", "reference")
        return cls(
            id=str(resource.get("id") or ""),
            created=str(resource.get("created") or ""),
            method=_text(resource, "method"),
            type=_text(resource, "type"),
            amount=_money(resource, "amount"),
            invoice_id=invoice_ref.rsplit("/", 1)[-1],
        )

    @property
    def created_date(self) -> str:
        return self.created[:10]


def is_medicare_method(method: str) -> bool:
    """Medicare, bulk-billed and DVA payments settle into the savings account."""
    lowered = method.lower()
    return "medicare" in lowered or "bulk bill" in lowered or "dva" in lowered
