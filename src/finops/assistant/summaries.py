"""Condense Xero and budget data into short text for the LLM."""

import json
from decimal import Decimal
from typing import Any


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:,.2f}"


def _flatten_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Xero nests a section's rows under the section itself
    flat = []
    for row in rows:
        flat.append(row)
        if row.get("RowType") == "Section":
            flat.extend(row.get("Rows") or [])
    return flat


def summarise_report_rows(
    data: dict[str, Any], max_sections: int = 8, max_rows_per_section: int = 12
) -> str:
    """Flatten the first report's sections into ``label: amount`` lines.

    Falls back to truncated JSON when nothing row-shaped is found.
    """
    parts: list[str] = []
    for report in (data.get("Reports") or [])[:1]:
        title = ""
        rows: list[str] = []
        for row in _flatten_rows(report.get("Rows") or []):
            row_type = row.get("RowType")
            values = [c.get("Value") for c in row.get("Cells") or [] if c.get("Value")]
            if row_type == "Section" and row.get("Title"):
                if rows:
                    parts.append("\n".join([title, *rows[:max_rows_per_section]]))
                title = str(row["Title"])
                rows = []
            elif row_type in ("Row", "SummaryRow") and len(values) >= 2:
                rows.append(f"  {values[0]}: {' | '.join(values[1:])}")
        if rows:
            parts.append("\n".join([title, *rows[:max_rows_per_section]]))

    return "\n\n".join(parts[:max_sections]) or json.dumps(data, default=str)[:1500]


def summarise_invoices(data: dict[str, Any]) -> str:
    invoices = data.get("Invoices") or []
    if not invoices:
        return "No invoices found."
    lines = []
    for inv in invoices[:25]:
        number = inv.get("InvoiceNumber") or inv.get("Number") or "?"
        due = str(inv["DueDate"])[:10] if inv.get("DueDate") else ""
        contact = (inv.get("Contact") or {}).get("Name") or ""
        total = Decimal(str(inv.get("Total") or 0))
        lines.append(f"#{number} | {inv.get('Status') or '?'} | ${total:.2f} | Due {due} | {contact}")
    grand_total = sum((Decimal(str(i.get("Total") or 0)) for i in invoices), Decimal("0"))
    return "\n".join(lines) + f"\n\n({len(invoices)} invoice(s), total ${grand_total:.2f})"


def summarise_contacts(data: dict[str, Any]) -> str:
    contacts = data.get("Contacts") or []
    if not contacts:
        return "No contacts found."
    lines = []
    for contact in contacts[:30]:
        email = contact.get("EmailAddress")
        lines.append(f"- {contact.get('Name') or '?'}" + (f" ({email})" if email else ""))
    return "\n".join(lines) + f"\n\n({len(contacts)} contact(s) total)"


def summarise_organisation(data: dict[str, Any]) -> str:
    organisations = data.get("Organisations") or []
    if not organisations:
        return "Organisation details not found."
    org = organisations[0]
    return "\n".join(
        [
            f"Name: {org.get('Name') or '?'}",
            f"Legal Name: {org.get('LegalName') or '?'}",
            f"Base Currency: {org.get('BaseCurrency') or '?'}",
            f"Country: {org.get('CountryCode') or '?'}",
        ]
    )
