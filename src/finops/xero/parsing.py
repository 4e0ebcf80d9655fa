"""Helpers for Xero response shapes and where-clause construction."""

import re
from email.utils import parsedate_to_datetime
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DOTNET_DATE = re.compile(r"/Date\((\d+)([+-]\d{4})?\)/")
DEFAULT_RETRY_AFTER = 60


def parse_retry_after(value: str | None, now: datetime | None = None) -> int:
    """Seconds to wait from a Retry-After header.

    The header is either delay-seconds or an HTTP-date. Missing or
    unparseable values fall back to DEFAULT_RETRY_AFTER.
    """
    if not value:
        return DEFAULT_RETRY_AFTER
    text = value.strip()
    if text.isdigit():
        return int(text)
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - (now or datetime.now(UTC))).total_seconds()))


def parse_xero_date(value: Any) -> str:
    """Normalise a Xero date to YYYY-MM-DD.

    Xero returns either ISO strings or .NET ``/Date(1700000000000+0000)/``
    values. Anything else is truncated to ten characters; non-strings and
    empty values yield an empty string.
    """
    if not value or not isinstance(value, str):
        return ""
    text = value.strip()
    if _ISO_DATE.match(text):
        return text[:10]
    match = _DOTNET_DATE.search(text)
    if match:
        millis = int(match.group(1))
        return datetime.fromtimestamp(millis / 1000, tz=UTC).date().isoformat()
    return text[:10]


def to_decimal(value: Any) -> Decimal:
    """Coerce a JSON number or numeric string to Decimal (0 when missing)."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def escape_where_value(value: str) -> str:
    """Escape backslashes and double quotes inside a quoted where literal."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def invoice_number_clause(invoice_number: str) -> str:
    return f'InvoiceNumber=="{escape_where_value(invoice_number)}"'


def contact_clause(contact_id: str) -> str:
    cleaned = contact_id.replace('"', "")
    return f'Contact.ContactID=guid("{cleaned}")'


def xero_datetime(iso_date: str) -> str:
    """``2024-03-05`` -> ``DateTime(2024,3,5)``."""
    parsed = date.fromisoformat(iso_date[:10])
    return f"DateTime({parsed.year},{parsed.month},{parsed.day})"


def build_bank_txn_where(
    account_id: str,
    from_date: str,
    to_date: str,
    extra_clauses: list[str] | None = None,
) -> str:
    """Where clause for AUTHORISED bank transactions of one account within a date range."""
    clauses = [
        f'BankAccount.AccountID=guid("{account_id}")',
        'Status=="AUTHORISED"',
        f"Date>={xero_datetime(from_date)}",
        f"Date<={xero_datetime(to_date)}",
        *(extra_clauses or []),
    ]
    return " AND ".join(clauses)


def validation_messages(item: dict[str, Any]) -> str:
    """Join the ValidationErrors messages of a Xero response element."""
    errors = item.get("ValidationErrors") or []
    return "; ".join(e["Message"] for e in errors if isinstance(e, dict) and e.get("Message"))


def first_item(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    """First element of a Xero collection response, if any."""
    items = data.get(key) or []
    if not isinstance(items, list) or not items:
        return None
    first = items[0]
    return first if isinstance(first, dict) else None
