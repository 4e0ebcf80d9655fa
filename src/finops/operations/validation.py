"""Input validation shared by the bulk-operation workflows."""

import re
from datetime import date
from typing import Any

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidRequestError(ValueError):
    """Request input rejected before any ledger call is made."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def sanitise_invoice_numbers(numbers: Any) -> list[str]:
    """Trim, drop blanks and de-duplicate, preserving first-seen order."""
    if not isinstance(numbers, list):
        return []
    cleaned = (str(n).strip() for n in numbers if n is not None)
    return list(dict.fromkeys(n for n in cleaned if n))


def is_iso_date(value: Any) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_iso_date(value: Any, message: str, field: str | None = None) -> str:
    if not is_iso_date(value):
        raise InvalidRequestError(message, field)
    return value
