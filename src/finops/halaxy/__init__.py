"""Halaxy practice-management (FHIR) integration."""

from finops.halaxy.client import HalaxyAPIError, HalaxyClient
from finops.halaxy.models import HalaxyInvoice, HalaxyPayment, is_medicare_method

__all__ = [
    "HalaxyAPIError",
    "HalaxyClient",
    "HalaxyInvoice",
    "HalaxyPayment",
    "is_medicare_method",
]
