"""Up Bank integration."""

from finops.up.client import UpAPIError, UpClient

__all__ = ["UpAPIError", "UpClient"]
