"""Financial-operations toolkit: Xero cleanup and reconciliation, Halaxy and Up Bank sync."""

__version__ = "0.1.0"
