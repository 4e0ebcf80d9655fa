"""Hosted Postgres access through Supabase PostgREST."""

from finops.store.postgrest import Filters, PostgrestStore, StoreError, in_filter

__all__ = ["Filters", "PostgrestStore", "StoreError", "in_filter"]
