"""Clearing-account reconciliation engine."""

from finops.reconciliation.enrichment import EnrichmentResult, enrich_with_halaxy
from finops.reconciliation.guide import build_fee_guide, summarise_clearing
from finops.reconciliation.matching import (
    SubsetMatch,
    calculate_bronze_fee,
    find_best_subset_match,
    reconcile_medicare,
    reconcile_three_way,
    suggest_groupings,
    to_cents,
)

__all__ = [
    "EnrichmentResult",
    "SubsetMatch",
    "build_fee_guide",
    "calculate_bronze_fee",
    "enrich_with_halaxy",
    "find_best_subset_match",
    "reconcile_medicare",
    "reconcile_three_way",
    "suggest_groupings",
    "summarise_clearing",
    "to_cents",
]
