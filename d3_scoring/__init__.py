"""
D3 Scoring Module

Page tier assignment, per-page issue summaries and the weighted, size
normalized site score.
"""

from .aggregation import (
    aggregate,
    build_site_summary,
    distribution_balance,
    size_normalization,
    tier_weights,
    weighted_overall_score,
)
from .page_summary import summarize_pages
from .tiers import TierAssignment, TierTable, describe, load_tier_table, tier_of

__all__ = [
    # Tiers
    "TierAssignment",
    "TierTable",
    "describe",
    "load_tier_table",
    "tier_of",
    # Page summaries
    "summarize_pages",
    # Aggregation
    "aggregate",
    "build_site_summary",
    "distribution_balance",
    "size_normalization",
    "tier_weights",
    "weighted_overall_score",
]
