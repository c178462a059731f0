"""
Weighted Aggregation & Normalization Engine

Combines page issue summaries into the site-level PriorityBreakdown:

1. per tier: page count and raw opportunity count (Priority OFI + OFI)
2. total_weighted_ofi = sum of ofi_t * weight_t
3. total_weighted_pages = sum of pages_t * weight_t
   normalized_ofi = total_weighted_ofi / max(total_weighted_pages, 1)
4. size_adjusted_ofi = normalized_ofi * size_normalization(total pages)
5. distribution_balance over per-page opportunity counts
6. confidence = share of the weighted page total contributed by tier 1

Every step is order-independent, and an empty audit yields the zero
breakdown instead of raising.
"""

import math
import statistics
import time
from typing import Dict, Iterable, List, Optional

from core.exceptions import ValidationError
from core.logging import get_logger
from core.metrics import metrics
from d1_findings.models import (
    Finding,
    NormalizationFactors,
    PageIssueSummary,
    PriorityBreakdown,
    SiteSummary,
    TierBreakdown,
)
from d1_findings.types import FindingStatus, PageTier

from .page_summary import summarize_pages
from .tiers import TierTable

logger = get_logger(__name__)

# Sites in this page range need no size correction
SMALL_SITE_PAGES = 5
LARGE_SITE_PAGES = 200

MIN_SIZE_FACTOR = 0.5
MAX_SIZE_FACTOR = 1.5


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def size_normalization(total_pages: int) -> float:
    """
    Size correction factor in [0.5, 1.5], non-decreasing in the page count

    Small crawls are damped toward 0.5 (too few pages to trust the ratio);
    large crawls are boosted toward 1.5 because low-tier pages dilute the
    weighted ratio as a site grows.
    """
    if total_pages < SMALL_SITE_PAGES:
        return MIN_SIZE_FACTOR + 0.1 * max(total_pages, 0)
    if total_pages <= LARGE_SITE_PAGES:
        return 1.0
    return 1.0 + (MAX_SIZE_FACTOR - 1.0) * (1 - LARGE_SITE_PAGES / total_pages)


def distribution_balance(opportunity_counts: Iterable[int]) -> float:
    """
    1.0 when opportunities are spread evenly across pages, 0.0 when a single
    page carries all of them

    Uses the coefficient of variation (population) scaled by its maximum,
    sqrt(n - 1).
    """
    counts = sorted(opportunity_counts)
    n = len(counts)
    if n <= 1:
        return 1.0
    mean = sum(counts) / n
    if mean == 0:
        return 1.0
    cv = statistics.pstdev(counts) / mean
    return clamp(1 - cv / math.sqrt(n - 1), 0.0, 1.0)


def tier_weights(
    summaries: List[PageIssueSummary], tier_table: Optional[TierTable] = None
) -> Dict[PageTier, float]:
    """
    Weight of each tier for a set of page summaries

    With a table, every summary must carry that table's weight for its tier.
    Without one, the summaries' own weights are used and must agree within a
    tier; tiers with no pages take the built-in weight.

    Raises:
        ValidationError: If a summary's weight disagrees
    """
    base = tier_table or TierTable.default()
    weights = {tier: base.weight(tier) for tier in PageTier}
    seen: Dict[PageTier, float] = {}
    for summary in summaries:
        tier = PageTier(summary.priority)
        if tier_table is not None:
            expected = weights[tier]
        else:
            expected = seen.setdefault(tier, summary.priority_weight)
        if not math.isclose(summary.priority_weight, expected):
            raise ValidationError(
                f"Page {summary.page_url} carries weight {summary.priority_weight:g} "
                f"for tier {int(tier)}, expected {expected:g}",
                field="priority_weight",
            )
    weights.update(seen)
    return weights


def aggregate(
    page_summaries: Iterable[PageIssueSummary], tier_table: Optional[TierTable] = None
) -> PriorityBreakdown:
    """
    Aggregate page summaries into the site PriorityBreakdown

    Args:
        page_summaries: One summary per crawled page
        tier_table: Source of the tier weights (the summaries' own weights if omitted)

    Returns:
        PriorityBreakdown (the zero breakdown for no pages)

    Raises:
        ValidationError: If summary weights disagree with the table or each other
    """
    start_time = time.perf_counter()
    summaries = list(page_summaries)

    if not summaries:
        metrics.track_aggregation(time.perf_counter() - start_time)
        return PriorityBreakdown.empty()

    pages: Dict[PageTier, int] = {tier: 0 for tier in PageTier}
    ofi: Dict[PageTier, int] = {tier: 0 for tier in PageTier}
    for summary in summaries:
        tier = PageTier(summary.priority)
        pages[tier] += 1
        ofi[tier] += summary.opportunity_count

    weights = tier_weights(summaries, tier_table)
    total_weighted_ofi = sum(ofi[tier] * weights[tier] for tier in PageTier)
    total_weighted_pages = sum(pages[tier] * weights[tier] for tier in PageTier)
    normalized_ofi = total_weighted_ofi / max(total_weighted_pages, 1)

    total_pages = len(summaries)
    size_factor = size_normalization(total_pages)
    balance = distribution_balance(s.opportunity_count for s in summaries)

    tier1_weighted = pages[PageTier.TIER_1] * weights[PageTier.TIER_1]
    tier_representation = tier1_weighted / total_weighted_pages if total_weighted_pages > 0 else 0.0
    confidence = tier_representation if pages[PageTier.TIER_1] > 0 else 0.0

    breakdown = PriorityBreakdown(
        tier1=TierBreakdown(pages=pages[PageTier.TIER_1], weight=weights[PageTier.TIER_1], ofi=ofi[PageTier.TIER_1]),
        tier2=TierBreakdown(pages=pages[PageTier.TIER_2], weight=weights[PageTier.TIER_2], ofi=ofi[PageTier.TIER_2]),
        tier3=TierBreakdown(pages=pages[PageTier.TIER_3], weight=weights[PageTier.TIER_3], ofi=ofi[PageTier.TIER_3]),
        total_weighted_ofi=total_weighted_ofi,
        total_weighted_pages=total_weighted_pages,
        normalized_ofi=normalized_ofi,
        size_adjusted_ofi=normalized_ofi * size_factor,
        confidence=clamp(confidence, 0.0, 1.0),
        normalization_factors=NormalizationFactors(
            size_normalization=size_factor,
            distribution_balance=balance,
            tier_representation=clamp(tier_representation, 0.0, 1.0),
        ),
    )

    metrics.track_aggregation(time.perf_counter() - start_time)
    logger.debug(
        f"Aggregated {total_pages} pages: weighted OFI {total_weighted_ofi}, "
        f"normalized {normalized_ofi:.3f}, confidence {breakdown.confidence:.2f}"
    )
    return breakdown


def weighted_overall_score(
    page_summaries: Iterable[PageIssueSummary], tier_table: Optional[TierTable] = None
) -> float:
    """Tier-weighted mean of page scores, rounded to 2 decimals (0 for no pages)"""
    summaries = list(page_summaries)
    weights = tier_weights(summaries, tier_table)
    total_score = 0.0
    total_weight = 0.0
    for summary in summaries:
        weight = weights[PageTier(summary.priority)]
        total_score += summary.score * weight
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return round(total_score / total_weight, 2)


def count_statuses(findings: Iterable[Finding]) -> Dict[FindingStatus, int]:
    counts = {status: 0 for status in FindingStatus}
    for finding in findings:
        counts[finding.status] += 1
    return counts


def build_site_summary(findings: Iterable[Finding], tier_assigner: Optional[TierTable] = None) -> SiteSummary:
    """
    Recompute the full site summary from an audit's findings

    Status counts include site-level findings; page summaries and the
    priority breakdown only cover findings attached to a page.
    """
    table = tier_assigner or TierTable.default()
    findings: List[Finding] = list(findings)
    counts = count_statuses(findings)
    summaries = summarize_pages(findings, table)

    return SiteSummary(
        priority_ofi_count=counts[FindingStatus.PRIORITY_OFI],
        ofi_count=counts[FindingStatus.OFI],
        ok_count=counts[FindingStatus.OK],
        na_count=counts[FindingStatus.NOT_APPLICABLE],
        total=len(findings),
        weighted_overall_score=weighted_overall_score(summaries, table),
        priority_breakdown=aggregate(summaries, table),
        page_issue_summaries=summaries,
    )
