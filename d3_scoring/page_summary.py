"""
Page Issue Summaries

Groups an audit's findings by page and produces one PageIssueSummary per
crawled page: status counts, the page's tier and weight, a 0-100 score (share
of OK checks) and the three most severe open issues.
"""

import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from core.logging import get_logger
from d1_findings.models import Finding, PageIssueSummary, TopIssue
from d1_findings.types import FindingStatus

from .tiers import TierAssignment, TierTable

logger = get_logger(__name__)

TOP_ISSUE_LIMIT = 3


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def page_score(ok_count: int, total: int) -> int:
    """Percentage of checks on the page that passed (0 for a page with no checks)"""
    if total <= 0:
        return 0
    return round_half_up(ok_count / total * 100)


def weighted_page_score(score: float, weight: float) -> float:
    """Score scaled by tier weight, normalized around weight 2 and capped at 100"""
    return min(100.0, score * weight / 2)


def top_issues(findings: Iterable[Finding], limit: int = TOP_ISSUE_LIMIT) -> List[TopIssue]:
    """Most severe open issues: Priority OFI before OFI, then by importance"""
    open_issues = [f for f in findings if f.is_opportunity]
    open_issues.sort(key=lambda f: (f.status.severity_rank, f.importance.rank, f.name))
    return [TopIssue.from_finding(f) for f in open_issues[:limit]]


def summarize_page(page_url: str, findings: List[Finding], assignment: TierAssignment) -> PageIssueSummary:
    counts: Dict[FindingStatus, int] = {status: 0 for status in FindingStatus}
    for finding in findings:
        counts[finding.status] += 1

    total = len(findings)
    score = page_score(counts[FindingStatus.OK], total)
    page_title = next((f.page_title for f in findings if f.page_title), None)
    page_type = next((f.page_type for f in findings if f.page_type), None) or "unknown"

    return PageIssueSummary(
        page_url=page_url,
        page_title=page_title or "Untitled Page",
        page_type=page_type,
        priority=int(assignment.tier),
        priority_weight=assignment.weight,
        priority_ofi_count=counts[FindingStatus.PRIORITY_OFI],
        ofi_count=counts[FindingStatus.OFI],
        ok_count=counts[FindingStatus.OK],
        na_count=counts[FindingStatus.NOT_APPLICABLE],
        total_issues=total,
        score=score,
        weighted_score=weighted_page_score(score, assignment.weight),
        top_issues=top_issues(findings),
    )


def group_by_page(findings: Iterable[Finding]) -> "OrderedDict[str, List[Finding]]":
    """Findings keyed by page URL; site-level findings (no URL) are left out"""
    groups: "OrderedDict[str, List[Finding]]" = OrderedDict()
    for finding in findings:
        if not finding.page_url:
            continue
        groups.setdefault(finding.page_url, []).append(finding)
    return groups


def summarize_pages(findings: Iterable[Finding], tier_assigner: Optional[TierTable] = None) -> List[PageIssueSummary]:
    """
    Build the page issue summaries for an audit

    Args:
        findings: Every finding of the audit
        tier_assigner: Tier table used for page tiers (built-in table if omitted)

    Returns:
        Summaries sorted by tier, then Priority OFI count and total issues
        (both descending)
    """
    table = tier_assigner or TierTable.default()
    groups = group_by_page(findings)

    summaries = []
    for page_url, page_findings in groups.items():
        page_type = next((f.page_type for f in page_findings if f.page_type), None)
        assignment = table.tier_for_page(page_type, page_url)
        summaries.append(summarize_page(page_url, page_findings, assignment))

    summaries.sort(key=lambda s: (s.priority, -s.priority_ofi_count, -s.total_issues, s.page_url))
    logger.debug(f"Generated {len(summaries)} page summaries")
    return summaries
