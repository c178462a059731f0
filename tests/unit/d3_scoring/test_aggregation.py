"""
Test the weighted aggregation and normalization engine
"""
import random

import pytest

from core.exceptions import ValidationError
from d1_findings.models import PageIssueSummary, PriorityBreakdown
from d1_findings.types import FindingStatus
from d3_scoring.aggregation import (
    aggregate,
    build_site_summary,
    count_statuses,
    distribution_balance,
    size_normalization,
    weighted_overall_score,
)
from d3_scoring.tiers import TierTable

pytestmark = pytest.mark.unit


def page(url, tier, priority_ofi=0, ofi=0, ok=0, score=0.0, weight=None):
    weight = weight or {1: 3.0, 2: 2.0, 3: 1.0}[tier]
    return PageIssueSummary(
        page_url=url,
        priority=tier,
        priority_weight=weight,
        priority_ofi_count=priority_ofi,
        ofi_count=ofi,
        ok_count=ok,
        total_issues=priority_ofi + ofi + ok,
        score=score,
    )


@pytest.fixture
def three_pages():
    """Homepage with 2 Priority OFI, service page with 1 OFI, clean blog page"""
    return [
        page("https://example.com/", 1, priority_ofi=2),
        page("https://example.com/services", 2, ofi=1),
        page("https://example.com/blog", 3),
    ]


class TestAggregate:
    """Test aggregate()"""

    def test_three_page_site(self, three_pages):
        breakdown = aggregate(three_pages)

        assert breakdown.tier1.pages == 1
        assert breakdown.tier1.ofi == 2
        assert breakdown.tier1.weight == 3.0
        assert breakdown.tier2.ofi == 1
        assert breakdown.tier3.ofi == 0
        assert breakdown.total_weighted_ofi == 8
        assert breakdown.total_weighted_pages == 6
        assert breakdown.normalized_ofi == pytest.approx(8 / 6)
        assert breakdown.normalization_factors.tier_representation == pytest.approx(0.5)
        assert breakdown.confidence == pytest.approx(0.5)

    def test_size_adjustment_applied(self, three_pages):
        breakdown = aggregate(three_pages)

        assert breakdown.normalization_factors.size_normalization == pytest.approx(0.8)
        assert breakdown.size_adjusted_ofi == pytest.approx(8 / 6 * 0.8)

    def test_empty_is_zero_breakdown(self):
        breakdown = aggregate([])

        assert breakdown == PriorityBreakdown.empty()
        assert breakdown.confidence == 0
        assert breakdown.total_pages == 0

    def test_no_tier_1_pages_means_no_confidence(self):
        breakdown = aggregate([page("https://example.com/services", 2, ofi=3)])

        assert breakdown.confidence == 0
        assert breakdown.normalization_factors.tier_representation == 0

    def test_order_independent(self, three_pages):
        shuffled = list(three_pages)
        random.Random(7).shuffle(shuffled)
        assert aggregate(shuffled) == aggregate(three_pages)

    def test_counts_conserved(self, three_pages):
        breakdown = aggregate(three_pages)

        assert breakdown.total_pages == len(three_pages)
        assert breakdown.total_ofi == sum(p.opportunity_count for p in three_pages)

    def test_more_tier_1_pages_never_lower_confidence(self, three_pages):
        previous = aggregate(three_pages).confidence
        pages = list(three_pages)
        for i in range(5):
            pages.append(page(f"https://example.com/landing-{i}", 1))
            current = aggregate(pages).confidence
            assert current >= previous
            previous = current

    def test_uses_tier_table_weights(self, tmp_path):
        path = tmp_path / "tiers.yaml"
        path.write_text(
            'version: "1.0"\ntiers:\n  1: {weight: 5}\n  2: {weight: 2}\n  3: {weight: 1}\n',
            encoding="utf-8",
        )
        pages = [
            page("https://example.com/", 1, priority_ofi=2, weight=5.0),
            page("https://example.com/services", 2, ofi=1),
            page("https://example.com/blog", 3),
        ]

        breakdown = aggregate(pages, TierTable.from_yaml(path))

        assert breakdown.tier1.weight == 5.0
        assert breakdown.total_weighted_ofi == 12
        assert breakdown.total_weighted_pages == 8

    def test_rejects_summaries_weighted_by_another_table(self, three_pages):
        custom = TierTable(weights={1: 5.0, 2: 2.0, 3: 1.0})

        with pytest.raises(ValidationError) as exc_info:
            aggregate(three_pages, custom)

        assert exc_info.value.details == {"field": "priority_weight"}

    def test_without_table_uses_summary_weights(self):
        pages = [
            page("https://example.com/", 1, priority_ofi=2, weight=5.0),
            page("https://example.com/services", 2, ofi=1),
        ]

        breakdown = aggregate(pages)

        assert breakdown.tier1.weight == 5.0
        assert breakdown.tier3.weight == 1.0
        assert breakdown.total_weighted_ofi == 12
        assert breakdown.total_weighted_pages == 7

    def test_rejects_conflicting_weights_within_a_tier(self):
        pages = [page("https://example.com/", 1, weight=3.0), page("https://example.com/contact", 1, weight=4.0)]

        with pytest.raises(ValidationError):
            aggregate(pages)


class TestSizeNormalization:
    """Test size_normalization()"""

    @pytest.mark.parametrize(
        "pages,expected",
        [(0, 0.5), (1, 0.6), (4, 0.9), (5, 1.0), (200, 1.0), (400, 1.25)],
    )
    def test_values(self, pages, expected):
        assert size_normalization(pages) == pytest.approx(expected)

    def test_bounded_and_monotonic(self):
        values = [size_normalization(n) for n in range(0, 5000, 7)]

        assert all(0.5 <= v <= 1.5 for v in values)
        assert values == sorted(values)


class TestDistributionBalance:
    """Test distribution_balance()"""

    def test_even_spread(self):
        assert distribution_balance([2, 2, 2]) == 1.0

    def test_single_page_carries_everything(self):
        assert distribution_balance([0, 0, 0, 6]) == pytest.approx(0.0)

    def test_degenerate_inputs(self):
        assert distribution_balance([]) == 1.0
        assert distribution_balance([4]) == 1.0
        assert distribution_balance([0, 0]) == 1.0

    def test_partial_skew_in_range(self):
        balance = distribution_balance([1, 2, 3])
        assert 0.0 < balance < 1.0

    def test_order_independent(self):
        assert distribution_balance([5, 1, 3]) == distribution_balance([1, 3, 5])


class TestSiteSummary:
    """Test build_site_summary()"""

    def test_weighted_overall_score(self):
        pages = [
            page("https://example.com/", 1, ok=1, score=100.0),
            page("https://example.com/blog", 3, ofi=1, score=0.0),
        ]
        assert weighted_overall_score(pages) == 75.0
        assert weighted_overall_score([]) == 0.0

    def test_build_site_summary(self, make_finding):
        findings = [
            make_finding(status=FindingStatus.PRIORITY_OFI, page_url="https://example.com/", page_type="homepage"),
            make_finding(name="Title", status=FindingStatus.PRIORITY_OFI, page_url="https://example.com/",
                         page_type="homepage"),
            make_finding(status=FindingStatus.OFI, page_url="https://example.com/services", page_type="service"),
            make_finding(status=FindingStatus.OK, page_url="https://example.com/blog", page_type="blog"),
            make_finding(name="Robots.txt", status=FindingStatus.OK, page_url=None),
        ]

        summary = build_site_summary(findings)

        assert summary.total == 5
        assert summary.priority_ofi_count == 2
        assert summary.ofi_count == 1
        assert summary.ok_count == 2
        assert len(summary.page_issue_summaries) == 3
        assert summary.priority_breakdown.total_weighted_ofi == 8
        assert summary.priority_breakdown.confidence == pytest.approx(0.5)

        data = summary.to_summary_dict()
        assert data["priorityBreakdown"]["totalWeightedOFI"] == 8
        assert data["pageIssueSummaries"][0]["pageUrl"] == "https://example.com/"

    def test_empty_audit(self):
        summary = build_site_summary([])

        assert summary.total == 0
        assert summary.priority_breakdown == PriorityBreakdown.empty()
        assert summary.weighted_overall_score == 0.0

    def test_count_statuses(self, make_finding):
        counts = count_statuses([make_finding(), make_finding(status=FindingStatus.OK)])
        assert counts[FindingStatus.OFI] == 1
        assert counts[FindingStatus.NOT_APPLICABLE] == 0
