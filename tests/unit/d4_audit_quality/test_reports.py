"""
Test audit quality reports
"""
from datetime import datetime, timedelta, timezone

import pytest

from d1_findings.types import FindingStatus, Importance
from d4_audit_quality.reclassifier import BULK_WORKING, AuditReclassifier
from d4_audit_quality.reports import (
    NO_AUDITS_RECOMMENDATION,
    AuditQualityService,
    audit_classification_summary,
    classification_metrics,
    health_status,
    weekly_report,
)
from d4_audit_quality.repository import InMemoryAuditRepository

pytestmark = pytest.mark.unit

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
WEEK_START = NOW - timedelta(days=7)


@pytest.fixture
def reclassifier(classifier, tier_table):
    return AuditReclassifier(classifier=classifier, tier_table=tier_table)


@pytest.fixture
def noindex(make_finding):
    def _make(i, status=FindingStatus.PRIORITY_OFI):
        return make_finding(
            name=f"Noindex directive {i}",
            status=status,
            category="technical",
            actual="noindex",
            page_url=f"https://example.com/page-{i}",
            page_type="blog",
        )

    return _make


@pytest.fixture
def minor(make_finding):
    def _make(i, status=FindingStatus.OFI):
        return make_finding(
            name=f"Minor wording issue {i}",
            status=status,
            importance=Importance.LOW,
            page_url=f"https://example.com/page-{i}",
            page_type="blog",
        )

    return _make


@pytest.fixture
def over_prioritized(make_audit, noindex, minor):
    """Every OFI stored as Priority, 10 of 40 no longer qualify"""

    def _make(audit_id=1, created_at=NOW - timedelta(days=1)):
        findings = [noindex(i) for i in range(30)] + [minor(i, FindingStatus.PRIORITY_OFI) for i in range(10)]
        return make_audit({"onPage": findings}, audit_id=audit_id, created_at=created_at)

    return _make


@pytest.fixture
def healthy(make_audit, noindex, minor, reclassifier):
    """Already reclassified audit: 1 Priority OFI, 3 Standard OFI"""

    def _make(audit_id, created_at=NOW - timedelta(days=2)):
        audit = make_audit(
            {"onPage": [noindex(0)] + [minor(i) for i in range(3)]}, audit_id=audit_id, created_at=created_at
        )
        return reclassifier.apply(audit, reclassifier.reclassify_audit(audit))

    return _make


class TestHealthStatus:
    @pytest.mark.parametrize(
        "score,label",
        [(100, "Excellent"), (80, "Excellent"), (75, "Good"), (50, "Fair"), (25, "Poor"), (0, "Poor")],
    )
    def test_labels(self, score, label):
        assert health_status(score) == label


class TestAuditSummary:
    """Test per-audit classification summary"""

    def test_counts_use_stored_statuses(self, reclassifier, over_prioritized):
        audit = over_prioritized()
        summary = audit_classification_summary(audit, reclassifier.reclassify_audit(audit))

        assert summary.total_items == 40
        assert summary.priority_ofi_count == 40
        assert summary.standard_ofi_count == 0
        assert summary.downgraded_count == 10
        assert summary.accuracy_rate == pytest.approx(0.75)
        assert len(summary.recommendations) == 2

    def test_to_dict(self, reclassifier, over_prioritized):
        audit = over_prioritized()
        data = audit_classification_summary(audit, reclassifier.reclassify_audit(audit)).to_dict()

        assert data["priorityOFIRate"] == 100.0
        assert data["timestamp"] == audit.created_at.isoformat()


class TestWeeklyReport:
    """Test weekly_report()"""

    def test_empty_period(self):
        report = weekly_report([], WEEK_START, NOW)

        assert report.audit_count == 0
        assert report.recommendations == [NO_AUDITS_RECOMMENDATION]
        assert report.to_dict()["auditSummaries"] == []

    def test_audits_outside_period_ignored(self, reclassifier, over_prioritized):
        old = over_prioritized(created_at=NOW - timedelta(days=30))
        report = weekly_report([old], WEEK_START, NOW, reclassifier)
        assert report.recommendations == [NO_AUDITS_RECOMMENDATION]

    def test_over_prioritized_week(self, reclassifier, over_prioritized):
        audits = [over_prioritized(audit_id=1), over_prioritized(audit_id=2)]

        report = weekly_report(audits, WEEK_START, NOW, reclassifier)

        assert report.audit_count == 2
        assert report.total_items == 80
        assert report.priority_ofi_count == 80
        assert report.downgraded_count == 20
        assert report.recommendations[0].startswith("Critical: Priority OFI rate is 100.0% across 2 audits")
        assert report.recommendations[1].startswith("High downgrade rate: 20 items downgraded from 80")
        assert [s.audit_id for s in report.audit_summaries] == [1, 2]

    def test_per_audit_recommendations_deduplicated(self, reclassifier, over_prioritized):
        report = weekly_report([over_prioritized(audit_id=1), over_prioritized(audit_id=2)], WEEK_START, NOW,
                               reclassifier)
        assert len(report.recommendations) == len(set(report.recommendations))

    def test_flagged_items(self, reclassifier, make_audit, make_finding):
        audit = make_audit(
            {"onPage": [make_finding(category="mystery"), make_finding(name="Other", importance=Importance.LOW)]},
            created_at=NOW - timedelta(days=1),
        )

        report = weekly_report([audit], WEEK_START, NOW, reclassifier)

        assert report.flagged_count == 1
        assert report.recommendations == ["1 items had no applicable criteria and need manual review."]

    def test_healthy_week_has_no_recommendations(self, healthy):
        report = weekly_report([healthy(1)], WEEK_START, NOW)
        assert report.recommendations == []
        assert report.priority_ofi_rate == 25.0


class TestClassificationMetrics:
    """Test classification_metrics()"""

    def test_unhealthy_system(self, reclassifier, over_prioritized):
        health = classification_metrics([over_prioritized()], now=NOW, window_days=30, reclassifier=reclassifier)

        assert health.total_ofi_items == 40
        assert health.priority_ofi_rate == 100.0
        assert health.classification_coverage_rate == 0.0
        assert health.potential_downgrade_rate == 25.0
        assert health.health_score == 0
        assert health.health_status == "Poor"
        assert len(health.recommendations) == 4

    def test_healthy_system(self, reclassifier, healthy):
        audits = [healthy(i) for i in range(10)]

        health = classification_metrics(audits, now=NOW, window_days=30, reclassifier=reclassifier)

        assert health.audit_count == 10
        assert health.classification_coverage_rate == 100.0
        assert health.potential_downgrades == 0
        assert health.health_score == 100
        assert health.to_dict()["healthStatus"] == "Excellent"

    def test_few_audits_penalized(self, reclassifier, healthy):
        health = classification_metrics([healthy(1)], now=NOW, window_days=30, reclassifier=reclassifier)

        assert health.health_score == 75
        assert health.recommendations == ["Limited data available - need more audits for accurate assessment"]

    def test_window_excludes_old_audits(self, reclassifier, healthy):
        health = classification_metrics(
            [healthy(1, created_at=NOW - timedelta(days=60))], now=NOW, window_days=30, reclassifier=reclassifier
        )
        assert health.audit_count == 0
        assert health.total_ofi_items == 0


class TestAuditQualityService:
    """Test the service facade"""

    @pytest.fixture
    def service(self, reclassifier, over_prioritized):
        repository = InMemoryAuditRepository([over_prioritized(audit_id=1)])
        return AuditQualityService(repository, reclassifier)

    def test_service_binds_repository(self, service):
        assert service.reclassifier.repository is service.repository

    def test_weekly_defaults_to_last_week(self, service):
        report = service.weekly(now=NOW)

        assert report.audit_count == 1
        assert report.period_start == WEEK_START

    def test_reclassify_then_metrics(self, service):
        service.reclassify(1)

        health = service.metrics(now=NOW, window_days=30)

        assert health.priority_ofi_items == 30
        assert health.potential_downgrades == 0
        assert health.classification_coverage_rate == 100.0

    def test_bulk_reclassify_dry_run(self, service):
        bulk = service.bulk_reclassify(dry_run=True, now=NOW)

        assert bulk.audits_processed == 1
        assert bulk.total_items == 40
        assert bulk.total_downgraded == 10
        assert bulk.recommendation == BULK_WORKING
        assert service.repository.get_by_id(1).sections["onPage"][35].status is FindingStatus.PRIORITY_OFI

    def test_bulk_reclassify_persists(self, service):
        bulk = service.bulk_reclassify(days=7, now=NOW)

        assert bulk.persisted_ids == [1]
        assert service.repository.get_by_id(1).sections["onPage"][35].status is FindingStatus.OFI
