"""
Audit Quality Reporting

Process-quality views over reclassification results: a per-audit
classification summary, a consolidated weekly report and a rolling health
score for the classification system.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from core.config import get_settings
from core.logging import get_logger
from d1_findings.models import CLASSIFICATION_TAG
from d1_findings.types import FindingStatus

from .reclassifier import AuditReclassifier, BulkReclassificationSummary, ReclassificationReport
from .repository import AuditRecord, AuditRepository, as_utc

logger = get_logger("audit_quality_reports")

# Report thresholds
PRIORITY_RATE_THRESHOLD = 30.0  # percent of OFI items
DOWNGRADE_RATE_THRESHOLD = 0.2  # share of Priority OFI items
FLAGGED_RATE_THRESHOLD = 0.1  # share of OFI items
COVERAGE_THRESHOLD = 80.0  # percent of OFI items with a classification note
POTENTIAL_DOWNGRADE_THRESHOLD = 20.0  # percent of Priority OFI items
MIN_AUDITS_FOR_HEALTH = 10
HEALTH_PENALTY = 25

NO_AUDITS_RECOMMENDATION = "No audits found in the specified period"


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def health_status(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"


@dataclass
class AuditClassificationSummary:
    """Classification picture of one audit"""

    audit_id: Union[int, str]
    url: str
    created_at: datetime
    total_items: int
    priority_ofi_count: int
    standard_ofi_count: int
    downgraded_count: int
    upgraded_count: int
    flagged_count: int
    accuracy_rate: float
    recommendations: List[str] = field(default_factory=list)

    @property
    def priority_ofi_rate(self) -> float:
        return _rate(self.priority_ofi_count, self.total_items)

    def to_dict(self) -> Dict:
        return {
            "auditId": self.audit_id,
            "url": self.url,
            "timestamp": self.created_at.isoformat(),
            "totalItems": self.total_items,
            "priorityOFICount": self.priority_ofi_count,
            "standardOFICount": self.standard_ofi_count,
            "priorityOFIRate": round(self.priority_ofi_rate, 1),
            "downgradedCount": self.downgraded_count,
            "upgradedCount": self.upgraded_count,
            "flaggedForReview": self.flagged_count,
            "accuracyRate": round(self.accuracy_rate, 4),
            "recommendations": list(self.recommendations),
        }


@dataclass
class WeeklyReport:
    """Consolidated classification report over a period"""

    period_start: datetime
    period_end: datetime
    audit_count: int = 0
    total_items: int = 0
    priority_ofi_count: int = 0
    standard_ofi_count: int = 0
    downgraded_count: int = 0
    upgraded_count: int = 0
    flagged_count: int = 0
    recommendations: List[str] = field(default_factory=list)
    audit_summaries: List[AuditClassificationSummary] = field(default_factory=list)

    @property
    def priority_ofi_rate(self) -> float:
        return _rate(self.priority_ofi_count, self.total_items)

    def to_dict(self) -> Dict:
        return {
            "period": {"start": self.period_start.isoformat(), "end": self.period_end.isoformat()},
            "auditCount": self.audit_count,
            "totalItems": self.total_items,
            "priorityOFICount": self.priority_ofi_count,
            "standardOFICount": self.standard_ofi_count,
            "priorityOFIRate": round(self.priority_ofi_rate, 1),
            "downgradedCount": self.downgraded_count,
            "upgradedCount": self.upgraded_count,
            "flaggedForReview": self.flagged_count,
            "recommendations": list(self.recommendations),
            "auditSummaries": [s.to_dict() for s in self.audit_summaries],
        }


@dataclass
class ClassificationHealth:
    """Rolling health of the classification system"""

    window_days: int
    audit_count: int
    total_ofi_items: int
    priority_ofi_items: int
    items_with_classification_notes: int
    potential_downgrades: int
    health_score: int
    recommendations: List[str] = field(default_factory=list)

    @property
    def priority_ofi_rate(self) -> float:
        return _rate(self.priority_ofi_items, self.total_ofi_items)

    @property
    def classification_coverage_rate(self) -> float:
        return _rate(self.items_with_classification_notes, self.total_ofi_items)

    @property
    def potential_downgrade_rate(self) -> float:
        return _rate(self.potential_downgrades, self.priority_ofi_items)

    @property
    def health_status(self) -> str:
        return health_status(self.health_score)

    def to_dict(self) -> Dict:
        return {
            "period": f"{self.window_days} days",
            "auditCount": self.audit_count,
            "totalOFIItems": self.total_ofi_items,
            "priorityOFIItems": self.priority_ofi_items,
            "priorityOFIRate": round(self.priority_ofi_rate, 1),
            "classificationCoverageRate": round(self.classification_coverage_rate, 1),
            "potentialDowngrades": self.potential_downgrades,
            "potentialDowngradeRate": round(self.potential_downgrade_rate, 1),
            "healthScore": self.health_score,
            "healthStatus": self.health_status,
            "recommendations": list(self.recommendations),
        }


def audit_classification_summary(audit: AuditRecord, report: ReclassificationReport) -> AuditClassificationSummary:
    """
    Summarize one audit's stored classification against its reclassification

    Priority/standard counts are the stored statuses of the audit's OFI items.
    """
    priority = report.original_priority_count
    summary = AuditClassificationSummary(
        audit_id=audit.id,
        url=audit.url,
        created_at=audit.created_at,
        total_items=report.total_items,
        priority_ofi_count=priority,
        standard_ofi_count=report.total_items - priority,
        downgraded_count=report.downgraded_count,
        upgraded_count=report.upgraded_count,
        flagged_count=report.flagged_count,
        accuracy_rate=report.accuracy_rate,
    )

    if summary.priority_ofi_rate > PRIORITY_RATE_THRESHOLD:
        summary.recommendations.append(
            f"Priority OFI rate is high ({summary.priority_ofi_rate:.1f}%). "
            "Review classification criteria application."
        )
    if report.recommend_review:
        summary.recommendations.append(
            f"{report.changed_count} items would change status under current criteria. Review this audit."
        )
    return summary


def _in_range(audits: Iterable[AuditRecord], start: datetime, end: datetime) -> List[AuditRecord]:
    start, end = as_utc(start), as_utc(end)
    return sorted(
        (a for a in audits if start <= a.created_at <= end),
        key=lambda a: (a.created_at, str(a.id)),
    )


def weekly_report(
    audits: Iterable[AuditRecord],
    start: datetime,
    end: datetime,
    reclassifier: Optional[AuditReclassifier] = None,
) -> WeeklyReport:
    """
    Consolidated classification report for audits created within [start, end]

    Recommendations come from fixed thresholds: Priority OFI rate above 30%,
    downgrades above 20% of Priority OFI items, flagged items above 10% of
    all items. Per-audit recommendations follow, without duplicates.
    """
    report = WeeklyReport(period_start=as_utc(start), period_end=as_utc(end))
    selected = _in_range(audits, start, end)
    if not selected:
        report.recommendations.append(NO_AUDITS_RECOMMENDATION)
        return report

    reclassifier = reclassifier or AuditReclassifier()
    reclassification_reports = reclassifier.reclassify_many(selected)

    audit_recommendations: List[str] = []
    for audit, reclassification in zip(selected, reclassification_reports):
        summary = audit_classification_summary(audit, reclassification)
        report.audit_summaries.append(summary)
        report.total_items += summary.total_items
        report.priority_ofi_count += summary.priority_ofi_count
        report.standard_ofi_count += summary.standard_ofi_count
        report.downgraded_count += summary.downgraded_count
        report.upgraded_count += summary.upgraded_count
        report.flagged_count += summary.flagged_count
        audit_recommendations.extend(summary.recommendations)

    report.audit_count = len(selected)

    if report.priority_ofi_rate > PRIORITY_RATE_THRESHOLD:
        report.recommendations.append(
            f"Critical: Priority OFI rate is {report.priority_ofi_rate:.1f}% across {report.audit_count} audits. "
            "Review classification criteria immediately."
        )
    if report.downgraded_count > report.priority_ofi_count * DOWNGRADE_RATE_THRESHOLD:
        report.recommendations.append(
            f"High downgrade rate: {report.downgraded_count} items downgraded from "
            f"{report.priority_ofi_count} Priority OFI items. Review original classification logic."
        )
    if report.flagged_count > report.total_items * FLAGGED_RATE_THRESHOLD:
        report.recommendations.append(
            f"{report.flagged_count} items had no applicable criteria and need manual review."
        )

    for recommendation in audit_recommendations:
        if recommendation not in report.recommendations:
            report.recommendations.append(recommendation)

    logger.info(
        f"Weekly report: {report.audit_count} audits, {report.total_items} items, "
        f"{report.priority_ofi_rate:.1f}% Priority OFI"
    )
    return report


def classification_metrics(
    audits: Iterable[AuditRecord],
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
    reclassifier: Optional[AuditReclassifier] = None,
) -> ClassificationHealth:
    """
    Health score (0-100) of the classification system over a rolling window

    25 points are deducted for each of: Priority OFI rate above 30%,
    classification note coverage below 80%, potential downgrade rate above
    20%, fewer than 10 audits in the window.
    """
    window_days = window_days or get_settings().health_window_days
    now = as_utc(now or datetime.now(timezone.utc))
    selected = _in_range(audits, now - timedelta(days=window_days), now)
    reclassifier = reclassifier or AuditReclassifier()

    total_ofi = 0
    priority = 0
    with_notes = 0
    for audit in selected:
        for finding in audit.opportunity_findings():
            total_ofi += 1
            if finding.status == FindingStatus.PRIORITY_OFI:
                priority += 1
            if CLASSIFICATION_TAG in finding.notes:
                with_notes += 1

    potential_downgrades = sum(r.downgraded_count for r in reclassifier.reclassify_many(selected))

    health = ClassificationHealth(
        window_days=window_days,
        audit_count=len(selected),
        total_ofi_items=total_ofi,
        priority_ofi_items=priority,
        items_with_classification_notes=with_notes,
        potential_downgrades=potential_downgrades,
        health_score=100,
    )

    penalties = []
    if health.priority_ofi_rate > PRIORITY_RATE_THRESHOLD:
        penalties.append("Priority OFI rate is high - review classification criteria")
    if health.classification_coverage_rate < COVERAGE_THRESHOLD:
        penalties.append("Low classification coverage - run the classifier on more audits")
    if health.potential_downgrade_rate > POTENTIAL_DOWNGRADE_THRESHOLD:
        penalties.append("High potential downgrade rate - review existing Priority OFI assignments")
    if health.audit_count < MIN_AUDITS_FOR_HEALTH:
        penalties.append("Limited data available - need more audits for accurate assessment")

    health.health_score = max(0, 100 - HEALTH_PENALTY * len(penalties))
    health.recommendations = penalties
    return health


class AuditQualityService:
    """
    Reporting entry point binding an audit repository to a reclassifier
    """

    def __init__(self, repository: AuditRepository, reclassifier: Optional[AuditReclassifier] = None):
        self.settings = get_settings()
        self.repository = repository
        self.reclassifier = reclassifier or AuditReclassifier(repository=repository)
        if self.reclassifier.repository is None:
            self.reclassifier.repository = repository

    def weekly(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, now: Optional[datetime] = None
    ) -> WeeklyReport:
        """Weekly report; defaults to the last ``weekly_report_days`` days"""
        end = end or now or datetime.now(timezone.utc)
        start = start or end - timedelta(days=self.settings.weekly_report_days)
        audits = self.repository.get_by_date_range(start, end)
        return weekly_report(audits, start, end, self.reclassifier)

    def reclassify(self, audit_id: Union[int, str], dry_run: bool = False) -> ReclassificationReport:
        return self.reclassifier.reclassify_and_persist(audit_id, dry_run=dry_run)

    def bulk_reclassify(
        self, days: Optional[int] = None, dry_run: bool = False, now: Optional[datetime] = None
    ) -> BulkReclassificationSummary:
        """Reclassify every audit from the last ``days`` days (default: health window)"""
        days = days or self.settings.health_window_days
        now = as_utc(now or datetime.now(timezone.utc))
        return self.reclassifier.reclassify_range(now - timedelta(days=days), now, dry_run=dry_run)

    def metrics(self, now: Optional[datetime] = None, window_days: Optional[int] = None) -> ClassificationHealth:
        window_days = window_days or self.settings.health_window_days
        now = as_utc(now or datetime.now(timezone.utc))
        audits = self.repository.get_by_date_range(now - timedelta(days=window_days), now)
        return classification_metrics(audits, now, window_days, self.reclassifier)
