"""
Audit Reclassification

Re-runs the classification rule evaluator over every opportunity finding of a
stored audit, reports which findings would change status, and optionally
writes the reclassified audit back.

Reclassifying an already reclassified audit changes nothing: the evaluator
ignores its own notes and occurrence counts do not depend on the Priority/
Standard split.
"""

import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple, Union

from core.config import get_settings
from core.exceptions import NotFoundError, SiteAuditError, ValidationError
from core.logging import get_logger
from core.metrics import metrics
from d1_findings.models import Finding, SiteSummary
from d1_findings.normalize import normalize_page_type
from d1_findings.types import FindingStatus
from d2_classification.classifier import OFIClassifier, PageContext, get_classifier
from d3_scoring.aggregation import build_site_summary
from d3_scoring.tiers import TierTable

from .repository import PAGE_ISSUES_KEY, AuditRecord, AuditRepository, as_utc

logger = get_logger("audit_reclassifier", domain="d4_audit_quality")

# Share of upgrades above which an audit is recommended for review
UPGRADE_REVIEW_THRESHOLD = 0.2

# Share of downgrades above which a bulk run reports the old classification as too strict
BULK_DOWNGRADE_THRESHOLD = 0.5

BULK_TOO_STRICT = "High downgrade rate indicates previous classification was too strict"
BULK_WORKING = "Classification system is working as expected"


@dataclass(frozen=True)
class ReclassificationResult:
    """Outcome for one opportunity finding"""

    item_name: str
    page_url: Optional[str]
    section: str
    item_index: int
    original_status: FindingStatus
    new_status: FindingStatus
    justification: str
    criteria_count: int
    flagged_for_review: bool = False
    critical_override: bool = False

    @property
    def changed(self) -> bool:
        return self.original_status != self.new_status

    @property
    def downgraded(self) -> bool:
        return self.original_status == FindingStatus.PRIORITY_OFI and self.new_status == FindingStatus.OFI

    @property
    def upgraded(self) -> bool:
        return self.original_status == FindingStatus.OFI and self.new_status == FindingStatus.PRIORITY_OFI

    def to_dict(self) -> Dict:
        return {
            "itemName": self.item_name,
            "pageUrl": self.page_url,
            "section": self.section,
            "originalStatus": self.original_status.value,
            "newStatus": self.new_status.value,
            "changed": self.changed,
            "justification": self.justification,
            "criteriaCount": self.criteria_count,
            "flaggedForReview": self.flagged_for_review,
        }


@dataclass(frozen=True)
class ReclassificationReport:
    """Reclassification outcome for one audit"""

    audit_id: Union[int, str]
    audit_url: str
    results: Tuple[ReclassificationResult, ...] = field(default_factory=tuple)

    @property
    def total_items(self) -> int:
        return len(self.results)

    @property
    def downgraded_count(self) -> int:
        return sum(1 for r in self.results if r.downgraded)

    @property
    def upgraded_count(self) -> int:
        return sum(1 for r in self.results if r.upgraded)

    @property
    def changed_count(self) -> int:
        return sum(1 for r in self.results if r.changed)

    @property
    def flagged_count(self) -> int:
        return sum(1 for r in self.results if r.flagged_for_review)

    @property
    def original_priority_count(self) -> int:
        return sum(1 for r in self.results if r.original_status == FindingStatus.PRIORITY_OFI)

    @property
    def new_priority_count(self) -> int:
        return sum(1 for r in self.results if r.new_status == FindingStatus.PRIORITY_OFI)

    @property
    def accuracy_rate(self) -> float:
        """Share of findings whose stored status the evaluator agrees with (1.0 for none)"""
        if not self.results:
            return 1.0
        return (self.total_items - self.changed_count) / self.total_items

    @property
    def recommend_review(self) -> bool:
        return self.downgraded_count > 0 or self.upgraded_count > self.total_items * UPGRADE_REVIEW_THRESHOLD

    def result_for(self, section: str, index: int) -> Optional[ReclassificationResult]:
        for result in self.results:
            if result.section == section and result.item_index == index:
                return result
        return None

    def to_dict(self) -> Dict:
        return {
            "auditId": self.audit_id,
            "auditUrl": self.audit_url,
            "totalItemsReclassified": self.total_items,
            "downgradedCount": self.downgraded_count,
            "upgradedCount": self.upgraded_count,
            "changesCount": self.changed_count,
            "flaggedCount": self.flagged_count,
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "accuracyRate": round(self.accuracy_rate, 4),
                "recommendReview": self.recommend_review,
            },
        }


@dataclass
class BulkReclassificationSummary:
    """Outcome of reclassifying every stored audit created in a date range"""

    period_start: datetime
    period_end: datetime
    dry_run: bool
    reports: List[ReclassificationReport] = field(default_factory=list)
    persisted_ids: List[Union[int, str]] = field(default_factory=list)
    failed_ids: List[Union[int, str]] = field(default_factory=list)

    @property
    def audits_processed(self) -> int:
        return len(self.reports)

    @property
    def total_items(self) -> int:
        return sum(r.total_items for r in self.reports)

    @property
    def total_downgraded(self) -> int:
        return sum(r.downgraded_count for r in self.reports)

    @property
    def total_upgraded(self) -> int:
        return sum(r.upgraded_count for r in self.reports)

    @property
    def total_changed(self) -> int:
        return sum(r.changed_count for r in self.reports)

    @property
    def success_rate(self) -> float:
        """Percent of items whose stored status still holds (100 for none)"""
        if self.total_items == 0:
            return 100.0
        return (self.total_items - self.total_changed) / self.total_items * 100

    @property
    def recommendation(self) -> str:
        if self.total_downgraded > self.total_items * BULK_DOWNGRADE_THRESHOLD:
            return BULK_TOO_STRICT
        return BULK_WORKING

    @property
    def changed_reports(self) -> List[ReclassificationReport]:
        return [r for r in self.reports if r.changed_count]

    def to_dict(self) -> Dict:
        return {
            "dryRun": self.dry_run,
            "period": {"start": self.period_start.isoformat(), "end": self.period_end.isoformat()},
            "auditsProcessed": self.audits_processed,
            "totalItemsProcessed": self.total_items,
            "totalDowngraded": self.total_downgraded,
            "totalUpgraded": self.total_upgraded,
            "successRate": round(self.success_rate, 1),
            "recommendation": self.recommendation,
            "persistedAuditIds": list(self.persisted_ids),
            "failedAuditIds": list(self.failed_ids),
            "details": [
                {
                    "auditId": r.audit_id,
                    "url": r.audit_url,
                    "changes": [c.to_dict() for c in r.results if c.changed],
                }
                for r in self.changed_reports
            ],
        }


def summary_counts(site_summary: SiteSummary) -> Dict[str, int]:
    """Status count keys of the stored ``summary`` block"""
    return {
        "priorityOfiCount": site_summary.priority_ofi_count,
        "ofiCount": site_summary.ofi_count,
        "okCount": site_summary.ok_count,
        "naCount": site_summary.na_count,
        "total": site_summary.total,
    }


class AuditReclassifier:
    """
    Reclassifies stored audits with the current criteria catalogue
    """

    def __init__(
        self,
        classifier: Optional[OFIClassifier] = None,
        tier_table: Optional[TierTable] = None,
        repository: Optional[AuditRepository] = None,
        max_workers: Optional[int] = None,
    ):
        self.settings = get_settings()
        self.classifier = classifier or get_classifier()
        self.tier_table = tier_table or TierTable.default()
        self.repository = repository
        self.max_workers = max_workers or self.settings.reclassify_max_workers

    # ------------------------------------------------------------------
    # Page context
    # ------------------------------------------------------------------

    @staticmethod
    def occurrence_counts(audit: AuditRecord) -> Dict[str, int]:
        """Distinct pages carrying an opportunity finding, per finding name"""
        pages: Dict[str, Set[Optional[str]]] = defaultdict(set)
        for finding in audit.opportunity_findings():
            pages[finding.name].add(finding.page_url)
        return {name: len(urls) for name, urls in pages.items()}

    def page_context(self, finding: Finding, occurrences: Dict[str, int]) -> PageContext:
        page_type = normalize_page_type(finding.page_type) or "unknown"
        tier = None
        if finding.page_url:
            tier = int(self.tier_table.tier_for_page(finding.page_type, finding.page_url).tier)
        return PageContext(page_type=page_type, tier=tier, occurrences=occurrences.get(finding.name, 1))

    # ------------------------------------------------------------------
    # Reclassification
    # ------------------------------------------------------------------

    @staticmethod
    def with_section_category(finding: Finding, section: str) -> Finding:
        """Findings stored without a category take their section's name (onPage -> on-page)"""
        if finding.category:
            return finding
        return finding.model_copy(update={"category": section})

    def reclassify_audit(self, audit: AuditRecord) -> ReclassificationReport:
        """Evaluate every OFI / Priority OFI finding of the audit"""
        occurrences = self.occurrence_counts(audit)
        results: List[ReclassificationResult] = []

        for section, findings in audit.sections.items():
            for index, finding in enumerate(findings):
                subject = self.with_section_category(finding, section)
                classification = self.classifier.classify_finding(subject, self.page_context(finding, occurrences))
                if classification is None:
                    continue
                results.append(
                    ReclassificationResult(
                        item_name=finding.name,
                        page_url=finding.page_url,
                        section=section,
                        item_index=index,
                        original_status=finding.status,
                        new_status=classification.status,
                        justification=classification.justification,
                        criteria_count=classification.criteria_count,
                        flagged_for_review=classification.flagged_for_review,
                        critical_override=classification.critical_override,
                    )
                )

        report = ReclassificationReport(audit_id=audit.id, audit_url=audit.url, results=tuple(results))
        logger.with_context(audit_id=str(audit.id)).info(
            f"Reclassified {report.total_items} items: "
            f"{report.downgraded_count} downgraded, {report.upgraded_count} upgraded"
        )
        return report

    def apply(self, audit: AuditRecord, report: ReclassificationReport) -> AuditRecord:
        """
        Return a new audit with reclassified statuses, classification notes
        written and the derived summary data recomputed

        Summary keys other than the status counts and ``priorityBreakdown``
        are kept as stored.
        """
        if report.audit_id != audit.id:
            raise ValidationError(
                f"Report for audit {report.audit_id} cannot be applied to audit {audit.id}", field="audit_id"
            )

        by_position = {(r.section, r.item_index): r for r in report.results}
        sections: Dict[str, List[Finding]] = {}
        for section, findings in audit.sections.items():
            updated = []
            for index, finding in enumerate(findings):
                result = by_position.get((section, index))
                if result is not None and result.item_name == finding.name:
                    finding = finding.with_classification(result.new_status, result.justification)
                updated.append(finding)
            sections[section] = updated

        site_summary = build_site_summary(
            (f for findings in sections.values() for f in findings), self.tier_table
        )
        summary = dict(audit.summary)
        summary.update(summary_counts(site_summary))
        summary["priorityBreakdown"] = site_summary.priority_breakdown.to_summary_dict()

        document = audit.document
        if audit.page_issues is not None:
            document = dict(audit.document)
            document[PAGE_ISSUES_KEY] = [s.to_record() for s in site_summary.page_issue_summaries]

        return audit.model_copy(update={"sections": sections, "summary": summary, "document": document})

    def _require_repository(self) -> AuditRepository:
        if self.repository is None:
            raise ValidationError("No audit repository configured", field="repository")
        return self.repository

    def reclassify_and_persist(self, audit_id: Union[int, str], dry_run: bool = False) -> ReclassificationReport:
        """
        Reclassify one stored audit and write it back (unless ``dry_run``)

        Raises:
            NotFoundError: If the audit does not exist
        """
        repository = self._require_repository()

        start_time = time.perf_counter()
        audit = repository.get_by_id(audit_id)
        if audit is None:
            raise NotFoundError("Audit", audit_id)

        report = self.reclassify_audit(audit)
        if not dry_run:
            repository.replace_by_id(self.apply(audit, report))

        metrics.track_reclassification(
            report.downgraded_count,
            report.upgraded_count,
            time.perf_counter() - start_time,
            persisted=not dry_run,
        )
        logger.with_context(audit_id=str(audit_id)).info(
            f"Reclassification {'previewed' if dry_run else 'persisted'}",
            extra={"changed": report.changed_count, "dry_run": dry_run},
        )
        return report

    def reclassify_many(self, audits: List[AuditRecord]) -> List[ReclassificationReport]:
        """Reclassify several audits in parallel; reports keep the input order"""
        if not audits:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(audits))) as executor:
            return list(executor.map(self.reclassify_audit, audits))

    def reclassify_range(self, start: datetime, end: datetime, dry_run: bool = False) -> BulkReclassificationSummary:
        """
        Reclassify every stored audit created within [start, end]

        Audits are evaluated in parallel. Unless ``dry_run``, each audit with
        at least one status change is written back with a single replace;
        audits that fail to persist are logged and listed in ``failed_ids``.
        """
        repository = self._require_repository()
        start_time = time.perf_counter()

        audits = repository.get_by_date_range(start, end)
        reports = self.reclassify_many(audits)
        bulk = BulkReclassificationSummary(
            period_start=as_utc(start), period_end=as_utc(end), dry_run=dry_run, reports=reports
        )

        for audit, report in zip(audits, reports):
            if dry_run or report.changed_count == 0:
                continue
            try:
                repository.replace_by_id(self.apply(audit, report))
            except SiteAuditError as e:
                metrics.track_error(type(e).__name__, "d4_audit_quality")
                logger.with_context(audit_id=str(audit.id)).error(f"Reclassified audit not persisted: {e.message}")
                bulk.failed_ids.append(audit.id)
                continue
            bulk.persisted_ids.append(audit.id)

        elapsed = time.perf_counter() - start_time
        for report in reports:
            metrics.track_reclassification(
                report.downgraded_count,
                report.upgraded_count,
                elapsed / len(reports),
                persisted=report.audit_id in bulk.persisted_ids,
            )

        logger.info(
            f"Bulk reclassification of {bulk.audits_processed} audits: {bulk.total_downgraded} downgraded, "
            f"{bulk.total_upgraded} upgraded, {len(bulk.persisted_ids)} persisted",
            extra={"dry_run": dry_run, "failed": len(bulk.failed_ids)},
        )
        return bulk
