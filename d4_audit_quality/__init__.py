"""
D4 Audit Quality Module

Reclassification of stored audits with the current criteria and the
process-quality reports built on top of it.
"""

from .reclassifier import (
    AuditReclassifier,
    BulkReclassificationSummary,
    ReclassificationReport,
    ReclassificationResult,
)
from .reports import (
    AuditQualityService,
    ClassificationHealth,
    WeeklyReport,
    audit_classification_summary,
    classification_metrics,
    weekly_report,
)
from .repository import AUDIT_SECTIONS, AuditRecord, AuditRepository, InMemoryAuditRepository

__all__ = [
    # Repository
    "AUDIT_SECTIONS",
    "AuditRecord",
    "AuditRepository",
    "InMemoryAuditRepository",
    # Reclassification
    "AuditReclassifier",
    "BulkReclassificationSummary",
    "ReclassificationReport",
    "ReclassificationResult",
    # Reports
    "AuditQualityService",
    "ClassificationHealth",
    "WeeklyReport",
    "audit_classification_summary",
    "classification_metrics",
    "weekly_report",
]
