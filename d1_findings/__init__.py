"""
D1 Findings Module

Finding, page issue summary and priority breakdown types shared by the
classification, scoring and audit-quality stages.
"""

from .models import (
    CLASSIFICATION_TAG,
    AnalysisDetails,
    ClassificationResult,
    Finding,
    NormalizationFactors,
    PageIssueSummary,
    PriorityBreakdown,
    SiteSummary,
    TierBreakdown,
    TopIssue,
)
from .types import FindingStatus, Importance, OFIClassification, PageTier

__all__ = [
    # Models
    "AnalysisDetails",
    "ClassificationResult",
    "Finding",
    "NormalizationFactors",
    "PageIssueSummary",
    "PriorityBreakdown",
    "SiteSummary",
    "TierBreakdown",
    "TopIssue",
    "CLASSIFICATION_TAG",
    # Types
    "FindingStatus",
    "Importance",
    "OFIClassification",
    "PageTier",
]
