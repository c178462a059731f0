"""
Finding Models

Immutable value types for audit findings, per-page issue summaries and the
site-level priority breakdown. Models accept and emit the camelCase keys used
by the persisted audit record (``pageUrl``, ``priorityOfiCount`` ...), while
Python code works with snake_case attributes.
"""

from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .types import FindingStatus, Importance, OFIClassification

# Prefix of the machine-generated line written into ``notes`` by reclassification
CLASSIFICATION_TAG = "[OFI Classification]"

MetricValue = Union[bool, int, float, str]


class AuditModel(BaseModel):
    """Base model: frozen, camelCase aliases, snake_case population allowed"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_record(self) -> dict:
        """Serialize to the camelCase shape stored on the audit record"""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class AnalysisDetails(AuditModel):
    """Actual vs expected value observed by the rule check plus free-form metrics"""

    actual: Optional[MetricValue] = None
    expected: Optional[MetricValue] = None
    metrics: Dict[str, MetricValue] = Field(default_factory=dict)


class Finding(AuditModel):
    """
    One rule-check result for one page

    Findings are immutable; reclassification produces a new instance through
    ``with_classification`` and keeps ``identity`` unchanged.
    """

    name: str
    description: str = ""
    status: FindingStatus
    importance: Importance = Importance.MEDIUM
    category: str = ""
    notes: str = ""
    score: Optional[float] = Field(default=None, ge=0, le=100)
    page_url: Optional[str] = None
    page_title: Optional[str] = None
    page_type: Optional[str] = None
    analysis_details: Optional[AnalysisDetails] = None

    @property
    def identity(self) -> Tuple[str, Optional[str]]:
        return (self.name, self.page_url)

    @property
    def is_opportunity(self) -> bool:
        return self.status.is_opportunity

    @property
    def human_notes(self) -> str:
        """Notes with machine classification tag lines removed"""
        lines = [line for line in self.notes.splitlines() if not line.strip().startswith(CLASSIFICATION_TAG)]
        return "\n".join(lines).strip()

    @property
    def classification_note(self) -> Optional[str]:
        """The machine classification line, if one has been written"""
        for line in self.notes.splitlines():
            if line.strip().startswith(CLASSIFICATION_TAG):
                return line.strip()
        return None

    def with_classification(self, status: FindingStatus, note: str) -> "Finding":
        """Return a copy with ``status`` replaced and the classification note rewritten"""
        tag_line = f"{CLASSIFICATION_TAG} {' '.join(note.split())}"
        human = self.human_notes
        notes = f"{human}\n\n{tag_line}" if human else tag_line
        return self.model_copy(update={"status": status, "notes": notes})


class TopIssue(AuditModel):
    """Condensed view of one of the most severe findings on a page"""

    name: str
    status: FindingStatus
    importance: Importance
    category: str = ""

    @classmethod
    def from_finding(cls, finding: Finding) -> "TopIssue":
        return cls(
            name=finding.name,
            status=finding.status,
            importance=finding.importance,
            category=finding.category,
        )


class PageIssueSummary(AuditModel):
    """
    Per-page issue counts with the page's priority tier

    Invariant: priority_ofi_count + ofi_count + ok_count + na_count == total_issues
    """

    page_url: str
    page_title: str = "Untitled Page"
    page_type: str = "unknown"
    priority: int = Field(default=3, ge=1, le=3)
    priority_weight: float = Field(default=1.0, gt=0)
    priority_ofi_count: int = Field(default=0, ge=0)
    ofi_count: int = Field(default=0, ge=0)
    ok_count: int = Field(default=0, ge=0)
    na_count: int = Field(default=0, ge=0)
    total_issues: int = Field(default=0, ge=0)
    score: float = Field(default=0.0, ge=0, le=100)
    weighted_score: float = Field(default=0.0, ge=0, le=100)
    top_issues: List[TopIssue] = Field(default_factory=list, max_length=3)

    @model_validator(mode="after")
    def _validate_counts(self) -> "PageIssueSummary":
        counted = self.priority_ofi_count + self.ofi_count + self.ok_count + self.na_count
        if counted != self.total_issues:
            raise ValueError(
                f"Status counts sum to {counted} but total_issues is {self.total_issues} for {self.page_url}"
            )
        return self

    @property
    def opportunity_count(self) -> int:
        return self.priority_ofi_count + self.ofi_count


class TierBreakdown(AuditModel):
    """Per-tier page count, tier weight and raw opportunity count"""

    pages: int = Field(default=0, ge=0)
    weight: float = Field(default=0.0, ge=0)
    ofi: int = Field(default=0, ge=0)


class NormalizationFactors(AuditModel):
    size_normalization: float = Field(default=1.0, ge=0.5, le=1.5)
    distribution_balance: float = Field(default=1.0, ge=0, le=1)
    tier_representation: float = Field(default=0.0, ge=0, le=1)


class PriorityBreakdown(AuditModel):
    """
    Site-level weighted opportunity score

    Derived data: recomputed from page summaries, never edited in place.
    """

    tier1: TierBreakdown = Field(default_factory=TierBreakdown)
    tier2: TierBreakdown = Field(default_factory=TierBreakdown)
    tier3: TierBreakdown = Field(default_factory=TierBreakdown)
    total_weighted_ofi: float = Field(default=0.0, ge=0, alias="totalWeightedOFI")
    total_weighted_pages: float = Field(default=0.0, ge=0)
    normalized_ofi: float = Field(default=0.0, ge=0, alias="normalizedOFI")
    size_adjusted_ofi: float = Field(default=0.0, ge=0, alias="sizeAdjustedOFI")
    confidence: float = Field(default=0.0, ge=0, le=1)
    normalization_factors: NormalizationFactors = Field(default_factory=NormalizationFactors)

    @classmethod
    def empty(cls) -> "PriorityBreakdown":
        """Well-formed zero value used for audits with no pages"""
        return cls(normalization_factors=NormalizationFactors(size_normalization=0.5))

    def tier(self, tier: int) -> TierBreakdown:
        return {1: self.tier1, 2: self.tier2, 3: self.tier3}[tier]

    @property
    def total_pages(self) -> int:
        return self.tier1.pages + self.tier2.pages + self.tier3.pages

    @property
    def total_ofi(self) -> int:
        return self.tier1.ofi + self.tier2.ofi + self.tier3.ofi

    def to_summary_dict(self) -> dict:
        """The ``summary.priorityBreakdown`` block of the persisted audit"""
        return self.model_dump(by_alias=True, mode="json")


class ClassificationResult(AuditModel):
    """
    Output of the classification rule evaluator for one finding

    ``criteria_met`` and ``justification`` are always populated so that every
    call can be audited, including calls that leave the status unchanged.
    """

    classification: OFIClassification
    justification: str
    criteria_met: Dict[str, bool] = Field(default_factory=dict)
    flagged_for_review: bool = False
    critical_override: bool = False
    decision_trace: List[str] = Field(default_factory=list)

    @property
    def criteria_count(self) -> int:
        return sum(1 for met in self.criteria_met.values() if met)

    @property
    def fired_criteria(self) -> List[str]:
        return [name for name, met in self.criteria_met.items() if met]

    @property
    def status(self) -> FindingStatus:
        return self.classification.to_status()


class SiteSummary(AuditModel):
    """Site-level status counts, weighted score and priority breakdown"""

    priority_ofi_count: int = Field(default=0, ge=0)
    ofi_count: int = Field(default=0, ge=0)
    ok_count: int = Field(default=0, ge=0)
    na_count: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    weighted_overall_score: float = Field(default=0.0, ge=0, le=100)
    priority_breakdown: PriorityBreakdown = Field(default_factory=PriorityBreakdown.empty)
    page_issue_summaries: List[PageIssueSummary] = Field(default_factory=list)

    def to_summary_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
