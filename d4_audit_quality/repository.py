"""
Audit records and the repository interface used for reclassification.

Persistence itself lives outside this package; the engine reads audits by id
or creation date and writes a reclassified audit back with a single replace.

The stored ``results`` document is kept whole. Writing back only touches
what the engine owns: each finding's ``status`` and ``notes``, the summary
status counts, ``summary.priorityBreakdown`` and a ``pageIssues`` list the
document already carries. Every other key survives unchanged.
"""

import copy
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.exceptions import NotFoundError
from core.logging import get_logger
from d1_findings.models import Finding

logger = get_logger("audit_repository", domain="d4_audit_quality")

# Per-category finding lists of a stored audit, in report order
AUDIT_SECTIONS = (
    "onPage",
    "structureNavigation",
    "contactPage",
    "servicePages",
    "locationPages",
    "serviceAreaPages",
)

# Top-level keys of the results document that never hold findings
NON_FINDING_KEYS = ("summary", "pageIssues", "analysisMetadata", "reachedMaxPages")

PAGE_ISSUES_KEY = "pageIssues"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _section_items(name: str, section: Any) -> Optional[list]:
    """Item list of a section: ``{"items": [...]}``, or a bare list for known sections"""
    if isinstance(section, dict) and isinstance(section.get("items"), list):
        return section["items"]
    if name in AUDIT_SECTIONS and isinstance(section, list):
        return section
    return None


def _patch_items(stored: Optional[list], findings: List[Finding]) -> list:
    """Write status and notes into the stored items, or serialize the findings"""
    if stored is None or len(stored) != len(findings) or not all(isinstance(i, dict) for i in stored):
        return [finding.to_record() for finding in findings]

    items = []
    for item, finding in zip(stored, findings):
        item = dict(item)
        item["status"] = finding.status.value
        if finding.notes or "notes" in item:
            item["notes"] = finding.notes
        items.append(item)
    return items


class AuditRecord(BaseModel):
    """
    One stored site audit

    ``sections`` maps a section name to its findings; ``summary`` is derived
    from the findings and recomputed whenever they change. ``document`` is the
    stored ``results`` as loaded, used to write back keys the engine does not
    own.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: Union[int, str]
    url: str
    created_at: datetime
    sections: Dict[str, List[Finding]] = Field(default_factory=dict)
    summary: Dict[str, Any] = Field(default_factory=dict)
    document: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v):
        return as_utc(v)

    @classmethod
    def from_results(
        cls, audit_id: Union[int, str], url: str, created_at: Union[datetime, str], results: Dict[str, Any]
    ) -> "AuditRecord":
        """
        Build a record from the stored ``results`` document

        Known sections are read in report order, then any other key shaped
        ``{"items": [...]}`` (enhanced categories such as ``technicalSEO``).
        Page summaries, metadata and flags are kept in ``document`` only.
        """
        sections: Dict[str, List[Finding]] = {}
        ordered = list(AUDIT_SECTIONS) + [k for k in results if k not in AUDIT_SECTIONS]
        for name in ordered:
            if name in NON_FINDING_KEYS:
                continue
            items = _section_items(name, results.get(name))
            if items is None:
                continue
            sections[name] = [Finding.model_validate(item) for item in items]

        return cls(
            id=audit_id,
            url=url,
            created_at=created_at,
            sections=sections,
            summary=copy.deepcopy(results.get("summary") or {}),
            document=copy.deepcopy(results),
        )

    def to_results(self) -> Dict[str, Any]:
        """Serialize back to the stored ``results`` document"""
        results = copy.deepcopy(self.document)
        for name, findings in self.sections.items():
            stored = results.get(name)
            items = _patch_items(_section_items(name, stored), findings)
            if isinstance(stored, list):
                results[name] = items
            else:
                section = dict(stored) if isinstance(stored, dict) else {}
                section["items"] = items
                results[name] = section
        results["summary"] = copy.deepcopy(self.summary)
        return results

    @property
    def page_issues(self) -> Optional[List[Dict[str, Any]]]:
        """Stored page issue summaries, if the document carries them"""
        return self.document.get(PAGE_ISSUES_KEY)

    def all_findings(self) -> List[Finding]:
        """Every finding, flattened in section order"""
        return [finding for findings in self.sections.values() for finding in findings]

    def opportunity_findings(self) -> List[Finding]:
        return [finding for finding in self.all_findings() if finding.is_opportunity]


class AuditRepository(ABC):
    """Storage interface for audit records"""

    @abstractmethod
    def get_by_id(self, audit_id: Union[int, str]) -> Optional[AuditRecord]:
        """Return the audit or None"""

    @abstractmethod
    def get_by_date_range(self, start: datetime, end: datetime) -> List[AuditRecord]:
        """Audits created within [start, end], oldest first"""

    @abstractmethod
    def replace_by_id(self, audit: AuditRecord) -> AuditRecord:
        """
        Replace a stored audit in a single write

        Raises:
            NotFoundError: If no audit with ``audit.id`` exists
        """


class InMemoryAuditRepository(AuditRepository):
    """Lock-protected in-memory repository for tools and tests"""

    def __init__(self, audits: Optional[Iterable[AuditRecord]] = None):
        self._audits: Dict[Union[int, str], AuditRecord] = {}
        self._lock = threading.Lock()
        for audit in audits or []:
            self._audits[audit.id] = audit

    def add(self, audit: AuditRecord) -> AuditRecord:
        with self._lock:
            self._audits[audit.id] = audit
        logger.debug(f"Stored audit {audit.id} ({audit.url})")
        return audit

    def get_by_id(self, audit_id: Union[int, str]) -> Optional[AuditRecord]:
        with self._lock:
            return self._audits.get(audit_id)

    def get_by_date_range(self, start: datetime, end: datetime) -> List[AuditRecord]:
        start, end = as_utc(start), as_utc(end)
        with self._lock:
            audits = [a for a in self._audits.values() if start <= a.created_at <= end]
        return sorted(audits, key=lambda a: (a.created_at, str(a.id)))

    def replace_by_id(self, audit: AuditRecord) -> AuditRecord:
        with self._lock:
            if audit.id not in self._audits:
                raise NotFoundError("Audit", audit.id)
            self._audits[audit.id] = audit
        logger.info(f"Replaced audit {audit.id}")
        return audit

    def __len__(self) -> int:
        with self._lock:
            return len(self._audits)
