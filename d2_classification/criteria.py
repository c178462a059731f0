"""
Compiled classification criteria

Turns the validated YAML catalogue into immutable matcher objects. A
``RuleCatalogue`` is built once per load and swapped into the classifier as
a whole, so an evaluation always sees a single consistent catalogue.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from d1_findings.models import Finding

from .constants import AFFECTED_PAGES_METRIC, DEFAULT_MIN_CRITERIA
from .rules_schema import ClassificationRulesSchema, CriterionConfig, SuppressorConfig


def finding_text(finding: Finding) -> str:
    """Lowercased text the pattern matchers run against (machine tags excluded)"""
    parts = [finding.name, finding.description, finding.human_notes]
    return " ".join(part for part in parts if part).lower()


def finding_occurrences(finding: Finding, page_occurrences: int) -> int:
    """Largest of the audit-wide occurrence count and the producer's affectedPages metric"""
    occurrences = page_occurrences
    details = finding.analysis_details
    if details is not None:
        affected = details.metrics.get(AFFECTED_PAGES_METRIC)
        if isinstance(affected, (int, float)) and not isinstance(affected, bool):
            occurrences = max(occurrences, int(affected))
    return occurrences


@dataclass(frozen=True)
class Criterion:
    """One compiled criterion"""

    name: str
    description: str
    critical: bool
    categories: frozenset
    patterns: Tuple[re.Pattern, ...] = ()
    actual_values: Tuple[str, ...] = ()
    importance: frozenset = frozenset()
    page_types: frozenset = frozenset()
    max_tier: Optional[int] = None
    min_occurrences: Optional[int] = None

    @classmethod
    def from_config(cls, config: CriterionConfig) -> "Criterion":
        return cls(
            name=config.name,
            description=config.description,
            critical=config.critical,
            categories=frozenset(config.categories),
            patterns=tuple(re.compile(p) for p in config.patterns),
            actual_values=tuple(config.actual_values),
            importance=frozenset(config.importance),
            page_types=frozenset(config.page_types),
            max_tier=config.max_tier,
            min_occurrences=config.min_occurrences,
        )

    def applies_to(self, category: str) -> bool:
        return category in self.categories

    def _evidence_met(self, finding: Finding, text: str) -> bool:
        if not self.patterns and not self.actual_values:
            return True
        if any(pattern.search(text) for pattern in self.patterns):
            return True
        details = finding.analysis_details
        if self.actual_values and details is not None and details.actual is not None:
            actual = str(details.actual).lower()
            return any(value in actual for value in self.actual_values)
        return False

    def is_met(self, finding: Finding, text: str, page_type: str, tier: Optional[int], occurrences: int) -> bool:
        """Evidence matchers are OR-ed, every configured constraint must hold"""
        if self.importance and finding.importance not in self.importance:
            return False
        if self.page_types and page_type not in self.page_types:
            return False
        if self.max_tier is not None and (tier is None or tier > self.max_tier):
            return False
        if self.min_occurrences is not None and finding_occurrences(finding, occurrences) < self.min_occurrences:
            return False
        return self._evidence_met(finding, text)


@dataclass(frozen=True)
class Suppressor:
    name: str
    description: str
    patterns: Tuple[re.Pattern, ...]

    @classmethod
    def from_config(cls, config: SuppressorConfig) -> "Suppressor":
        return cls(
            name=config.name,
            description=config.description,
            patterns=tuple(re.compile(p) for p in config.patterns),
        )

    def match(self, text: str) -> Optional[str]:
        """Return the matched wording, if any"""
        for pattern in self.patterns:
            found = pattern.search(text)
            if found:
                return found.group(0)
        return None


@dataclass(frozen=True)
class RuleCatalogue:
    """Immutable snapshot of the loaded criteria"""

    version: str
    criteria: Tuple[Criterion, ...]
    suppressors: Tuple[Suppressor, ...] = ()
    min_criteria: int = DEFAULT_MIN_CRITERIA
    categories: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_schema(cls, schema: ClassificationRulesSchema, min_criteria: Optional[int] = None) -> "RuleCatalogue":
        criteria = tuple(Criterion.from_config(c) for c in schema.criteria)
        return cls(
            version=schema.version,
            criteria=criteria,
            suppressors=tuple(Suppressor.from_config(s) for s in schema.suppressors),
            min_criteria=min_criteria if min_criteria is not None else schema.min_criteria,
            categories=frozenset(category for c in criteria for category in c.categories),
        )

    def applicable(self, category: str) -> Tuple[Criterion, ...]:
        return tuple(c for c in self.criteria if c.applies_to(category))


__all__ = [
    "Criterion",
    "Suppressor",
    "RuleCatalogue",
    "finding_text",
    "finding_occurrences",
]
