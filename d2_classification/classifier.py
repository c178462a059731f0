"""
OFI Classification Rule Evaluator

Decides whether an opportunity-for-improvement finding is a Priority OFI or a
Standard OFI from the criteria catalogue in ``classification_rules.yaml``.

Decision order:
1. No criteria apply to the finding's category: Standard OFI, flagged for review
2. A satisfied critical criterion: Priority OFI (hard override)
3. Suppressor wording (e.g. a documented workaround): Standard OFI
4. Satisfied criteria >= min_criteria: Priority OFI, otherwise Standard OFI

Evaluation is pure: the same finding and page context always produce the same
result, and the classification tag written back into notes is ignored by the
matchers so re-running on an already classified finding changes nothing.
"""

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from core.config import settings
from core.exceptions import ClassificationRulesError
from core.logging import get_logger
from core.metrics import metrics
from d1_findings.models import ClassificationResult, Finding
from d1_findings.normalize import normalize_category, normalize_page_type
from d1_findings.types import OFIClassification

from .constants import NO_CRITERIA_JUSTIFICATION
from .criteria import RuleCatalogue, finding_text
from .rules_schema import ClassificationRulesSchema, resolve_rules_path, validate_rules

logger = get_logger(__name__, domain="d2_classification")


@dataclass(frozen=True)
class PageContext:
    """
    Page the finding was observed on

    ``occurrences`` is the number of distinct pages in the audit carrying an
    OFI finding with the same name.
    """

    page_type: str = "unknown"
    tier: Optional[int] = None
    occurrences: int = 1

    @classmethod
    def for_finding(cls, finding: Finding, tier: Optional[int] = None, occurrences: int = 1) -> "PageContext":
        return cls(
            page_type=normalize_page_type(finding.page_type) or "unknown",
            tier=tier,
            occurrences=max(occurrences, 1),
        )


class OFIClassifier:
    """
    Classification rule evaluator backed by a reloadable criteria catalogue
    """

    def __init__(
        self,
        rules: Optional[ClassificationRulesSchema] = None,
        rules_path: Optional[Union[str, Path]] = None,
        min_criteria: Optional[int] = None,
    ):
        """
        Initialize the classifier

        Args:
            rules: Already validated catalogue (skips loading from disk)
            rules_path: YAML catalogue to load (defaults to settings)
            min_criteria: Override for the catalogue's min_criteria
        """
        self.rules_path = Path(rules_path) if rules_path else resolve_rules_path()
        self.min_criteria_override = (
            min_criteria if min_criteria is not None else settings.classification_min_criteria
        )
        self._reload_lock = threading.Lock()

        schema = rules if rules is not None else validate_rules(self.rules_path)
        self._catalogue = RuleCatalogue.from_schema(schema, self.min_criteria_override)

        self.logger.info(
            f"Loaded classification rules v{self._catalogue.version} "
            f"({len(self._catalogue.criteria)} criteria, min_criteria={self._catalogue.min_criteria})"
        )

    @property
    def logger(self):
        """Module logger bound to the active rules version"""
        return logger.with_context(rules_version=self._catalogue.version)

    @property
    def catalogue(self) -> RuleCatalogue:
        return self._catalogue

    @property
    def min_criteria(self) -> int:
        return self._catalogue.min_criteria

    def reload_rules(self) -> bool:
        """
        Reload the catalogue from ``rules_path``

        The new catalogue replaces the current one in a single assignment; on
        validation failure the current catalogue stays in place.

        Returns:
            True if the catalogue was replaced
        """
        start_time = time.perf_counter()
        with self._reload_lock:
            try:
                schema = validate_rules(self.rules_path)
            except ClassificationRulesError as e:
                metrics.track_config_reload("classification_rules", time.perf_counter() - start_time, "failure")
                metrics.track_error(type(e).__name__, "d2_classification")
                self.logger.error(
                    f"Keeping classification rules v{self._catalogue.version}: {e.message}",
                    extra={"errors": e.details.get("errors", [])},
                )
                return False

            self._catalogue = RuleCatalogue.from_schema(schema, self.min_criteria_override)

        metrics.track_config_reload("classification_rules", time.perf_counter() - start_time, "success")
        self.logger.info("Classification rules reloaded")
        return True

    def classify(self, finding: Finding, context: Optional[PageContext] = None) -> ClassificationResult:
        """
        Classify one opportunity finding

        Args:
            finding: Finding to evaluate (status is not an input)
            context: Page the finding was observed on

        Returns:
            ClassificationResult with criteria_met and justification always set
        """
        catalogue = self._catalogue
        context = context or PageContext.for_finding(finding)
        category = normalize_category(finding.category)
        trace: List[str] = [f"category: {category or 'uncategorized'}"]

        applicable = catalogue.applicable(category)
        if not applicable:
            trace.append("no applicable criteria -> flagged for review")
            result = ClassificationResult(
                classification=OFIClassification.STANDARD,
                justification=(
                    f"Standard OFI: {NO_CRITERIA_JUSTIFICATION} "
                    f"(category '{category or 'uncategorized'}'); flagged for manual review"
                ),
                criteria_met={},
                flagged_for_review=True,
                decision_trace=trace,
            )
            self._track(result, category)
            return result

        text = finding_text(finding)
        criteria_met: Dict[str, bool] = {}
        for criterion in applicable:
            met = criterion.is_met(finding, text, context.page_type, context.tier, context.occurrences)
            criteria_met[criterion.name] = met
            trace.append(f"{criterion.name}: {'met' if met else 'not met'}")

        fired = [name for name, met in criteria_met.items() if met]
        fired_label = ", ".join(fired) if fired else "none"
        count = len(fired)
        summary = f"{count} of {len(applicable)} criteria met ({fired_label})"

        critical = [c.name for c in applicable if c.critical and criteria_met[c.name]]
        if critical:
            trace.append(f"critical override: {', '.join(critical)}")
            result = ClassificationResult(
                classification=OFIClassification.PRIORITY,
                justification=f"Priority OFI: critical criterion met ({', '.join(critical)}); {summary}",
                criteria_met=criteria_met,
                critical_override=True,
                decision_trace=trace,
            )
            self._track(result, category)
            return result

        for suppressor in catalogue.suppressors:
            wording = suppressor.match(text)
            if wording:
                trace.append(f"suppressed by {suppressor.name} ('{wording}')")
                result = ClassificationResult(
                    classification=OFIClassification.STANDARD,
                    justification=f"Standard OFI: {suppressor.name} ('{wording}'); {summary}",
                    criteria_met=criteria_met,
                    decision_trace=trace,
                )
                self._track(result, category)
                return result

        if count >= catalogue.min_criteria:
            classification = OFIClassification.PRIORITY
            trace.append(f"{count} criteria >= min_criteria {catalogue.min_criteria}")
        else:
            classification = OFIClassification.STANDARD
            trace.append(f"{count} criteria < min_criteria {catalogue.min_criteria}")

        result = ClassificationResult(
            classification=classification,
            justification=f"{classification.value}: {summary}; threshold {catalogue.min_criteria}",
            criteria_met=criteria_met,
            decision_trace=trace,
        )
        self._track(result, category)
        return result

    def classify_finding(
        self, finding: Finding, context: Optional[PageContext] = None
    ) -> Optional[ClassificationResult]:
        """Classify an audit finding, skipping OK and N/A findings (returns None)"""
        if not finding.is_opportunity:
            return None
        return self.classify(finding, context)

    def _track(self, result: ClassificationResult, category: str):
        metrics.track_classification(
            result.classification.value, flagged=result.flagged_for_review, category=category
        )
        self.logger.debug(f"Classified as {result.classification.value}: {result.justification}")


# Singleton classifier instance
_classifier_instance: Optional[OFIClassifier] = None
_classifier_lock = threading.Lock()


def get_classifier() -> OFIClassifier:
    """Get or create the classifier for the configured rules file"""
    global _classifier_instance

    with _classifier_lock:
        if _classifier_instance is None:
            _classifier_instance = OFIClassifier()
        return _classifier_instance
