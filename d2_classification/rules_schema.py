"""Schema and validator for classification rules YAML files

This module defines the Pydantic models representing the
`classification_rules.yaml` catalogue: the criteria the evaluator checks
against each finding, the minimum number of satisfied criteria for a
Priority OFI, and the suppressors that force a Standard OFI.

It also exposes a reusable `validate_rules(path)` helper that loads the YAML
file, validates it against the schema and enforces the catalogue rules
(unique criterion names, compilable patterns, at least one matcher per
criterion).
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from core.config import PROJECT_ROOT, settings
from core.exceptions import ClassificationRulesError
from core.logging import get_logger
from d1_findings.normalize import normalize_category, normalize_page_type
from d1_findings.types import Importance

from .constants import CRITERION_NAME_PATTERN, DEFAULT_MIN_CRITERIA

_logger = get_logger("classification.rules_schema")


def _compile_patterns(patterns: list[str]) -> list[str]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"Invalid pattern {pattern!r}: {exc}") from exc
    return patterns


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class CriterionConfig(BaseModel):
    """A single named classification criterion."""

    name: str = Field(..., pattern=CRITERION_NAME_PATTERN)
    description: str = ""
    critical: bool = Field(default=False, description="A satisfied critical criterion forces Priority OFI")
    categories: list[str] = Field(..., min_length=1, description="Finding categories the criterion applies to")

    # Evidence matchers (any one suffices)
    patterns: list[str] = Field(default_factory=list, description="Regexes over name, description and notes")
    actual_values: list[str] = Field(default_factory=list, description="Substrings of analysis_details.actual")

    # Constraints (all configured ones must hold)
    importance: list[Importance] = Field(default_factory=list)
    page_types: list[str] = Field(default_factory=list)
    max_tier: int | None = Field(default=None, ge=1, le=3)
    min_occurrences: int | None = Field(default=None, ge=1)

    @field_validator("categories")
    @classmethod
    def normalize_categories(cls, v):
        normalized = [normalize_category(c) for c in v]
        if not all(normalized):
            raise ValueError("Categories must be non-empty strings")
        return normalized

    @field_validator("page_types")
    @classmethod
    def normalize_page_types(cls, v):
        return [normalize_page_type(p) for p in v]

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v):
        return _compile_patterns(v)

    @field_validator("actual_values")
    @classmethod
    def lower_actual_values(cls, v):
        return [value.lower() for value in v]

    @property
    def has_evidence_matcher(self) -> bool:
        return bool(self.patterns or self.actual_values)

    @model_validator(mode="after")
    def _require_matcher(self) -> CriterionConfig:
        configured = (
            self.has_evidence_matcher
            or self.importance
            or self.page_types
            or self.max_tier is not None
            or self.min_occurrences is not None
        )
        if not configured:
            raise ValueError(f"Criterion '{self.name}' must configure at least one matcher")
        return self


class SuppressorConfig(BaseModel):
    """Wording that forces Standard OFI when no critical criterion fired."""

    name: str = Field(..., pattern=CRITERION_NAME_PATTERN)
    description: str = ""
    patterns: list[str] = Field(..., min_length=1)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v):
        return _compile_patterns(v)


class ClassificationRulesSchema(BaseModel):
    """Root schema for the classification rules document."""

    version: str = Field(..., pattern=r"^\d+\.\d+$", description="Configuration version")
    min_criteria: int = Field(default=DEFAULT_MIN_CRITERIA, ge=1)
    criteria: list[CriterionConfig] = Field(..., min_length=1)
    suppressors: list[SuppressorConfig] = Field(default_factory=list)

    # Anchor holder for shared category lists, not read by the evaluator
    category_sets: dict[str, list[str]] | None = None

    @model_validator(mode="after")
    def _validate_unique_names(self) -> ClassificationRulesSchema:
        names = [c.name for c in self.criteria] + [s.name for s in self.suppressors]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate criterion or suppressor names: {duplicates}")
        return self

    @model_validator(mode="after")
    def _check_threshold_reachable(self) -> ClassificationRulesSchema:
        non_critical = [c for c in self.criteria if not c.critical]
        if self.min_criteria > len(self.criteria):
            raise ValueError(
                f"min_criteria={self.min_criteria} exceeds the number of criteria ({len(self.criteria)})"
            )
        if self.min_criteria > len(non_critical):
            _logger.warning(
                f"min_criteria={self.min_criteria} can only be reached with critical criteria "
                f"({len(non_critical)} non-critical criteria defined)"
            )
        return self

    @property
    def categories(self) -> list[str]:
        """Every category covered by at least one criterion"""
        return sorted({category for c in self.criteria for category in c.categories})


# ---------------------------------------------------------------------------
# Helper utilities
# ---------------------------------------------------------------------------


def resolve_rules_path() -> Path:
    """Return the effective classification rules path.

    Checks ``CLASSIFICATION_RULES_PATH`` (via settings) and resolves relative
    paths against the project root.
    """
    path = Path(settings.classification_rules_path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


# ---------------------------------------------------------------------------
# Public helper
# ---------------------------------------------------------------------------


def validate_rules(path: os.PathLike | str | None = None) -> ClassificationRulesSchema:
    """Load a YAML file and return a validated ``ClassificationRulesSchema``.

    Args:
        path: Path to a YAML file on disk (defaults to ``resolve_rules_path()``).

    Raises:
        ClassificationRulesError: If the file is missing, is not valid YAML or
            does not match the schema.
    """
    path_obj = Path(path) if path is not None else resolve_rules_path()
    if not path_obj.exists():
        raise ClassificationRulesError(f"Classification rules file not found: {path_obj}", path=str(path_obj))

    try:
        with path_obj.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ClassificationRulesError(
            f"Invalid YAML in classification rules file '{path_obj}': {exc}", path=str(path_obj)
        ) from exc

    if not isinstance(data, dict):
        raise ClassificationRulesError(
            f"Classification rules file '{path_obj}' must contain a mapping", path=str(path_obj)
        )

    try:
        return ClassificationRulesSchema.model_validate(data)
    except ValidationError as exc:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
        raise ClassificationRulesError(
            f"Validation failed for classification rules file '{path_obj}'",
            path=str(path_obj),
            errors=errors,
        ) from exc


def check_uncovered_categories(schema: ClassificationRulesSchema, categories: list[str]) -> list[str]:
    """
    Return the audit categories no criterion applies to.

    Findings in these categories are always flagged for manual review.
    """
    covered = set(schema.categories)
    missing = []
    for category in categories:
        normalized = normalize_category(category)
        if normalized not in covered:
            _logger.warning(f"Category '{category}' has no classification criteria")
            missing.append(category)
    return missing


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def __main__():
    """CLI interface for validating classification rules."""
    usage = "Usage: python -m d2_classification.rules_schema validate <path>"
    if len(sys.argv) < 2:
        print(usage)
        sys.exit(1)

    command = sys.argv[1]
    if command != "validate":
        print(f"Unknown command: {command}")
        print(usage)
        sys.exit(1)

    path = sys.argv[2] if len(sys.argv) > 2 else resolve_rules_path()

    try:
        schema = validate_rules(path)
    except ClassificationRulesError as e:
        print(f"✗ Validation failed: {e.message}")
        for error in e.details.get("errors", []):
            print(f"  - {error}")
        sys.exit(1)

    critical = [c.name for c in schema.criteria if c.critical]
    print(f"✓ Validation successful for {path}")
    print(f"  Version: {schema.version}")
    print(f"  Criteria: {len(schema.criteria)} ({len(critical)} critical)")
    print(f"  Min criteria for Priority OFI: {schema.min_criteria}")
    print(f"  Suppressors: {len(schema.suppressors)}")
    print(f"  Categories: {', '.join(schema.categories)}")


if __name__ == "__main__":
    __main__()
