"""
D2 Classification Module

Rule-driven evaluator splitting opportunity findings into Priority OFI and
Standard OFI, with a YAML criteria catalogue that can be hot-reloaded.
"""

from .classifier import OFIClassifier, PageContext, get_classifier
from .criteria import Criterion, RuleCatalogue, Suppressor
from .rules_schema import ClassificationRulesSchema, CriterionConfig, SuppressorConfig, validate_rules

__all__ = [
    # Evaluator
    "OFIClassifier",
    "PageContext",
    "get_classifier",
    # Catalogue
    "Criterion",
    "RuleCatalogue",
    "Suppressor",
    # Schema
    "ClassificationRulesSchema",
    "CriterionConfig",
    "SuppressorConfig",
    "validate_rules",
]
