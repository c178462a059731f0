"""
Root conftest.py for all tests
Provides common fixtures and configuration
"""
import os
import sys
from datetime import datetime, timezone

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_FORMAT", "text")

import pytest

from core.config import CONFIG_DIR, get_settings
from d1_findings.models import AnalysisDetails, Finding
from d1_findings.types import FindingStatus, Importance
from d2_classification.classifier import OFIClassifier
from d3_scoring.tiers import TierTable
from d4_audit_quality.repository import AuditRecord

get_settings.cache_clear()

DEFAULT_RULES_PATH = CONFIG_DIR / "classification_rules.yaml"
DEFAULT_TIERS_PATH = CONFIG_DIR / "page_tiers.yaml"


@pytest.fixture
def make_finding():
    """Factory for findings with sensible defaults"""

    def _make(
        name="Meta description length",
        status=FindingStatus.OFI,
        importance=Importance.MEDIUM,
        category="on-page",
        description="",
        notes="",
        page_url="https://example.com/about",
        page_type="other",
        actual=None,
        metrics=None,
        **kwargs,
    ):
        details = None
        if actual is not None or metrics is not None:
            details = AnalysisDetails(actual=actual, metrics=metrics or {})
        return Finding(
            name=name,
            status=status,
            importance=importance,
            category=category,
            description=description,
            notes=notes,
            page_url=page_url,
            page_type=page_type,
            analysis_details=details,
            **kwargs,
        )

    return _make


@pytest.fixture(scope="session")
def classifier():
    """Classifier loaded from the shipped rules file"""
    return OFIClassifier(rules_path=DEFAULT_RULES_PATH, min_criteria=2)


@pytest.fixture
def tier_table():
    return TierTable.default()


@pytest.fixture
def make_audit():
    """Factory for audit records from section -> findings"""

    def _make(sections, audit_id=1, url="https://example.com", created_at=None):
        return AuditRecord(
            id=audit_id,
            url=url,
            created_at=created_at or datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc),
            sections=sections,
        )

    return _make


@pytest.fixture
def write_rules(tmp_path):
    """Write a rules YAML document to a temp file and return its path"""

    def _write(text, name="classification_rules.yaml"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def enhanced_results():
    """Stored enhanced audit ``results`` with page summaries, metadata and scores"""
    return {
        "onPage": {
            "items": [
                {
                    "name": "Page is noindex",
                    "description": "Robots meta noindex found",
                    "status": "Priority OFI",
                    "importance": "High",
                    "category": "technical",
                    "notes": "Checked by crawler",
                    "pageUrl": "https://example.com/",
                    "pageTitle": "Home",
                    "pageType": "homepage",
                },
                {
                    "name": "Minor wording issue",
                    "status": "Priority OFI",
                    "importance": "Low",
                    "category": "on-page",
                    "pageUrl": "https://example.com/blog",
                    "pageType": "blog",
                    "evidenceId": "ev-1",
                },
                {
                    "name": "H1 present",
                    "status": "OK",
                    "importance": "Medium",
                    "category": "on-page",
                    "pageUrl": "https://example.com/blog",
                    "pageType": "blog",
                },
            ],
            "score": 72,
            "completionRate": 100,
        },
        "contactPage": {"items": [], "score": 100},
        "localSEO": {"items": [{"name": "Business profile linked", "status": "N/A", "category": "local-seo"}]},
        "reachedMaxPages": False,
        "pageIssues": [
            {
                "pageUrl": "https://example.com/",
                "pageTitle": "Home",
                "pageType": "homepage",
                "priorityOfiCount": 1,
                "ofiCount": 0,
                "okCount": 0,
                "naCount": 0,
                "totalIssues": 1,
            },
            {
                "pageUrl": "https://example.com/blog",
                "pageTitle": "Blog",
                "pageType": "blog",
                "priorityOfiCount": 1,
                "ofiCount": 0,
                "okCount": 1,
                "naCount": 0,
                "totalIssues": 2,
            },
        ],
        "analysisMetadata": {"analysisVersion": "2.0", "factorCount": 140, "analysisTime": 5321},
        "summary": {
            "totalFactors": 140,
            "priorityOfiCount": 2,
            "ofiCount": 0,
            "okCount": 1,
            "naCount": 1,
            "overallScore": 64,
            "categoryScores": {"onPage": 72},
        },
    }
