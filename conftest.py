"""
Root conftest.py for pytest configuration

This file handles:
1. Domain marker registration
2. Automatic marker inheritance based on test location
"""
import pytest

DOMAIN_MARKERS = {
    "core": "Settings, logging, metrics and CLI tests",
    "d1_findings": "Finding model tests",
    "d2_classification": "Classification rule evaluator tests",
    "d3_scoring": "Tier assignment and aggregation tests",
    "d4_audit_quality": "Reclassification and reporting tests",
}


def apply_auto_markers(item: pytest.Item) -> None:
    """Apply the primary and domain markers implied by the test path"""
    test_path = str(item.fspath)
    existing_markers = {mark.name for mark in item.iter_markers()}

    if "/unit/" in test_path and "unit" not in existing_markers:
        item.add_marker(pytest.mark.unit)

    for domain in DOMAIN_MARKERS:
        if f"/{domain}/" in test_path and domain not in existing_markers:
            item.add_marker(getattr(pytest.mark, domain))


def pytest_collection_modifyitems(config, items):
    """Apply automatic markers to every collected item"""
    for item in items:
        apply_auto_markers(item)


def pytest_configure(config):
    """
    Configure pytest with custom markers.

    This registers domain markers dynamically.
    """
    for marker_name, description in DOMAIN_MARKERS.items():
        config.addinivalue_line("markers", f"{marker_name}: {description}")
