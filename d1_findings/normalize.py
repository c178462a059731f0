"""
Label normalization shared by the classifier and the tier assigner

Audit producers emit page types and categories in several spellings
("serviceArea", "Service Areas", "service_area"). Both are folded to
lowercase, dash-separated keys before any lookup.
"""

import re
from typing import Optional

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s_]+")
_REPEATED_DASH = re.compile(r"-{2,}")


def normalize_label(value: Optional[str]) -> str:
    """Fold a free-form label to a lowercase dash-separated key ('' for None)"""
    if not value:
        return ""
    text = _CAMEL_BOUNDARY.sub("-", value.strip())
    text = _SEPARATORS.sub("-", text.lower())
    return _REPEATED_DASH.sub("-", text).strip("-")


def normalize_page_type(page_type: Optional[str]) -> str:
    return normalize_label(page_type)


def normalize_category(category: Optional[str]) -> str:
    return normalize_label(category)
