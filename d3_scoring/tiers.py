"""
Page Tier Assignment

Maps a page's role (homepage, contact, service, location, ...) to a priority
tier and the weight that tier carries in the site-level score. The mapping is
a plain table loaded from ``config/page_tiers.yaml`` and injected where it is
needed, so sites with a different page taxonomy only change data.

Lookups never fail: unknown or missing page types land in tier 3.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from core.config import PROJECT_ROOT, settings
from core.exceptions import ConfigurationError
from core.logging import get_logger
from d1_findings.normalize import normalize_page_type
from d1_findings.types import PageTier

logger = get_logger(__name__)

DEFAULT_TIER = PageTier.TIER_3

DEFAULT_TIER_WEIGHTS = {PageTier.TIER_1: 3.0, PageTier.TIER_2: 2.0, PageTier.TIER_3: 1.0}

DEFAULT_TIER_PAGE_TYPES = {
    PageTier.TIER_1: [
        "homepage",
        "home",
        "home-page",
        "landing",
        "landing-page",
        "contact",
        "contact-page",
        "contact-us",
    ],
    PageTier.TIER_2: [
        "service",
        "services",
        "service-page",
        "location",
        "locations",
        "location-page",
        "service-area",
        "service-areas",
        "service-area-page",
    ],
    PageTier.TIER_3: [],
}


def normalize_url(url: str) -> str:
    return url.strip().rstrip("/").lower()


def is_root_url(url: Optional[str]) -> bool:
    """True for a site root such as https://example.com/"""
    if not url:
        return False
    parts = urlsplit(url.strip())
    return bool(parts.netloc) and parts.path in ("", "/") and not parts.query


@dataclass(frozen=True)
class TierAssignment:
    """Tier and weight assigned to one page"""

    tier: PageTier
    weight: float
    source: str = "page_type"  # page_type, override, url or default

    @property
    def description(self) -> str:
        return self.tier.description


# ---------------------------------------------------------------------------
# YAML schema
# ---------------------------------------------------------------------------


class TierDefinition(BaseModel):
    weight: float = Field(..., gt=0)
    description: str = ""
    page_types: List[str] = Field(default_factory=list)

    @field_validator("page_types")
    @classmethod
    def normalize_page_types(cls, v):
        return [normalize_page_type(p) for p in v]


class TierTableSchema(BaseModel):
    """Root schema for the page tier document"""

    version: str = Field(..., pattern=r"^\d+\.\d+$")
    tiers: Dict[int, TierDefinition]
    overrides: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_tiers(self) -> "TierTableSchema":
        if set(self.tiers) != {1, 2, 3}:
            raise ValueError(f"Tiers 1, 2 and 3 must all be defined, got {sorted(self.tiers)}")

        weights = [self.tiers[t].weight for t in (1, 2, 3)]
        if weights != sorted(weights, reverse=True):
            raise ValueError(f"Tier weights must not increase from tier 1 to tier 3, got {weights}")

        seen: Dict[str, int] = {}
        for tier, definition in self.tiers.items():
            for page_type in definition.page_types:
                if page_type in seen and seen[page_type] != tier:
                    raise ValueError(f"Page type '{page_type}' listed in tiers {seen[page_type]} and {tier}")
                seen[page_type] = tier

        bad_overrides = {url: tier for url, tier in self.overrides.items() if tier not in (1, 2, 3)}
        if bad_overrides:
            raise ValueError(f"Override tiers must be 1, 2 or 3: {bad_overrides}")
        return self


# ---------------------------------------------------------------------------
# Tier table
# ---------------------------------------------------------------------------


class TierTable:
    """
    Page type to tier lookup with per-tier weights and URL overrides
    """

    def __init__(
        self,
        weights: Optional[Mapping[int, float]] = None,
        page_types: Optional[Mapping[int, Iterable[str]]] = None,
        overrides: Optional[Mapping[str, int]] = None,
        descriptions: Optional[Mapping[int, str]] = None,
        version: str = "builtin",
    ):
        weights = weights if weights is not None else DEFAULT_TIER_WEIGHTS
        page_types = page_types if page_types is not None else DEFAULT_TIER_PAGE_TYPES

        self.version = version
        self._weights: Dict[PageTier, float] = {PageTier(int(t)): float(w) for t, w in weights.items()}
        missing = set(PageTier) - set(self._weights)
        if missing:
            raise ConfigurationError(f"Missing weights for tiers: {sorted(int(t) for t in missing)}", "page_tiers")

        self._page_types: Dict[str, PageTier] = {}
        for tier, types in page_types.items():
            for page_type in types:
                self._page_types[normalize_page_type(page_type)] = PageTier(int(tier))

        self._overrides: Dict[str, PageTier] = {
            normalize_url(url): PageTier(int(tier)) for url, tier in (overrides or {}).items()
        }
        self._descriptions: Dict[PageTier, str] = {
            PageTier(int(t)): d for t, d in (descriptions or {}).items() if d
        }

    @classmethod
    def default(cls) -> "TierTable":
        """Built-in table: home/landing/contact 3, service/location/service-area 2, rest 1"""
        return cls()

    @classmethod
    def from_schema(cls, schema: TierTableSchema) -> "TierTable":
        return cls(
            weights={t: d.weight for t, d in schema.tiers.items()},
            page_types={t: d.page_types for t, d in schema.tiers.items()},
            overrides=schema.overrides,
            descriptions={t: d.description for t, d in schema.tiers.items()},
            version=schema.version,
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TierTable":
        """
        Load a tier table from YAML

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        path_obj = Path(path)
        if not path_obj.exists():
            raise ConfigurationError(f"Page tier file not found: {path_obj}", "page_tiers_path")

        try:
            with path_obj.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
            schema = TierTableSchema.model_validate(data)
        except (yaml.YAMLError, ValidationError) as exc:
            raise ConfigurationError(f"Invalid page tier file '{path_obj}': {exc}", "page_tiers_path") from exc

        logger.info(f"Loaded page tiers v{schema.version} from {path_obj}")
        return cls.from_schema(schema)

    def with_overrides(self, overrides: Mapping[str, int]) -> "TierTable":
        """Return a copy with additional per-site URL overrides"""
        merged = {url: int(tier) for url, tier in self._overrides.items()}
        merged.update({normalize_url(url): int(tier) for url, tier in overrides.items()})
        page_types: Dict[int, List[str]] = {int(t): [] for t in PageTier}
        for page_type, tier in self._page_types.items():
            page_types[int(tier)].append(page_type)
        return TierTable(
            weights=self._weights,
            page_types=page_types,
            overrides=merged,
            descriptions=self._descriptions,
            version=self.version,
        )

    def weight(self, tier: Union[int, PageTier]) -> float:
        return self._weights[PageTier(int(tier))]

    @property
    def weights(self) -> Dict[PageTier, float]:
        return dict(self._weights)

    @property
    def overrides(self) -> Dict[str, PageTier]:
        return dict(self._overrides)

    def page_types_for(self, tier: Union[int, PageTier]) -> List[str]:
        target = PageTier(int(tier))
        return sorted(p for p, t in self._page_types.items() if t == target)

    def tier_of(self, page_type: Optional[str]) -> TierAssignment:
        """Tier and weight for a page type (tier 3 when unknown or missing)"""
        tier = self._page_types.get(normalize_page_type(page_type))
        if tier is None:
            return TierAssignment(DEFAULT_TIER, self._weights[DEFAULT_TIER], source="default")
        return TierAssignment(tier, self._weights[tier])

    def tier_for_page(self, page_type: Optional[str], url: Optional[str] = None) -> TierAssignment:
        """
        Tier for a concrete page

        Manual URL overrides win, then the page type. A page of unknown type
        served at the site root is treated as the homepage.
        """
        if url:
            override = self._overrides.get(normalize_url(url))
            if override is not None:
                return TierAssignment(override, self._weights[override], source="override")

        assignment = self.tier_of(page_type)
        if assignment.source == "default" and is_root_url(url):
            return TierAssignment(PageTier.TIER_1, self._weights[PageTier.TIER_1], source="url")
        return assignment

    def describe(self, tier: Union[int, PageTier]) -> str:
        tier = PageTier(int(tier))
        return self._descriptions.get(tier) or tier.description


_default_table = TierTable.default()


def load_tier_table(path: Optional[Union[str, Path]] = None) -> TierTable:
    """Load the configured tier table (``settings.page_tiers_path`` by default)"""
    path_obj = Path(path) if path is not None else Path(settings.page_tiers_path)
    if not path_obj.is_absolute():
        path_obj = PROJECT_ROOT / path_obj
    return TierTable.from_yaml(path_obj)


def tier_of(page_type: Optional[str], table: Optional[TierTable] = None) -> TierAssignment:
    """Tier lookup against ``table`` or the built-in table"""
    return (table or _default_table).tier_of(page_type)


def describe(tier: Union[int, PageTier], table: Optional[TierTable] = None) -> str:
    return (table or _default_table).describe(tier)
