"""
Finding Types and Enumerations

Type definitions shared by every stage of the audit scoring pipeline:
finding status, SEO importance, OFI classification labels and page tiers.
"""

from enum import Enum, IntEnum


class FindingStatus(Enum):
    """
    Status of a single audit finding as stored on the audit record
    """

    PRIORITY_OFI = "Priority OFI"  # Critical finding, corrective action strongly recommended
    OFI = "OFI"  # Opportunity for improvement
    OK = "OK"  # No issue found
    NOT_APPLICABLE = "N/A"  # Check does not apply to this page

    @property
    def is_opportunity(self) -> bool:
        """True for the two statuses the classification evaluator acts on"""
        return self in (FindingStatus.PRIORITY_OFI, FindingStatus.OFI)

    @property
    def severity_rank(self) -> int:
        """Return numeric severity for sorting (lower = more severe)"""
        order = {
            FindingStatus.PRIORITY_OFI: 0,
            FindingStatus.OFI: 1,
            FindingStatus.OK: 2,
            FindingStatus.NOT_APPLICABLE: 3,
        }
        return order[self]


class Importance(Enum):
    """SEO importance assigned by the rule check that produced a finding"""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        order = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}
        return order[self]


class OFIClassification(Enum):
    """
    Two-level severity taxonomy produced by the classification evaluator
    """

    PRIORITY = "Priority OFI"
    STANDARD = "Standard OFI"

    def to_status(self) -> FindingStatus:
        """Map the classification onto the stored finding status"""
        if self is OFIClassification.PRIORITY:
            return FindingStatus.PRIORITY_OFI
        return FindingStatus.OFI

    @classmethod
    def from_status(cls, status: FindingStatus) -> "OFIClassification":
        if status is FindingStatus.PRIORITY_OFI:
            return cls.PRIORITY
        if status is FindingStatus.OFI:
            return cls.STANDARD
        raise ValueError(f"Status {status.value!r} has no OFI classification")


class PageTier(IntEnum):
    """
    Page-importance bucket used to weight findings (1 = highest)
    """

    TIER_1 = 1  # Homepage, landing and primary contact pages
    TIER_2 = 2  # Service, location and service-area pages
    TIER_3 = 3  # Everything else

    @property
    def description(self) -> str:
        descriptions = {
            PageTier.TIER_1: "High priority - homepage, landing and primary contact pages",
            PageTier.TIER_2: "Medium priority - service, location and service-area pages",
            PageTier.TIER_3: "Low priority - blog posts, archives and utility pages",
        }
        return descriptions[self]
