"""Core utilities and configuration for SiteAudit"""
from core.config import settings
from core.exceptions import ConfigurationError, NotFoundError, SiteAuditError, ValidationError
from core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "SiteAuditError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
]
