"""
Custom exceptions for SiteAudit
Provides structured error handling across all domains
"""
from typing import Any, Dict, List, Optional


class SiteAuditError(Exception):
    """Base exception for all SiteAudit errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SiteAuditError):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={"field": field, **details} if field else details,
            status_code=400,
        )


class NotFoundError(SiteAuditError):
    """Raised when a resource is not found"""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND",
            details={"resource": resource, "identifier": str(identifier)},
            status_code=404,
        )


class ConfigurationError(SiteAuditError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting} if setting else {},
            status_code=500,
        )


class ClassificationRulesError(ConfigurationError):
    """Raised when a classification rules file cannot be loaded or validated"""

    def __init__(self, message: str, path: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(message=message, setting="classification_rules_path")
        self.error_code = "CLASSIFICATION_RULES_ERROR"
        self.details.update({"path": path, "errors": errors or []})
