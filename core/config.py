"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Application
    app_name: str = "SiteAudit"
    app_version: str = "0.1.0"

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Monitoring
    prometheus_enabled: bool = Field(default=True)

    # Classification rules
    classification_rules_path: Path = Field(default=CONFIG_DIR / "classification_rules.yaml")
    classification_min_criteria: Optional[int] = Field(
        default=None, ge=1, description="Overrides min_criteria from the rules file when set"
    )
    rules_reload_debounce_seconds: float = Field(default=2.0, ge=0.0)

    # Page tiers
    page_tiers_path: Path = Field(default=CONFIG_DIR / "page_tiers.yaml")

    # Reclassification / reporting
    reclassify_max_workers: int = Field(default=4, ge=1)
    weekly_report_days: int = Field(default=7, ge=1)
    health_window_days: int = Field(default=30, ge=1)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
