"""
Centralized configuration management for the Job Application Tracker.
All environment variables and engine tuning knobs are managed here.
"""
from typing import Optional, List, Dict
from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with validation and type hints."""

    # =============================================================================
    # APPLICATION SETTINGS
    # =============================================================================
    app_name: str = "Job Application Tracker"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    testing: bool = False

    # =============================================================================
    # DATABASE SETTINGS
    # =============================================================================
    database_url: str = "sqlite:///./job_tracker.db"
    database_echo: bool = False

    # =============================================================================
    # LOGGING SETTINGS
    # =============================================================================
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # =============================================================================
    # ACHIEVEMENT ENGINE SETTINGS
    # =============================================================================
    level_step: int = 100  # XP per level
    catalog_path: Optional[str] = None  # JSON catalog; built-in catalog when unset

    # Pending unlock retry: base * 2**attempts seconds, capped
    unlock_retry_base_seconds: float = 2.0
    unlock_retry_max_seconds: float = 300.0

    # Notification delivery
    notification_max_attempts: int = 3
    notification_webhook_url: Optional[str] = None
    notification_timeout: int = 5  # seconds

    # Submission time-of-day windows (hour of day, local to the submission timestamp)
    early_bird_hour: int = 9
    night_owl_hour: int = 20

    # Named company sets used by set-membership requirements
    company_sets: Dict[str, List[str]] = {
        "faang": [
            "facebook", "meta", "amazon", "apple", "netflix",
            "google", "alphabet", "microsoft",
        ],
    }

    @field_validator("level_step")
    @classmethod
    def validate_level_step(cls, v):
        if v <= 0:
            raise ValueError("level_step must be a positive integer")
        return v

    @field_validator("early_bird_hour", "night_owl_hour")
    @classmethod
    def validate_hour(cls, v):
        if not 0 <= v <= 23:
            raise ValueError("hour settings must be between 0 and 23")
        return v

    # =============================================================================
    # DEVELOPMENT SETTINGS
    # =============================================================================
    api_docs_enabled: bool = True
    cors_enabled: bool = True
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # =============================================================================
    # CONFIGURATION LOADING
    # =============================================================================
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.testing or self.environment.lower() == "testing"

    def get_database_url(self) -> str:
        """Get database URL with appropriate settings for environment."""
        if self.is_testing():
            return "sqlite:///:memory:"
        return self.database_url

    def validate_required_settings(self) -> List[str]:
        """Validate that all required settings are properly configured."""
        missing = []

        if self.is_production():
            if self.debug:
                missing.append("DEBUG must be False in production")

            if self.database_url.startswith("sqlite"):
                missing.append("DATABASE_URL should not point at SQLite in production")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            missing.append(f"Invalid LOG_LEVEL: {self.log_level}")

        if self.early_bird_hour >= self.night_owl_hour:
            missing.append("EARLY_BIRD_HOUR must be earlier than NIGHT_OWL_HOUR")

        if self.notification_max_attempts < 1:
            missing.append("NOTIFICATION_MAX_ATTEMPTS must be at least 1")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).
    This function is cached to avoid recreating the settings object multiple times.
    """
    return Settings()
