"""InspectOS settings loaded from environment variables."""

from enum import StrEnum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Bundled WRc / MSCC5 rule set shipped with the engine package.
DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "engine" / "data" / "wrc_rules.json"


class Environment(StrEnum):
    """Deployment environment."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Process-wide settings loaded from environment variables / .env file.

    Rule-set location and cache window live here so policy files can be
    swapped per deployment without code changes.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Rule engine ---
    RULES_PATH: Path = Field(
        default=DEFAULT_RULES_PATH,
        description="Path to the JSON rule-set file evaluated by the rule engine.",
    )
    RULES_CACHE_TTL_SECONDS: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds a parsed rule set is reused before the file is re-read.",
    )

    # --- Classification ---
    DEFAULT_SECTOR: str = Field(
        default="utilities",
        description="Sector profile applied when the caller does not name one.",
    )

    # --- Validation ---
    TRAVEL_BASELINE_MINUTES: float = Field(
        default=120.0,
        gt=0.0,
        description="Travel time included in standard rates; longer trips raise travel issues.",
    )

    # --- Logging ---
    LOG_LEVEL: LogLevel = Field(
        default=LogLevel.INFO,
        description="Application log level.",
    )

    # --- Environment ---
    ENVIRONMENT: Environment = Field(
        default=Environment.DEV,
        description="Deployment environment (dev/staging/prod).",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == Environment.PROD


def get_settings() -> Settings:
    """Factory function returning settings resolved from the environment."""
    return Settings()
