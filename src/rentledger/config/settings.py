"""Configuration settings for the rentledger engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Reconciliation matching
    reconciliation_tolerance: float = Field(
        default=0.01, validation_alias="RECONCILIATION_TOLERANCE"
    )
    reconciliation_window_days: int = Field(
        default=7, validation_alias="RECONCILIATION_WINDOW_DAYS"
    )
    exact_match_confidence: float = Field(
        default=0.9, validation_alias="EXACT_MATCH_CONFIDENCE"
    )
    window_match_confidence: float = Field(
        default=0.7, validation_alias="WINDOW_MATCH_CONFIDENCE"
    )

    # 1099 reporting
    form_1099_threshold: float = Field(default=600.0, validation_alias="FORM_1099_THRESHOLD")
    tax_min_year: int = Field(default=2020, validation_alias="TAX_MIN_YEAR")
    payer_name: str = Field(
        default="Property Management Company", validation_alias="PAYER_NAME"
    )
    payer_tin: str = Field(default="", validation_alias="PAYER_TIN")

    # Filing gateway
    filing_gateway_url: str = Field(
        default="http://localhost:8100", validation_alias="FILING_GATEWAY_URL"
    )
    filing_gateway_api_key: SecretStr = Field(
        default=SecretStr(""), validation_alias="FILING_GATEWAY_API_KEY"
    )
    filing_gateway_timeout: float = Field(
        default=30.0, validation_alias="FILING_GATEWAY_TIMEOUT"
    )

    # Export
    export_dir: str = Field(default="/tmp/rentledger-reports", validation_alias="EXPORT_DIR")
    export_column_width: int = Field(default=15, validation_alias="EXPORT_COLUMN_WIDTH")

    # Aggregation cache (disabled when ttl is 0)
    aggregation_cache_ttl: float = Field(default=0.0, validation_alias="AGGREGATION_CACHE_TTL")
    aggregation_cache_size: int = Field(default=128, validation_alias="AGGREGATION_CACHE_SIZE")

    # Scheduling
    schedule_file: str = Field(
        default="scheduled_reports.yaml", validation_alias="SCHEDULE_FILE"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
