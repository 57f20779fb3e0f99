"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
All settings are validated at startup - missing required values will raise an error.

Production Mode:
    When app_env="production", additional validations apply:
    - debug must be False
    - cors_allowed_origins cannot be ["*"]
    - placeholder_fallback_enabled must be False
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase
    # -------------------------------------------------------------------------
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: SecretStr = Field(..., description="Supabase service role key")

    # -------------------------------------------------------------------------
    # Storage Buckets
    # -------------------------------------------------------------------------
    storage_uploads_bucket: str = Field(
        default="uploads",
        description="Bucket for business logos, market and category images",
    )
    storage_kyc_bucket: str = Field(
        default="kyc",
        description="Bucket for KYC identity documents",
    )

    # -------------------------------------------------------------------------
    # Reverse Geocoding (Nominatim)
    # -------------------------------------------------------------------------
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org/reverse",
        description="Nominatim reverse geocoding endpoint",
    )
    geocoder_user_agent: str = Field(
        default="AbadiscoApp/1.0",
        description="User-Agent sent to Nominatim (required by its usage policy)",
    )
    geocoder_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single reverse geocoding request",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="Bind address for the API server")
    api_port: int = Field(default=8000, description="Port for the API server")

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins. Use ['*'] for development only.",
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests",
    )

    # -------------------------------------------------------------------------
    # KYC
    # -------------------------------------------------------------------------
    kyc_max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum size of an uploaded KYC document",
    )

    # -------------------------------------------------------------------------
    # Agents & Performance Reporting
    # -------------------------------------------------------------------------
    agent_dashboard_default_target: int = Field(
        default=40,
        description="Weekly business target shown on the agent dashboard when the agent has none",
    )
    performance_default_target: int = Field(
        default=25,
        description="Weekly registration target used by the admin performance report",
    )
    registration_value: float = Field(
        default=93.73,
        description="Revenue attributed to a single agent registration",
    )
    commission_rate: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Share of attributed revenue paid to the agent",
    )
    placeholder_fallback_enabled: bool = Field(
        default=True,
        description=(
            "Serve a generated placeholder performance report when the agents "
            "query fails. Responses are always flagged with is_placeholder."
        ),
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are secure."""
        if self.app_env == "production":
            errors = []

            if self.debug:
                errors.append("debug must be False in production")

            if "*" in self.cors_allowed_origins:
                errors.append("cors_allowed_origins cannot contain '*' in production")

            # Generated numbers must never be shown as real data in production
            if self.placeholder_fallback_enabled:
                errors.append("placeholder_fallback_enabled must be False in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
