"""
Application settings and configuration management using Pydantic Settings.
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application Settings
    app_name: str = Field(default="Table Reservation Engine", description="Application name")
    app_env: str = Field(default="development", description="Environment (development, staging, production)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./reservations.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Calendar
    default_timezone: str = Field(default="UTC", description="Timezone used to compute 'today'")

    # Booking Rules
    slot_interval_minutes: int = Field(default=30, ge=5, le=120, description="Stride between offered slots")
    default_duration_minutes: int = Field(default=90, ge=30, le=240, description="Default booking duration")
    min_duration_minutes: int = Field(default=30, ge=5, description="Shortest bookable duration")
    max_duration_minutes: int = Field(default=240, ge=30, description="Longest bookable duration")

    # Peak Hours
    peak_hours_start: int = Field(default=18, ge=0, le=23, description="First hour of the peak window")
    peak_hours_end: int = Field(default=21, ge=1, le=24, description="Hour the peak window ends (exclusive)")
    peak_hours_max_duration: int = Field(default=90, ge=30, description="Longest booking allowed during peak hours")

    # Availability Cache
    availability_cache_ttl_seconds: int = Field(default=300, ge=1, description="Availability cache TTL")
    availability_cache_max_entries: int = Field(default=1000, ge=1, description="Availability cache size bound")
    suggested_tables_limit: int = Field(default=3, ge=1, description="Suggested tables per availability result")
    alternative_tables_limit: int = Field(default=5, ge=1, description="Alternative tables offered on no capacity")

    # Waitlist
    waitlist_minutes_per_position: int = Field(default=30, ge=1, description="Estimated wait per queue position")
    waitlist_response_minutes: int = Field(default=30, ge=1, description="Time a notified guest has to respond")

    # Recurring Reservations
    recurring_lookahead_days: int = Field(default=30, ge=1, description="Scheduler materialization horizon")
    upcoming_occurrences_limit: int = Field(default=10, ge=1, description="Projected occurrences returned")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"log_level must be one of {allowed_levels}")
        return v_upper

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed_envs = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(f"app_env must be one of {allowed_envs}")
        return v_lower

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
