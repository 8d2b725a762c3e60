"""
Search Janitor — Configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field

DAY_IN_SECONDS = 24 * 60 * 60


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Empty means not a managed environment: the scheduler stays off
    app_environment: str = Field(
        default="",
        description="Deployment environment name, e.g. 'production' or 'staging'",
    )

    # Retention
    production_retention_days: int = Field(default=14, ge=1)
    default_retention_days: int = Field(default=7, ge=1)

    @property
    def is_production(self) -> bool:
        return self.app_environment == "production"

    @property
    def retention_window_seconds(self) -> int:
        """Cutoff for stale versions — longer in production."""
        days = self.production_retention_days if self.is_production else self.default_retention_days
        return days * DAY_IN_SECONDS

    # Scheduling
    cleanup_interval_days: int = Field(default=7, ge=1, description="Days between cleanup sweeps")
    cleanup_max_jitter_days: int = Field(
        default=7, ge=1, description="First sweep is delayed by a random 1..N days"
    )

    # Search host (versioning + counts REST API)
    search_host_url: str = Field(default="http://localhost:8080/search/v1")
    search_host_token: str = Field(default="", description="Bearer token for the search host API")
    search_host_timeout: float = Field(default=30.0)

    # Alert context
    site_id: int = Field(default=0, description="Application / site id used in alerts")
    home_url: str = Field(default="")

    # Telegram alerts
    telegram_bot_token: str = Field(default="")
    telegram_chat_id: str = Field(default="")
    alert_channel: str = Field(default="search-alerts", description="Label prefixed to alert messages")

    # Database (deletion audit trail)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./search_janitor.db",
        description="Async SQLAlchemy DB URL",
    )

    # Metrics
    metrics_collection_ttl: int = Field(
        default=300, description="Minimum seconds between collector passes"
    )
    metrics_process_interval: int = Field(
        default=3600, description="Seconds between off-request metric processing"
    )
    max_network_sites: int = Field(default=50)
    network_site_count: int = Field(default=1)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
