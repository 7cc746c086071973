"""Centralized configuration management using pydantic-settings.

Configuration is loaded from environment variables with sensible defaults.
All settings can be overridden via environment variables or a .env file.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development. Override via
    environment variables (prefixed with SBL_) or .env file.

    Examples:
        SBL_DATABASE_PATH=/var/lib/sbl/ledger.db
        SBL_LOG_LEVEL=DEBUG
        SBL_ENVIRONMENT=production
        SBL_CASH_ACCOUNT_IDS='["1000", "1001"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="SBL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Small Business Ledger"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False, description="Log at DEBUG regardless of log_level")

    # Database
    database_path: Path = Field(
        default=Path.home() / ".small_business_ledger" / "ledger.db",
        description="SQLite database file path (':memory:' for an in-process store)",
    )
    max_transaction_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for an atomic write before reporting the store unavailable",
    )

    # Identity (CLI); every ledger operation is scoped to this tenant
    user_id: str | None = Field(default=None, description="Acting user id for the CLI")

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] | None = Field(
        default=None,
        description="Log output format; unset means json in production, console otherwise",
    )
    log_file: Path | None = Field(default=None, description="Optional log file path")

    # Ledger policy
    rounding_warning_epsilon: Decimal = Field(
        default=Decimal("0.0001"),
        description="Amounts further than this from a whole cent are flagged when rounded",
    )
    reconciliation_overdue_days: int = Field(default=45, ge=1)
    default_business_id: str = "Shared"

    # Chart of accounts designations
    owner_equity_account_id: str = "3000"
    opening_balance_equity_account_id: str = "3001"
    retained_earnings_account_id: str = "3002"
    undeposited_funds_account_id: str = "1002"
    default_income_account_id: str = "4000"
    cash_account_ids: list[str] = Field(default_factory=lambda: ["1000", "1001"])

    @field_validator("database_path", mode="before")
    @classmethod
    def expand_database_path(cls, v: str | Path) -> str | Path:
        """Expand ``~``; the ``:memory:`` sentinel is left alone."""
        if str(v) == ":memory:":
            return v
        return Path(v).expanduser()

    @field_validator("cash_account_ids")
    @classmethod
    def require_cash_accounts(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one cash account id is required")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def resolved_log_format(self) -> str:
        """Explicit ``log_format``, else JSON in production and console elsewhere."""
        if self.log_format:
            return self.log_format
        return "json" if self.is_production else "console"


@lru_cache
def get_settings() -> Settings:
    """Load settings once; call ``get_settings.cache_clear()`` to reload."""
    return Settings()
