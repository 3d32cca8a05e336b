"""
Configuration Management for Jarvis Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per record collection
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
    expenses_sheet_name: str = Field(default="Expenses")
    income_sheet_name: str = Field(default="Income")
    payments_sheet_name: str = Field(default="Payments")
    allocation_rules_sheet_name: str = Field(
        default="BudgetRules",
        description="Name of the sheet holding allocation rule rows"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    def sheet_name_for(self, collection: str) -> str:
        """Map a record collection to its worksheet title."""
        return getattr(self, f"{collection}_sheet_name")


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the command parser."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger engine policy.

    Everything here is a policy knob of the allocation, settlement
    or duplicate-detection logic.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Allocation rules
    default_rule_name: str = Field(
        default="default",
        min_length=1,
        description="Rule used by split_income when no rule name is given"
    )
    percentage_tolerance: float = Field(
        default=0.001,
        gt=0.0,
        le=0.1,
        description="Allowed deviation of a rule's percentage sum from 1.0"
    )
    known_rule_names: str = Field(
        default="default,hunt,msft",
        description="Comma-separated rule names the command parser may pick"
    )

    # Duplicate detection
    duplicate_window_minutes: int = Field(
        default=5,
        ge=0,
        le=1440,
        description="Trailing window for duplicate detection"
    )
    duplicate_fail_open: bool = Field(
        default=True,
        description="Treat detector errors as 'no duplicate' instead of failing"
    )
    duplicate_policy: str = Field(
        default="warn",
        pattern="^(warn|skip)$",
        description="What the command flow does with a detected duplicate"
    )

    # Account defaults
    default_expense_account: str = Field(default="freedom unlimited")
    default_income_account: str = Field(default="checkings")
    default_funding_account: str = Field(default="checkings")
    default_credit_account: str = Field(default="sapphire")

    # Store access
    account_cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long resolved account ids are cached"
    )
    category_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="How long the category allow-list is cached"
    )
    query_page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size for record store queries"
    )

    @property
    def known_rule_names_list(self) -> list[str]:
        """Get known rule names as a list."""
        return [name.strip() for name in self.known_rule_names.split(",") if name.strip()]


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "ledger", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
