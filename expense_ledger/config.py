from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings, sourced from environment variables or .env."""

    app_name: str = Field(default="ExpenseLedger")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str = Field(alias="DATABASE_URL")
    direct_database_url: Optional[str] = Field(
        default=None,
        alias="DIRECT_DATABASE_URL",
        description="Optional direct Postgres connection string used for running migrations.",
    )
    auto_run_migrations: bool = Field(default=False, alias="AUTO_RUN_MIGRATIONS")
    sql_echo: bool = Field(default=False, alias="SQL_ECHO")
    auth_secret_key: str = Field(
        default="change-me-to-a-safe-key",
        alias="AUTH_SECRET_KEY",
        description="Secret key used to verify API access tokens.",
        min_length=16,
    )
    auth_token_algorithm: str = Field(
        default="HS256",
        alias="AUTH_TOKEN_ALGORITHM",
        description="JWT signing algorithm accepted for access tokens.",
    )
    repayment_conflict_retries: int = Field(
        default=3,
        alias="REPAYMENT_CONFLICT_RETRIES",
        description="Attempts made for a repayment that lost a concurrent update race.",
        ge=1,
        le=10,
    )
    import_max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        alias="IMPORT_MAX_UPLOAD_BYTES",
        description="Largest spreadsheet accepted by the import endpoints.",
        ge=1024,
    )
    import_preview_rows: int = Field(default=3, alias="IMPORT_PREVIEW_ROWS", ge=0, le=50)
    import_category_icon: str = Field(
        default="📝",
        alias="IMPORT_CATEGORY_ICON",
        description="Icon given to categories created while importing.",
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor so imports share a single settings instance."""
    return Settings()  # type: ignore[call-arg]
