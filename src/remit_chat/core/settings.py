"""Application settings and configuration.

This module defines all configuration options for the Remit Chat service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Remit Chat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./remit_chat.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Encrypted payload bounds (base64 characters)
    chat_max_ciphertext_length: int = Field(default=16_000, alias="CHAT_MAX_CIPHERTEXT_LENGTH")
    chat_max_iv_length: int = Field(default=256, alias="CHAT_MAX_IV_LENGTH")
    chat_max_wrapped_key_length: int = Field(default=4_096, alias="CHAT_MAX_WRAPPED_KEY_LENGTH")

    # History paging
    chat_history_default_limit: int = Field(default=120, alias="CHAT_HISTORY_DEFAULT_LIMIT")
    chat_history_max_limit: int = Field(default=400, alias="CHAT_HISTORY_MAX_LIMIT")

    # Payment requests
    chat_request_note_max_length: int = Field(default=280, alias="CHAT_REQUEST_NOTE_MAX_LENGTH")

    # Thread reports
    chat_report_reason_min_length: int = Field(default=5, alias="CHAT_REPORT_REASON_MIN_LENGTH")
    chat_report_reason_max_length: int = Field(default=500, alias="CHAT_REPORT_REASON_MAX_LENGTH")
    chat_report_max_revealed: int = Field(default=30, alias="CHAT_REPORT_MAX_REVEALED")
    chat_report_max_plaintext_length: int = Field(
        default=4_000,
        alias="CHAT_REPORT_MAX_PLAINTEXT_LENGTH",
    )

    # Payment verification codes
    payment_code_ttl_seconds: int = Field(default=300, alias="PAYMENT_CODE_TTL_SECONDS")
    payment_code_digits: int = Field(default=6, alias="PAYMENT_CODE_DIGITS")

    # Settlement gateway (blockchain transfer service)
    settlement_base_url: str | None = Field(default=None, alias="SETTLEMENT_BASE_URL")
    settlement_api_key: str | None = Field(default=None, alias="SETTLEMENT_API_KEY")
    settlement_timeout_seconds: float = Field(default=60.0, alias="SETTLEMENT_TIMEOUT_SECONDS")
    settlement_asset_symbol: str = Field(default="ETH", alias="SETTLEMENT_ASSET_SYMBOL")

    # Notification gateway (email / SMS delivery of payment codes)
    notification_base_url: str | None = Field(default=None, alias="NOTIFICATION_BASE_URL")
    notification_api_key: str | None = Field(default=None, alias="NOTIFICATION_API_KEY")
    notification_timeout_seconds: float = Field(
        default=10.0,
        alias="NOTIFICATION_TIMEOUT_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def settlement_enabled(self) -> bool:
        """Return True when a settlement gateway is configured."""
        return bool(self.settlement_base_url)


settings = Settings()  # type: ignore[call-arg]
