"""Application settings and configuration.

This module defines all configuration options for the CreatorHub gateway.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="CreatorHub Gateway", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")

    # Identity tokens issued by the external auth provider
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Database holding identity -> wallet links
    database_url: str = Field(default="sqlite:///./creatorhub.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis backs idempotency and rate limiting when configured
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Chain configuration (Base Sepolia defaults)
    rpc_url: str = Field(default="https://sepolia.base.org", alias="RPC_URL")
    rpc_timeout_seconds: float = Field(default=15.0, alias="RPC_TIMEOUT_SECONDS")
    chain_id: int = Field(default=84532, alias="CHAIN_ID")
    creator_hub_address: str = Field(
        default="0xc567c6112720d8190caa4e93086cd36e2ae01d37",
        alias="CREATOR_HUB_ADDRESS",
    )
    payment_token_address: str = Field(
        default="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        alias="PAYMENT_TOKEN_ADDRESS",
    )
    payment_token_symbol: str = Field(default="USDC", alias="PAYMENT_TOKEN_SYMBOL")

    # Secrets for fetch instructions and the storage provider
    content_signing_secret: str | None = Field(default=None, alias="CONTENT_SIGNING_SECRET")
    storage_api_key: str | None = Field(default=None, alias="STORAGE_API_KEY")
    storage_upload_url: str = Field(
        default="https://node.lighthouse.storage/api/v0/add",
        alias="STORAGE_UPLOAD_URL",
    )
    storage_timeout_seconds: float = Field(default=60.0, alias="STORAGE_TIMEOUT_SECONDS")

    # x402 protocol tuning
    idempotency_ttl_seconds: int = Field(default=86_400, alias="IDEMPOTENCY_TTL_SECONDS")
    idempotency_sweep_threshold: int = Field(default=1000, alias="IDEMPOTENCY_SWEEP_THRESHOLD")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_requests: int = Field(default=10, alias="RATE_LIMIT_MAX_REQUESTS")
    fetch_instruction_ttl_seconds: int = Field(
        default=3600,
        alias="FETCH_INSTRUCTION_TTL_SECONDS",
    )
    subscription_period_days: int = Field(default=30, alias="SUBSCRIPTION_PERIOD_DAYS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Return True when running in hardened mode.

        Hardened mode suppresses verification details in client responses and
        turns missing secrets into configuration errors.
        """
        return self.environment.lower() == "production"


settings = Settings()  # type: ignore[call-arg]
