from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./portal.db",
        alias="DATABASE_URL"
    )

    # Security
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60 * 12, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Password policy
    min_password_length: int = 8

    # Cookie settings
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")  # False for localhost
    cookie_samesite: str = "lax"

    # CORS - Frontend URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Base URL used to build checkout success/cancel redirects
    public_base_url: str = Field(default="http://localhost:3000", alias="PUBLIC_BASE_URL")

    # ==============================================
    # Stripe (Server-Side Only!)
    # ==============================================
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")
    stripe_api_version: str = Field(default="2024-06-20", alias="STRIPE_API_VERSION")
    stripe_currency: str = Field(default="usd", alias="STRIPE_CURRENCY")

    # Flat booking deposit, in cents. Must be configured (>= minimum charge).
    stripe_booking_fee_cents: int = Field(default=0, alias="STRIPE_BOOKING_FEE_CENTS")

    # Final fee rate per staff member per day, in cents ($200 default)
    stripe_final_rate_cents: int = Field(default=20000, alias="STRIPE_FINAL_RATE_CENTS")

    # Smallest amount Stripe accepts for USD charges
    stripe_min_charge_cents: int = Field(default=50, alias="STRIPE_MIN_CHARGE_CENTS")

    # Hosted checkout lifetime (Stripe allows 30 minutes to 24 hours)
    checkout_session_expiry_minutes: int = Field(default=60, alias="CHECKOUT_SESSION_EXPIRY_MINUTES")

    # Shared secret for server-to-server admin calls (final charge)
    internal_admin_api_key: str = Field(default="", alias="INTERNAL_ADMIN_API_KEY")

    # First admin account, created at startup when no admin exists
    bootstrap_admin_email: str = Field(default="", alias="BOOTSTRAP_ADMIN_EMAIL")
    bootstrap_admin_password: str = Field(default="", alias="BOOTSTRAP_ADMIN_PASSWORD")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Rate limiter storage (in-memory when unset)
    redis_url: str = Field(default="", alias="REDIS_URL")
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        if not self.allowed_origins:
            return ["http://localhost:3000"]

        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins if origins else ["http://localhost:3000"]

    def redirect_base_url(self, origin: str = None) -> str:
        """
        Pick the base URL for checkout redirects.
        The request Origin is only trusted when it is an allowed CORS origin.
        """
        if origin:
            origin = origin.strip().rstrip("/")
            if origin in self.cors_origins:
                return origin
        return self.public_base_url.rstrip("/")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
