"""Application configuration with environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Session token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 24

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Frontend (verification links)
    FRONTEND_URL: str = "http://localhost:5173"

    # Chat attachments
    UPLOAD_DIR: str = "uploads"
    MAX_ATTACHMENT_BYTES: int = 5 * 1024 * 1024

    # Accounts
    EMAIL_VERIFICATION_EXPIRES_MINUTES: int = 60
    AUTH_DB_TIMEOUT_SECONDS: float = 5.0

    # Outbound email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "SwasthyaConnect <no-reply@swasthyaconnect.in>"

    # Error tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 10
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def email_enabled(self) -> bool:
        return bool(self.RESEND_API_KEY)


@lru_cache
def get_settings() -> Settings:
    """Build the settings object once per process.

    Also used as a FastAPI dependency so tests can override it.
    """
    return Settings()


settings = get_settings()
