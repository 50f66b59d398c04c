from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False

    # Database
    DATABASE_URL: str = "postgresql://postgres@localhost:5432/parts"

    # Supabase auth (tokens are issued externally, we only verify them)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_JWKS_URL: str | None = None

    # OpenAI moderation classifier
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = 0.3
    OPENAI_MAX_TOKENS: int = 400

    # =================================================================
    # MODERATION
    # =================================================================
    MODERATION_TIMEOUT_SECONDS: float = 12.0
    MODERATION_CONFIDENCE_THRESHOLD: float = 0.7
    MODERATE_ALL_SUBMISSIONS: bool = False

    # =================================================================
    # ANTI-SPAM WINDOWS
    # =================================================================
    SPAM_DUPLICATE_WINDOW_HOURS: int = 24
    SPAM_HOURLY_PHONE_LIMIT: int = 3
    SPAM_DAILY_USER_LIMIT: int = 10
    SPAM_KEYWORDS: list[str] = ["test", "spam", "fake", "bot"]
    EXPENSIVE_PART_KEYWORDS: list[str] = ["engine", "transmission", "ecu", "airbag"]

    # =================================================================
    # OFFERS
    # =================================================================
    OFFER_TTL_DAYS: int = 14
    AUTO_REJECT_SIBLINGS_ON_ACCEPT: bool = False
    UNLOCK_CONTACT_ON_ACCEPT: bool = True

    # Notifications
    NOTIFICATION_CHANNEL: str = "whatsapp"
    CURRENCY_CODE: str = "GHS"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # derive sensible defaults if not provided
    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # More conservative for local development
            config.update(
                {
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
