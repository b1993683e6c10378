from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "rewards_ledger"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: str = "5432"
    # full SQLAlchemy URL, wins over POSTGRES_* (sqlite+aiosqlite for tests)
    DB_URL: Optional[str] = None
    DB_MAX_RETRIES: int = 3

    ADMIN_TOKEN: str = "change-me-admin"
    SERVICE_TOKEN: str = "change-me-service"
    USER_TOKEN_BEARER: str = "change-me-user"

    DEBUG_MODE: bool = False
    LOG_DIR: str = "logs"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: str = "6379"
    REDIS_DB: int = 0
    CACHE_TTL_SECONDS: int = 60

    # points -> credits: how many points buy one credit
    EXCHANGE_RATE: int = 100
    CHECKIN_TIMEZONE: str = "UTC"
    CHECKIN_BASE_POINTS: int = 10

    REFERRAL_PENDING_TTL_DAYS: int = 30
    REFERRAL_CYCLE_SCAN_HOPS: int = 50
    DEFAULT_CAMPAIGN_NAME: str = "Default referral campaign"
    DEFAULT_INVITER_REWARD: int = 10
    DEFAULT_INVITEE_REWARD: int = 5
    DEFAULT_REQUIREMENT_TYPE: str = "verified_email"
    DEFAULT_MAX_INVITES_PER_USER: Optional[int] = 3

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


config = AppConfig()
