"""API configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://dispatch:dispatch@db:5432/dispatch"
    DB_ECHO: bool = False
    DB_CREATE_ALL: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    # Outbound hook for notification / inventory collaborators
    DISPATCH_WEBHOOK_URL: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # 0 disables position sampling into the delivery timeline
    TIMELINE_POSITION_SAMPLE_SECONDS: int = 0
    DELIVERY_PAGE_SIZE_MAX: int = 100

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
