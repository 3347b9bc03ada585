from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Castaway League"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/castaway_league"

    # JWT (tokens are issued by the auth service, we only verify them)
    secret_key: str = "change-me"
    algorithm: str = "HS256"

    # Draft defaults, used when the league collaborator doesn't supply them
    default_roster_size: int = 4
    default_draft_order: str = "snake"  # sequential | snake | random

    # Wagers
    max_wager_cap: int = 100  # per-question ceiling when the question sets none

    # Notifications (empty url = log only)
    notification_webhook_url: str = ""
    notification_timeout_seconds: float = 5.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
