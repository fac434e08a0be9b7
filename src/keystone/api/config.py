"""Configuration for the Keystone FastAPI service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Store
    DATABASE_URL: str
    DATABASE_SSL: bool = False

    # OpenAI (optional: without a key the heuristic classifier is used)
    OPENAI_API_KEY: str = ""

    # Google
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_SHEET_ID: str = ""
    GOOGLE_SHEET_NAME: str = "Sorted"
    SHEET_HEADER_ROW: int = 1

    # Auth (an empty secret rejects every request)
    CRON_SECRET: str = ""
    APP_API_KEY: str = ""

    LOG_JSON: bool = True


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
