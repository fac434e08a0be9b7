"""
Configuration management for the Keystone pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # OpenAI
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_CHAT_MODEL: str = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4o-mini')

    # Relational store
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Google OAuth + sources
    GOOGLE_CLIENT_ID: str = os.getenv('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET: str = os.getenv('GOOGLE_CLIENT_SECRET', '')
    GOOGLE_SHEET_ID: str = os.getenv('GOOGLE_SHEET_ID', '')
    GOOGLE_SHEET_NAME: str = os.getenv('GOOGLE_SHEET_NAME', 'Sorted')
    SHEET_HEADER_ROW: int = int(os.getenv('SHEET_HEADER_ROW', '1'))

    # Mail ingestion
    MAIL_QUERY: str = os.getenv('MAIL_QUERY', 'in:inbox newer_than:7d')
    MAIL_FETCH_CAP: int = int(os.getenv('MAIL_FETCH_CAP', '500'))
    FETCH_CONCURRENCY: int = int(os.getenv('FETCH_CONCURRENCY', '10'))
    CLASSIFY_CONCURRENCY: int = int(os.getenv('CLASSIFY_CONCURRENCY', '10'))
    MAX_BODY_CHARS: int = int(os.getenv('MAX_BODY_CHARS', '2000'))

    # Nudges
    NUDGE_DAILY_CAP: int = int(os.getenv('NUDGE_DAILY_CAP', '3'))

    # Credentials / HTTP
    TOKEN_REFRESH_BUFFER_SECONDS: int = int(os.getenv('TOKEN_REFRESH_BUFFER_SECONDS', '300'))
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv('HTTP_TIMEOUT_SECONDS', '30'))

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.OPENAI_API_KEY:
            missing.append('OPENAI_API_KEY')
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        if not cls.GOOGLE_CLIENT_ID:
            missing.append('GOOGLE_CLIENT_ID')
        if not cls.GOOGLE_CLIENT_SECRET:
            missing.append('GOOGLE_CLIENT_SECRET')
        return missing


# Singleton config instance
config = Config()
