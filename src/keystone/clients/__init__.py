"""
External service clients for the Keystone pipeline.
"""

from .database_client import DatabaseClient
from .gmail_client import GmailClient
from .oauth_client import GoogleOAuthClient
from .openai_client import OpenAIClient
from .sheets_client import SheetsClient

__all__ = [
    'DatabaseClient',
    'GmailClient',
    'GoogleOAuthClient',
    'OpenAIClient',
    'SheetsClient',
]
