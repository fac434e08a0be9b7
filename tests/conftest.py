"""
Pytest configuration and shared fixtures.

Key fixtures:
- db / repository: in-memory SQLite store (aiosqlite) with the Keystone schema
- file_repository: file-backed SQLite store for concurrent syncs
- make_message / make_thread: ParsedThread builders
- openai_api_key: OpenAI API key from environment (live tests skip without it)

Everything except the live OpenAI tests runs without network access.
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from keystone.clients.database_client import DatabaseClient
from keystone.models.sources import ParsedMessage, ParsedThread
from keystone.repository import KeystoneRepository

OWNER_EMAIL = 'me@keystone.test'
NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def openai_api_key() -> str:
    """Get OpenAI API key from environment."""
    key = os.getenv('OPENAI_API_KEY')
    if not key:
        pytest.skip('OPENAI_API_KEY not set')
    return key


@pytest.fixture
def owner_email() -> str:
    return OWNER_EMAIL


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' for clock injection."""
    return NOW


@pytest_asyncio.fixture
async def db():
    """Connected in-memory database with all tables created."""
    client = DatabaseClient('sqlite+aiosqlite://')
    await client.connect()
    await client.create_schema()
    yield client
    await client.close()


@pytest.fixture
def repository(db) -> KeystoneRepository:
    return KeystoneRepository(db)


@pytest_asyncio.fixture
async def file_repository(tmp_path):
    """File-backed store with a real connection pool, for tests that run syncs concurrently."""
    client = DatabaseClient(f"sqlite+aiosqlite:///{tmp_path / 'keystone.db'}")
    await client.connect()
    await client.create_schema()
    yield KeystoneRepository(client)
    await client.close()


@pytest.fixture
def make_message():
    """Factory for ParsedMessage with sensible defaults."""

    def _make(
        message_id: str = 'm1',
        sender: str = 'alice@example.com',
        to: list[str] | None = None,
        body: str = 'Hi there',
        received_at: datetime | None = None,
        **overrides,
    ) -> ParsedMessage:
        return ParsedMessage(
            id=message_id,
            from_address=sender,
            to=to if to is not None else [OWNER_EMAIL],
            body=body,
            snippet=body[:50],
            received_at=received_at or NOW - timedelta(days=1),
            **overrides,
        )

    return _make


@pytest.fixture
def make_thread(make_message):
    """Factory for a ParsedThread; pass messages or a single body."""

    def _make(
        thread_id: str = 't1',
        subject: str = 'Quick question',
        body: str = 'Hi there',
        messages: list[ParsedMessage] | None = None,
        labels: list[str] | None = None,
        is_mailing_list: bool = False,
    ) -> ParsedThread:
        return ParsedThread(
            thread_id=thread_id,
            subject=subject,
            messages=messages or [make_message(message_id=f'{thread_id}-m1', body=body)],
            labels=labels if labels is not None else ['INBOX'],
            is_mailing_list=is_mailing_list,
        )

    return _make
