"""
Relational store client for the Keystone pipeline.

Owns the SQLAlchemy 2.0 async engine. PostgreSQL (asyncpg) in production,
SQLite (aiosqlite) for tests and local runs. Row-level reads and writes live
in keystone.repository; this module only manages the engine lifecycle.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..errors import ConfigurationError
from ..schema import metadata

logger = structlog.get_logger(__name__)


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Hosted Postgres URLs often carry ``channel_binding`` and ``sslmode``,
    which are libpq parameters. SSL is passed through ``connect_args`` instead.
    """
    strip_params = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in strip_params}
    return urlunparse(parsed._replace(query=urlencode(filtered, doseq=True)))


def _normalize_url(url: str) -> str:
    """Force the async driver for the URL's dialect."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://'):
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if url.startswith('sqlite://'):
        return url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
    return url


def _is_memory_sqlite(url: str) -> bool:
    database = url.split('://', 1)[1].lstrip('/')
    return database in ('', ':memory:') or 'mode=memory' in database


class DatabaseClient:
    """
    Async engine holder.

    Usage:
        db = DatabaseClient(settings.DATABASE_URL)
        await db.connect()
        await db.create_schema()
        repository = KeystoneRepository(db)
    """

    def __init__(self, database_url: str | None = None, ssl_required: bool = False):
        """
        Args:
            database_url: postgres://, postgresql://, or sqlite:// URL; the
                          driver prefix is normalised to the async driver.
            ssl_required: Pass ssl='require' to asyncpg.
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self._ssl_required = ssl_required

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ConfigurationError('database_url is required (DATABASE_URL)')

        url = _normalize_url(_sanitize_url(url))

        if url.startswith('sqlite') and _is_memory_sqlite(url):
            # Single shared connection so in-memory databases survive across sessions
            self._engine = create_async_engine(url, poolclass=StaticPool)
        elif url.startswith('sqlite'):
            self._engine = create_async_engine(url)
        else:
            connect_args: dict[str, object] = {'prepared_statement_cache_size': 0}
            if self._ssl_required:
                connect_args['ssl'] = 'require'
            self._engine = create_async_engine(
                url,
                pool_size=5,
                max_overflow=5,
                pool_pre_ping=True,
                pool_timeout=30,
                connect_args=connect_args,
            )

        logger.info('database_client.connected', dialect=self._engine.dialect.name)

    async def close(self) -> None:
        """Dispose of the engine and release all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('database_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('DatabaseClient not connected, call connect() first')
        return self._engine

    async def create_schema(self) -> None:
        """Create all Keystone tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info('database_client.schema_ready')

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('database_client.connectivity_check_failed')
            return False
