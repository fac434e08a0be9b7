"""FastAPI application for the Keystone service."""

from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI

from keystone.clients.database_client import DatabaseClient
from keystone.clients.oauth_client import GoogleOAuthClient
from keystone.clients.openai_client import OpenAIClient
from keystone.config import config
from keystone.credentials import CredentialRefreshGuard
from keystone.logging import configure_logging
from keystone.repository import KeystoneRepository

from .config import get_settings
from .routes.cron import router as cron_router
from .routes.health import router as health_router
from .routes.items import router as items_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize persistent clients at startup, clean up at shutdown."""
    settings = get_settings()
    configure_logging(json_output=settings.LOG_JSON)

    logger.info("lifespan.startup")

    db = DatabaseClient(settings.DATABASE_URL, ssl_required=settings.DATABASE_SSL)
    await db.connect()
    await db.create_schema()
    repository = KeystoneRepository(db)

    # Without a key the classifier runs the heuristic only
    openai: OpenAIClient | None = None
    if settings.OPENAI_API_KEY:
        openai = OpenAIClient(api_key=settings.OPENAI_API_KEY)
    else:
        logger.warning("lifespan.openai_disabled")

    oauth = GoogleOAuthClient(
        settings.GOOGLE_CLIENT_ID,
        settings.GOOGLE_CLIENT_SECRET,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
    # One guard per process so concurrent cron calls share a refresh
    credentials = CredentialRefreshGuard(
        repository,
        oauth,
        refresh_buffer=timedelta(seconds=config.TOKEN_REFRESH_BUFFER_SECONDS),
    )

    app.state.db = db
    app.state.repository = repository
    app.state.openai = openai
    app.state.oauth = oauth
    app.state.credentials = credentials

    logger.info("lifespan.ready")
    yield

    logger.info("lifespan.shutdown")
    await oauth.close()
    if openai is not None:
        await openai.close()
    await db.close()


app = FastAPI(
    title="keystone",
    description="Due-From-Me tracker: sheet reconciliation, inbox classification, nudges",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(cron_router)
app.include_router(items_router)
