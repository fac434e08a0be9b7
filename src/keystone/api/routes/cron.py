"""Scheduler-triggered routes: /cron/sheet, /cron/gmail, /cron/nudges, /cron/brief, /cron/all."""

from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from keystone.clients.sheets_client import SheetsClient
from keystone.config import config
from keystone.errors import CredentialError, MissingCredentialError
from keystone.logging import logging_context
from keystone.models.credentials import AccessGrant
from keystone.pipeline.brief import BriefGenerator
from keystone.pipeline.classifier import ThreadClassifier
from keystone.pipeline.dispatcher import SyncDispatcher
from keystone.pipeline.ingestion import ThreadIngestionPipeline
from keystone.pipeline.nudges import NudgeGenerator
from keystone.pipeline.reconciler import SheetConfig, SheetReconciler

from ..auth import verify_cron_secret
from ..config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/cron", dependencies=[Depends(verify_cron_secret)])


def _run_id() -> str:
    return uuid4().hex[:12]


def _sheet_config() -> SheetConfig:
    settings = get_settings()
    return SheetConfig(
        spreadsheet_id=settings.GOOGLE_SHEET_ID,
        sheet_name=settings.GOOGLE_SHEET_NAME,
        header_row=settings.SHEET_HEADER_ROW,
    )


def _credential_failure(job: str, error: CredentialError) -> JSONResponse:
    logger.error(f"cron.{job}.credentials_failed", error=str(error), error_type=type(error).__name__)
    return JSONResponse(status_code=500, content={"success": False, "errors": [str(error)]})


def _ingestion(request: Request) -> ThreadIngestionPipeline:
    classifier = ThreadClassifier(request.app.state.openai, max_body_chars=config.MAX_BODY_CHARS)
    return ThreadIngestionPipeline(request.app.state.repository, classifier)


@router.post("/sheet")
async def cron_sheet(request: Request):
    """Reconcile the commitments sheet."""
    with logging_context(run_id=_run_id(), job="sheet"):
        try:
            grant: AccessGrant | None = await request.app.state.credentials.get_valid_access_token()
        except MissingCredentialError:
            grant = None
        except CredentialError as e:
            return _credential_failure("sheet", e)

        repository = request.app.state.repository
        if grant is None:
            result = await SheetReconciler(repository, None, _sheet_config()).reconcile()
        else:
            async with SheetsClient(grant.access_token, timeout=config.HTTP_TIMEOUT_SECONDS) as sheets:
                result = await SheetReconciler(repository, sheets, _sheet_config()).reconcile()
        return result.to_dict()


@router.post("/gmail")
async def cron_gmail(request: Request):
    """Ingest recent inbox threads. Fails loudly without a valid token."""
    with logging_context(run_id=_run_id(), job="mail"):
        try:
            grant = await request.app.state.credentials.get_valid_access_token()
        except CredentialError as e:
            return _credential_failure("gmail", e)

        result = await _ingestion(request).ingest(grant.access_token, grant.owner_email)
        return result.to_dict()


@router.post("/nudges")
async def cron_nudges(request: Request):
    """Generate today's nudges up to the daily cap."""
    with logging_context(run_id=_run_id(), job="nudges"):
        created = await NudgeGenerator(request.app.state.repository).generate()
        return {"created": len(created), "nudges": [n.model_dump(mode="json") for n in created]}


@router.post("/brief")
async def cron_brief(request: Request):
    """Build and store today's brief from the synced store."""
    with logging_context(run_id=_run_id(), job="brief"):
        brief = await BriefGenerator(request.app.state.repository).generate()
        return {"brief": brief.model_dump(mode="json")}


@router.post("/all")
async def cron_all(request: Request):
    """Sheet + mail concurrently, then nudges."""
    with logging_context(run_id=_run_id(), job="all"):
        try:
            grant = await request.app.state.credentials.get_valid_access_token()
        except CredentialError as e:
            return _credential_failure("all", e)

        repository = request.app.state.repository
        async with SheetsClient(grant.access_token, timeout=config.HTTP_TIMEOUT_SECONDS) as sheets:
            dispatcher = SyncDispatcher(
                reconciler=SheetReconciler(repository, sheets, _sheet_config()),
                ingestion=_ingestion(request),
                nudges=NudgeGenerator(repository),
            )
            result = await dispatcher.run(grant.access_token, grant.owner_email)
        return result.to_dict()
