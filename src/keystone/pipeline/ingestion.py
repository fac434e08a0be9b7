"""
Mail thread ingestion.

Flow:
1. List candidate thread ids in the recent window (paginated, capped)
2. Fetch full thread detail with bounded concurrency, isolating failures
3. Filter mailing lists, excluded categories, and threads where the owner
   is never a direct recipient
4. Leave threads whose item the user already resolved or snoozed untouched
5. Classify the rest (bounded concurrency, heuristic fallback)
6. Upsert the thread mirror and create or refresh the canonical item

Only step 1 is fatal. Everything after it fails per thread.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from ..clients.gmail_client import GmailClient
from ..config import config
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.items import CanonicalActionItem, ItemSource
from ..models.sources import ParsedThread, SourceThreadRecord
from ..repository import KeystoneRepository
from .classifier import Classification, ThreadClassifier

logger = get_logger(__name__)

EXCLUDED_LABELS = frozenset({
    'CATEGORY_PROMOTIONS',
    'CATEGORY_FORUMS',
    'CATEGORY_UPDATES',
    'SPAM',
    'TRASH',
})


class MailSource(Protocol):
    async def list_thread_ids(self, query: str, cap: int = 500) -> list[str]: ...

    async def get_thread(self, thread_id: str) -> ParsedThread | None: ...

    async def close(self) -> None: ...


def _gmail_for(access_token: str) -> MailSource:
    return GmailClient(access_token, timeout=config.HTTP_TIMEOUT_SECONDS)


def skip_reason(thread: ParsedThread, owner_email: str) -> str | None:
    """Why a thread is not actionable, or None if it should be classified."""
    if thread.is_mailing_list:
        return 'mailing_list'
    if EXCLUDED_LABELS.intersection(thread.labels):
        return 'excluded_label'
    if not thread.addressed_to(owner_email):
        return 'not_direct_recipient'
    return None


# =============================================================================
# Result
# =============================================================================


@dataclass
class IngestionResult:
    """Counts from one ingestion run."""

    success: bool = True
    threads_fetched: int = 0
    threads_processed: int = 0
    threads_skipped: int = 0
    threads_already_resolved: int = 0
    items_created: int = 0
    items_updated: int = 0

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    errors: list[str] = field(default_factory=list)

    def fail(self, message: str) -> IngestionResult:
        self.success = False
        self.errors.append(message)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            'success': self.success,
            'threads_fetched': self.threads_fetched,
            'threads_processed': self.threads_processed,
            'threads_skipped': self.threads_skipped,
            'threads_already_resolved': self.threads_already_resolved,
            'items_created': self.items_created,
            'items_updated': self.items_updated,
            'stage_timings': self.stage_timings,
            'errors': self.errors,
        }


# =============================================================================
# ThreadIngestionPipeline
# =============================================================================


class ThreadIngestionPipeline:
    """
    Ingests recent inbox threads into canonical items.

    The mail client is built per call from the access token the caller
    passes in, so no credentials live on the pipeline.

    Usage:
        pipeline = ThreadIngestionPipeline(repository, ThreadClassifier(openai))
        result = await pipeline.ingest(access_token, owner_email)
    """

    def __init__(
        self,
        repository: KeystoneRepository,
        classifier: ThreadClassifier,
        mail_client_factory: Callable[[str], MailSource] = _gmail_for,
        query: str = config.MAIL_QUERY,
        fetch_cap: int = config.MAIL_FETCH_CAP,
        fetch_concurrency: int = config.FETCH_CONCURRENCY,
        classify_concurrency: int = config.CLASSIFY_CONCURRENCY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.classifier = classifier
        self.mail_client_factory = mail_client_factory
        self.query = query
        self.fetch_cap = fetch_cap
        self.fetch_concurrency = fetch_concurrency
        self.classify_concurrency = classify_concurrency
        self.clock = clock

    async def ingest(self, access_token: str, owner_email: str) -> IngestionResult:
        result = IngestionResult()
        if not access_token or not owner_email:
            return result.fail('Missing access token or owner email')

        with logging_context(job='mail', owner_email=owner_email):
            mail = self.mail_client_factory(access_token)
            try:
                await self._run(mail, owner_email, result)
            finally:
                await mail.close()
        return result

    async def _run(self, mail: MailSource, owner_email: str, result: IngestionResult) -> None:
        timer = PipelineTimer()
        logger.info('ingest.started', query=self.query, cap=self.fetch_cap)

        # ------------------------------------------------------------------
        # 1. Candidate ids (fatal on failure)
        # ------------------------------------------------------------------
        try:
            with timer.stage('list'):
                thread_ids = await mail.list_thread_ids(self.query, cap=self.fetch_cap)
        except Exception as e:
            logger.error('ingest.list_failed', error=str(e), error_type=type(e).__name__)
            result.fail(f'Failed to list threads: {e}')
            return

        # ------------------------------------------------------------------
        # 2. Thread detail, bounded fan-out
        # ------------------------------------------------------------------
        with timer.stage('fetch'):
            threads = await self._fetch_threads(mail, thread_ids, result)
        result.threads_fetched = len(threads)

        # ------------------------------------------------------------------
        # 3. Filter non-actionable threads
        # ------------------------------------------------------------------
        eligible: list[ParsedThread] = []
        for thread in threads:
            reason = skip_reason(thread, owner_email)
            if reason is None:
                eligible.append(thread)
            else:
                result.threads_skipped += 1
                logger.debug('ingest.thread_skipped', thread_id=thread.thread_id, reason=reason)

        # ------------------------------------------------------------------
        # 4. Never re-evaluate threads the user resolved or snoozed
        # ------------------------------------------------------------------
        try:
            existing = await self.repository.get_items_by_source_ids(
                ItemSource.MAIL, [t.thread_id for t in eligible]
            )
        except Exception as e:
            logger.error('ingest.load_items_failed', error=str(e), error_type=type(e).__name__)
            result.fail(f'Failed to load existing items: {e}')
            return

        to_classify = []
        for thread in eligible:
            item = existing.get(thread.thread_id)
            if item is not None and item.is_terminal:
                result.threads_already_resolved += 1
            else:
                to_classify.append(thread)
        result.threads_processed = len(to_classify)

        # ------------------------------------------------------------------
        # 5. Classify
        # ------------------------------------------------------------------
        with timer.stage('classify'):
            classifications = await self.classifier.classify_many(
                to_classify, owner_email, concurrency=self.classify_concurrency
            )

        # ------------------------------------------------------------------
        # 6. Persist, one thread at a time
        # ------------------------------------------------------------------
        now = self.clock()
        with timer.stage('persist'):
            for thread in to_classify:
                classification = classifications.get(thread.thread_id)
                if classification is None:
                    result.errors.append(f'Thread {thread.thread_id}: classification failed')
                    continue
                try:
                    await self._persist(
                        thread, classification, existing.get(thread.thread_id), owner_email, now, result
                    )
                except Exception as e:
                    logger.error(
                        'ingest.persist_failed',
                        thread_id=thread.thread_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    result.errors.append(f'Thread {thread.thread_id}: {e}')

        result.completed_at = datetime.now()
        result.stage_timings = timer.summary()['stages']
        logger.info(
            'ingest.complete',
            fetched=result.threads_fetched,
            processed=result.threads_processed,
            skipped=result.threads_skipped,
            created=result.items_created,
            updated=result.items_updated,
            errors=len(result.errors),
        )

    async def _fetch_threads(
        self, mail: MailSource, thread_ids: list[str], result: IngestionResult
    ) -> list[ParsedThread]:
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def _bounded(thread_id: str) -> ParsedThread | None:
            async with semaphore:
                return await mail.get_thread(thread_id)

        outcomes = await asyncio.gather(
            *(_bounded(thread_id) for thread_id in thread_ids),
            return_exceptions=True,
        )

        threads: list[ParsedThread] = []
        for thread_id, outcome in zip(thread_ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    'ingest.fetch_failed',
                    thread_id=thread_id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                result.errors.append(f'Thread {thread_id}: fetch failed: {outcome}')
            elif outcome is not None:
                threads.append(outcome)
        return threads

    async def _persist(
        self,
        thread: ParsedThread,
        classification: Classification,
        existing: CanonicalActionItem | None,
        owner_email: str,
        now: datetime,
        result: IngestionResult,
    ) -> None:
        record = SourceThreadRecord.from_thread(thread).model_copy(
            update={
                'due_from_me_type': classification.type.value if classification.type else None,
                'confidence_score': classification.confidence,
                'rationale': classification.rationale,
                'is_processed': True,
                'updated_at': now,
            }
        )
        await self.repository.upsert_thread(record)

        if classification.type is None:
            return

        inbound = thread.latest_inbound(owner_email)
        blocking_who = classification.blocking_who or (inbound.from_address if inbound else None)

        if existing is None:
            item = CanonicalActionItem(
                type=classification.type,
                source=ItemSource.MAIL,
                source_id=thread.thread_id,
                title=thread.subject,
                blocking_who=blocking_who,
                owner_email=owner_email,
                first_seen_at=inbound.received_at if inbound else now,
                last_seen_at=now,
                confidence_score=classification.confidence,
                rationale=classification.rationale,
                suggested_action=classification.suggested_action,
                created_at=now,
                updated_at=now,
            )
            await self.repository.insert_item(item)
            result.items_created += 1
            logger.debug('ingest.item_created', thread_id=thread.thread_id, type=item.type)
        else:
            await self.repository.refresh_item(
                existing.id,
                confidence_score=classification.confidence,
                rationale=classification.rationale,
                blocking_who=blocking_who,
                suggested_action=classification.suggested_action,
                last_seen_at=now,
            )
            result.items_updated += 1
