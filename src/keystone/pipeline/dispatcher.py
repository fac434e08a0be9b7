"""
Scheduled sync dispatcher.

Runs spreadsheet reconciliation and mail ingestion concurrently using
asyncio.gather(return_exceptions=True), then generates nudges from the
refreshed store.

Fault isolation guarantee: one sync failing never stops the other, and a
nudge failure never hides the sync results.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..logging import get_logger
from ..models.items import Nudge
from .ingestion import IngestionResult, ThreadIngestionPipeline
from .nudges import NudgeGenerator
from .reconciler import ReconcileResult, SheetReconciler

logger = get_logger(__name__)


# =============================================================================
# Result Model
# =============================================================================


@dataclass
class SyncResult:
    """
    Aggregate result of one scheduled sync.

    Each slot holds either the component's result or the exception it raised.
    """

    reconcile_result: ReconcileResult | BaseException | None = None
    ingestion_result: IngestionResult | BaseException | None = None
    nudges: list[Nudge] = field(default_factory=list)

    started_at: datetime | None = None
    completed_at: datetime | None = None
    dispatch_time_ms: int | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def reconcile_success(self) -> bool:
        return isinstance(self.reconcile_result, ReconcileResult) and self.reconcile_result.success

    @property
    def ingestion_success(self) -> bool:
        return isinstance(self.ingestion_result, IngestionResult) and self.ingestion_result.success

    @property
    def overall_success(self) -> bool:
        """True when at least one sync completed."""
        return self.reconcile_success or self.ingestion_success

    def to_dict(self) -> dict[str, Any]:
        return {
            'reconcile': _result_dict(self.reconcile_result),
            'ingestion': _result_dict(self.ingestion_result),
            'nudges_created': len(self.nudges),
            'overall_success': self.overall_success,
            'dispatch_time_ms': self.dispatch_time_ms,
            'errors': self.errors,
        }


def _result_dict(outcome: Any) -> dict[str, Any] | None:
    if outcome is None or isinstance(outcome, BaseException):
        return None
    return outcome.to_dict()


# =============================================================================
# SyncDispatcher
# =============================================================================


class SyncDispatcher:
    """Runs the sheet and mail syncs side by side, then nudges."""

    def __init__(
        self,
        reconciler: SheetReconciler,
        ingestion: ThreadIngestionPipeline,
        nudges: NudgeGenerator,
    ):
        self.reconciler = reconciler
        self.ingestion = ingestion
        self.nudges = nudges

    async def run(self, access_token: str, owner_email: str) -> SyncResult:
        result = SyncResult(started_at=datetime.now())
        t0 = time.monotonic()
        logger.info('dispatcher.started')

        reconcile_outcome, ingest_outcome = await asyncio.gather(
            self.reconciler.reconcile(),
            self.ingestion.ingest(access_token, owner_email),
            return_exceptions=True,
        )

        for name, outcome in (('reconcile', reconcile_outcome), ('ingestion', ingest_outcome)):
            if isinstance(outcome, BaseException):
                logger.error(
                    f'dispatcher.{name}_failed',
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                result.errors.append(f'{name}: {type(outcome).__name__}: {outcome}')
        result.reconcile_result = reconcile_outcome
        result.ingestion_result = ingest_outcome

        try:
            result.nudges = await self.nudges.generate()
        except Exception as e:
            logger.error('dispatcher.nudges_failed', error=str(e), error_type=type(e).__name__)
            result.errors.append(f'nudges: {type(e).__name__}: {e}')

        result.completed_at = datetime.now()
        result.dispatch_time_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            'dispatcher.complete',
            overall_success=result.overall_success,
            reconcile_success=result.reconcile_success,
            ingestion_success=result.ingestion_success,
            nudges_created=len(result.nudges),
            dispatch_time_ms=result.dispatch_time_ms,
        )
        return result
