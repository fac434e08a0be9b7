"""
Spreadsheet reconciliation.

Diffs the commitments sheet against stored SourceRowRecords:
1. Fetch data rows, owner directory and existing records
2. Match each row: by row number first, then by fingerprint among legacy
   records that predate row numbering
3. Insert new rows, touch unchanged ones, update changed ones in place
4. Count (and flag) stored rows not seen this cycle and not done

Each row write is independent, so a failure part-way leaves the store
consistent and a retry converges.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from pydantic import BaseModel, Field

from ..config import config
from ..logging import PipelineTimer, get_logger
from ..models.items import ActionStatus
from ..models.sources import OwnerDirectoryEntry, SheetRow, SourceRowRecord
from ..normalize import fingerprint, normalize_status, parse_due_date
from ..repository import KeystoneRepository

logger = get_logger(__name__)


class SheetValuesSource(Protocol):
    async def read_values(self, spreadsheet_id: str, cell_range: str) -> list[list[str]]: ...


# =============================================================================
# Sheet configuration
# =============================================================================


class SheetColumnMapping(BaseModel):
    """Zero-based column indexes of the mapped cells."""

    commitment: int = 1
    due_date: int = 2
    owner: int = 4
    status: int = 5
    comments: int = 6


class SheetConfig(BaseModel):
    spreadsheet_id: str = ''
    sheet_name: str = 'Sorted'
    header_row: int = Field(default=1, ge=0)
    columns: SheetColumnMapping = Field(default_factory=SheetColumnMapping)

    @property
    def read_range(self) -> str:
        return f'{self.sheet_name}!A{self.header_row + 1}:Z'

    @classmethod
    def from_config(cls) -> SheetConfig:
        return cls(
            spreadsheet_id=config.GOOGLE_SHEET_ID,
            sheet_name=config.GOOGLE_SHEET_NAME,
            header_row=config.SHEET_HEADER_ROW,
        )


def _cell(cells: list[Any], index: int) -> str | None:
    if index >= len(cells) or cells[index] is None:
        return None
    value = str(cells[index]).strip()
    return value or None


def parse_sheet_rows(values: list[list[Any]], sheet_config: SheetConfig) -> list[SheetRow]:
    """Map raw values (starting below the header) to SheetRows, skipping blank commitments."""
    columns = sheet_config.columns
    rows: list[SheetRow] = []
    for offset, cells in enumerate(values):
        commitment = _cell(cells, columns.commitment)
        if commitment is None:
            continue
        rows.append(
            SheetRow(
                row_number=sheet_config.header_row + 1 + offset,
                commitment=commitment,
                owner_label=_cell(cells, columns.owner),
                due_date_raw=_cell(cells, columns.due_date),
                status_raw=_cell(cells, columns.status),
                comments=_cell(cells, columns.comments),
            )
        )
    return rows


# =============================================================================
# Result
# =============================================================================


@dataclass
class ReconcileResult:
    """Counts from one reconciliation run."""

    success: bool = True
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    disappeared: int = 0
    rows_fetched: int = 0

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    errors: list[str] = field(default_factory=list)

    def fail(self, message: str) -> ReconcileResult:
        self.success = False
        self.errors.append(message)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            'success': self.success,
            'added': self.added,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'disappeared': self.disappeared,
            'rows_fetched': self.rows_fetched,
            'stage_timings': self.stage_timings,
            'errors': self.errors,
        }


# =============================================================================
# SheetReconciler
# =============================================================================


class SheetReconciler:
    """
    Reconciles the commitments sheet into source_rows.

    Usage:
        reconciler = SheetReconciler(repository, SheetsClient(token), SheetConfig.from_config())
        result = await reconciler.reconcile()
    """

    def __init__(
        self,
        repository: KeystoneRepository,
        sheets_client: SheetValuesSource | None,
        sheet_config: SheetConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            repository: Store access
            sheets_client: Values source; None means no credentials are configured
            sheet_config: Spreadsheet id, sheet name, header row, column mapping
            clock: Time source
        """
        self.repository = repository
        self.sheets = sheets_client
        self.sheet_config = sheet_config
        self.clock = clock

    async def reconcile(self) -> ReconcileResult:
        result = ReconcileResult()
        timer = PipelineTimer()

        if self.sheets is None:
            return result.fail('No Google Sheets credentials configured')
        if not self.sheet_config.spreadsheet_id:
            return result.fail('No spreadsheet id configured (GOOGLE_SHEET_ID)')

        logger.info('reconcile.started', range=self.sheet_config.read_range)

        try:
            with timer.stage('fetch'):
                values = await self.sheets.read_values(
                    self.sheet_config.spreadsheet_id, self.sheet_config.read_range
                )
                existing = await self.repository.list_source_rows()
                directory = await self.repository.list_owner_directory()
        except Exception as e:
            logger.error('reconcile.fetch_failed', error=str(e), error_type=type(e).__name__)
            return result.fail(f'Failed to fetch spreadsheet: {e}')

        rows = parse_sheet_rows(values, self.sheet_config)
        result.rows_fetched = len(rows)

        by_row_number = {r.row_number: r for r in existing if r.row_number is not None}
        legacy_by_fingerprint: dict[str, SourceRowRecord] = {}
        for record in existing:
            if record.row_number is None:
                legacy_by_fingerprint.setdefault(record.fingerprint, record)

        owner_lookup = _owner_lookup(directory)
        matched: set[UUID] = set()
        now = self.clock()

        with timer.stage('apply'):
            for row in rows:
                row_fingerprint = fingerprint(row.mapped_cells())
                record = by_row_number.get(row.row_number)
                if record is None:
                    candidate = legacy_by_fingerprint.get(row_fingerprint)
                    if candidate is not None and candidate.id not in matched:
                        record = candidate
                if record is not None:
                    matched.add(record.id)

                try:
                    if record is None:
                        await self.repository.insert_source_row(
                            _build_record(row, row_fingerprint, owner_lookup, now)
                        )
                        result.added += 1
                    elif record.fingerprint == row_fingerprint and record.row_number == row.row_number:
                        await self.repository.touch_source_row(record.id, now)
                        result.unchanged += 1
                    else:
                        await self.repository.update_source_row(
                            _build_record(row, row_fingerprint, owner_lookup, now, existing=record)
                        )
                        result.updated += 1
                except Exception as e:
                    logger.error(
                        'reconcile.row_failed',
                        row_number=row.row_number,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    result.errors.append(f'Row {row.row_number}: {e}')

        gone = [
            record
            for record in existing
            if record.id not in matched and ActionStatus(record.status) != ActionStatus.DONE
        ]
        result.disappeared = len(gone)
        if gone:
            try:
                await self.repository.flag_source_rows_disappeared([r.id for r in gone], now)
            except Exception as e:
                logger.error('reconcile.flag_disappeared_failed', error=str(e))
                result.errors.append(f'Failed to flag disappeared rows: {e}')

        result.completed_at = datetime.now()
        result.stage_timings = timer.summary()['stages']

        logger.info(
            'reconcile.complete',
            added=result.added,
            updated=result.updated,
            unchanged=result.unchanged,
            disappeared=result.disappeared,
            errors=len(result.errors),
        )
        return result


def _owner_lookup(directory: list[OwnerDirectoryEntry]) -> dict[str, str]:
    return {entry.display_name.strip().lower(): entry.email for entry in directory}


def _resolve_owner(label: str | None, owner_lookup: dict[str, str]) -> tuple[str | None, bool]:
    """Return (owner_email, needs_owner_mapping) for a sheet owner label."""
    if label is None:
        return None, False
    email = owner_lookup.get(label.lower())
    if email is None and '@' in label:
        email = label
    return email, email is None


def _build_record(
    row: SheetRow,
    row_fingerprint: str,
    owner_lookup: dict[str, str],
    now: datetime,
    existing: SourceRowRecord | None = None,
) -> SourceRowRecord:
    status = normalize_status(row.status_raw)
    owner_email, needs_mapping = _resolve_owner(row.owner_label, owner_lookup)

    values: dict[str, Any] = {
        'commitment': row.commitment,
        'owner_label': row.owner_label,
        'owner_email': owner_email,
        'needs_owner_mapping': needs_mapping,
        'due_date': parse_due_date(row.due_date_raw),
        'status': status.status.value,
        'raw_status': row.status_raw,
        'needs_review': status.needs_review,
        'comments': row.comments,
        'row_number': row.row_number,
        'fingerprint': row_fingerprint,
        'last_seen_at': now,
        'last_synced_at': now,
        'disappeared_at': None,
    }
    if existing is not None:
        return existing.model_copy(update=values)
    return SourceRowRecord(first_seen_at=now, **values)
