"""
Repository for Keystone store operations.

Every mutation is a single-row select-then-insert-or-update keyed by a
unique identifier (item id, (source, source_id), thread_id, row id). There
is no cross-row transaction; repeated runs converge on the same state.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import and_, func, insert, or_, select, update

from .clients.database_client import DatabaseClient
from .errors import StoreError
from .logging import get_logger
from .models.brief import DailyBrief
from .models.credentials import StoredCredential
from .models.items import (
    ActionStatus,
    ActiveNudge,
    CanonicalActionItem,
    ItemSource,
    Nudge,
    TERMINAL_STATUSES,
    UserAction,
)
from .models.sources import OwnerDirectoryEntry, SourceRowRecord, SourceThreadRecord
from .schema import (
    app_settings_table,
    daily_briefs_table,
    items_table,
    nudges_table,
    owner_directory_table,
    rows_table,
    threads_table,
    user_actions_table,
)

logger = get_logger(__name__)

CREDENTIAL_KEY = 'oauth_tokens'

_TERMINAL_VALUES = [status.value for status in TERMINAL_STATUSES]


def _values(model: Any, *exclude: str) -> dict[str, Any]:
    return model.model_dump(exclude=set(exclude))


class KeystoneRepository:
    """
    Row-level reads and writes over the Keystone tables.

    Usage:
        repository = KeystoneRepository(database_client)
        item = await repository.get_item_by_source(ItemSource.MAIL, thread_id)
    """

    def __init__(self, db: DatabaseClient):
        self.db = db

    # =========================================================================
    # Canonical items
    # =========================================================================

    async def get_item(self, item_id: UUID) -> CanonicalActionItem | None:
        async with self.db.engine.connect() as conn:
            row = (
                await conn.execute(select(items_table).where(items_table.c.id == item_id))
            ).first()
        return CanonicalActionItem.model_validate(dict(row._mapping)) if row else None

    async def get_item_by_source(
        self, source: ItemSource | str, source_id: str
    ) -> CanonicalActionItem | None:
        items = await self.get_items_by_source_ids(source, [source_id])
        return items.get(source_id)

    async def get_items_by_source_ids(
        self, source: ItemSource | str, source_ids: Iterable[str]
    ) -> dict[str, CanonicalActionItem]:
        """Existing items for the given source ids, keyed by source_id."""
        ids = list(source_ids)
        if not ids:
            return {}
        stmt = select(items_table).where(
            items_table.c.source == ItemSource(source).value,
            items_table.c.source_id.in_(ids),
        )
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return {
            row.source_id: CanonicalActionItem.model_validate(dict(row._mapping)) for row in rows
        }

    async def list_items(
        self,
        status: ActionStatus | str | None = None,
        owner_email: str | None = None,
        source: ItemSource | str | None = None,
        limit: int = 100,
    ) -> list[CanonicalActionItem]:
        """Read accessor for the presentation layer, oldest obligation first."""
        stmt = select(items_table)
        if status is not None:
            stmt = stmt.where(items_table.c.status == ActionStatus(status).value)
        if owner_email is not None:
            stmt = stmt.where(func.lower(items_table.c.owner_email) == owner_email.lower())
        if source is not None:
            stmt = stmt.where(items_table.c.source == ItemSource(source).value)
        stmt = stmt.order_by(items_table.c.first_seen_at).limit(limit)

        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [CanonicalActionItem.model_validate(dict(row._mapping)) for row in rows]

    async def list_unresolved_items(self) -> list[CanonicalActionItem]:
        """Items not in a terminal status."""
        stmt = select(items_table).where(items_table.c.status.not_in(_TERMINAL_VALUES))
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [CanonicalActionItem.model_validate(dict(row._mapping)) for row in rows]

    async def insert_item(self, item: CanonicalActionItem) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(insert(items_table).values(**_values(item)))
        logger.debug('repository.item_inserted', item_id=str(item.id), source_id=item.source_id)

    async def refresh_item(
        self,
        item_id: UUID,
        *,
        confidence_score: int | None,
        rationale: str | None,
        blocking_who: str | None,
        suggested_action: str | None,
        last_seen_at: datetime,
    ) -> None:
        """Refresh classification fields. Status is deliberately not a parameter."""
        stmt = (
            update(items_table)
            .where(items_table.c.id == item_id)
            .values(
                confidence_score=confidence_score,
                rationale=rationale,
                blocking_who=blocking_who,
                suggested_action=suggested_action,
                last_seen_at=last_seen_at,
                updated_at=last_seen_at,
            )
        )
        async with self.db.engine.begin() as conn:
            await conn.execute(stmt)

    async def set_item_status(
        self,
        item_id: UUID,
        status: ActionStatus | str,
        changed_at: datetime,
        snoozed_until: datetime | None = None,
    ) -> None:
        """Status transition. Only called from explicit user actions."""
        stmt = (
            update(items_table)
            .where(items_table.c.id == item_id)
            .values(
                status=ActionStatus(status).value,
                status_changed_at=changed_at,
                snoozed_until=snoozed_until,
                updated_at=changed_at,
            )
        )
        async with self.db.engine.begin() as conn:
            await conn.execute(stmt)

    # =========================================================================
    # Mail thread mirror
    # =========================================================================

    async def get_thread(self, thread_id: str) -> SourceThreadRecord | None:
        stmt = select(threads_table).where(threads_table.c.thread_id == thread_id)
        async with self.db.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return SourceThreadRecord.model_validate(dict(row._mapping)) if row else None

    async def upsert_thread(self, record: SourceThreadRecord) -> bool:
        """
        Insert a new thread or update the existing one in place.

        Returns:
            True if a row was inserted
        """
        async with self.db.engine.begin() as conn:
            existing = (
                await conn.execute(
                    select(threads_table.c.id).where(threads_table.c.thread_id == record.thread_id)
                )
            ).first()
            if existing is None:
                await conn.execute(insert(threads_table).values(**_values(record)))
                return True
            await conn.execute(
                update(threads_table)
                .where(threads_table.c.id == existing.id)
                .values(**_values(record, 'id', 'thread_id', 'created_at'))
            )
            return False

    # =========================================================================
    # Spreadsheet row mirror
    # =========================================================================

    async def list_source_rows(self) -> list[SourceRowRecord]:
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(select(rows_table))).all()
        return [SourceRowRecord.model_validate(dict(row._mapping)) for row in rows]

    async def insert_source_row(self, record: SourceRowRecord) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(insert(rows_table).values(**_values(record)))

    async def update_source_row(self, record: SourceRowRecord) -> None:
        """Overwrite a row's content in place, keeping id and first_seen_at."""
        async with self.db.engine.begin() as conn:
            await conn.execute(
                update(rows_table)
                .where(rows_table.c.id == record.id)
                .values(**_values(record, 'id', 'first_seen_at'))
            )

    async def touch_source_row(self, row_id: UUID, seen_at: datetime) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(
                update(rows_table)
                .where(rows_table.c.id == row_id)
                .values(last_seen_at=seen_at, last_synced_at=seen_at, disappeared_at=None)
            )

    async def flag_source_rows_disappeared(self, row_ids: Iterable[UUID], at: datetime) -> None:
        """Stamp disappeared_at on rows not seen this cycle. Never deletes."""
        ids = list(row_ids)
        if not ids:
            return
        async with self.db.engine.begin() as conn:
            await conn.execute(
                update(rows_table)
                .where(rows_table.c.id.in_(ids), rows_table.c.disappeared_at.is_(None))
                .values(disappeared_at=at)
            )

    async def list_rows(
        self,
        status: ActionStatus | str | None = None,
        owner_email: str | None = None,
        needs_owner_mapping: bool | None = None,
        is_overdue: bool | None = None,
        disappeared: bool | None = None,
        now: datetime | None = None,
    ) -> list[SourceRowRecord]:
        """Read accessor for spreadsheet rows, earliest due date first."""
        current = now or datetime.now()
        stmt = select(rows_table)
        if status is not None:
            stmt = stmt.where(rows_table.c.status == ActionStatus(status).value)
        if owner_email is not None:
            stmt = stmt.where(func.lower(rows_table.c.owner_email) == owner_email.lower())
        if needs_owner_mapping is not None:
            stmt = stmt.where(rows_table.c.needs_owner_mapping == needs_owner_mapping)
        if is_overdue is True:
            stmt = stmt.where(rows_table.c.due_date < current)
        elif is_overdue is False:
            stmt = stmt.where(or_(rows_table.c.due_date.is_(None), rows_table.c.due_date >= current))
        if disappeared is True:
            stmt = stmt.where(rows_table.c.disappeared_at.is_not(None))
        elif disappeared is False:
            stmt = stmt.where(rows_table.c.disappeared_at.is_(None))
        stmt = stmt.order_by(rows_table.c.due_date, rows_table.c.row_number)

        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [SourceRowRecord.model_validate(dict(row._mapping)) for row in rows]

    async def list_waiting_on(self, owner_email: str) -> list[SourceRowRecord]:
        """Open rows owned by someone other than the account owner."""
        stmt = (
            select(rows_table)
            .where(
                and_(
                    rows_table.c.owner_email.is_not(None),
                    func.lower(rows_table.c.owner_email) != owner_email.lower(),
                    rows_table.c.status != ActionStatus.DONE.value,
                )
            )
            .order_by(rows_table.c.due_date)
        )
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [SourceRowRecord.model_validate(dict(row._mapping)) for row in rows]

    # =========================================================================
    # Owner directory
    # =========================================================================

    async def list_owner_directory(self) -> list[OwnerDirectoryEntry]:
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(select(owner_directory_table))).all()
        return [OwnerDirectoryEntry.model_validate(dict(row._mapping)) for row in rows]

    async def add_owner_entry(self, entry: OwnerDirectoryEntry) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(insert(owner_directory_table).values(**_values(entry)))

    # =========================================================================
    # Nudges
    # =========================================================================

    async def list_nudges_sent_since(self, since: datetime) -> list[Nudge]:
        stmt = select(nudges_table).where(nudges_table.c.sent_at >= since)
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [Nudge.model_validate(dict(row._mapping)) for row in rows]

    async def insert_nudge(self, nudge: Nudge) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(insert(nudges_table).values(**_values(nudge)))

    async def dismiss_nudge(self, nudge_id: UUID, at: datetime) -> bool:
        """Set dismissed_at. Returns False if the nudge does not exist."""
        async with self.db.engine.begin() as conn:
            result = await conn.execute(
                update(nudges_table).where(nudges_table.c.id == nudge_id).values(dismissed_at=at)
            )
        return result.rowcount > 0

    async def list_active_nudges(self, since: datetime) -> list[ActiveNudge]:
        """Nudges created since `since` and not dismissed, with item titles."""
        stmt = (
            select(nudges_table, items_table.c.title.label('item_title'))
            .join(items_table, items_table.c.id == nudges_table.c.item_id)
            .where(nudges_table.c.created_at >= since, nudges_table.c.dismissed_at.is_(None))
            .order_by(nudges_table.c.created_at)
        )
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [ActiveNudge.model_validate(dict(row._mapping)) for row in rows]

    # =========================================================================
    # User action log
    # =========================================================================

    async def append_user_action(self, action: UserAction) -> None:
        async with self.db.engine.begin() as conn:
            await conn.execute(insert(user_actions_table).values(**_values(action)))

    async def list_user_actions(
        self, item_id: UUID | None = None, limit: int = 50
    ) -> list[UserAction]:
        stmt = select(user_actions_table)
        if item_id is not None:
            stmt = stmt.where(user_actions_table.c.item_id == item_id)
        stmt = stmt.order_by(user_actions_table.c.created_at.desc()).limit(limit)
        async with self.db.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [UserAction.model_validate(dict(row._mapping)) for row in rows]

    # =========================================================================
    # Daily briefs
    # =========================================================================

    async def insert_brief(self, brief: DailyBrief) -> None:
        content = brief.model_dump(mode='json', exclude={'id', 'generated_at'})
        async with self.db.engine.begin() as conn:
            await conn.execute(
                insert(daily_briefs_table).values(
                    id=brief.id,
                    generated_at=brief.generated_at,
                    content=content,
                    created_at=brief.generated_at,
                )
            )

    async def get_latest_brief(self) -> DailyBrief | None:
        stmt = (
            select(daily_briefs_table)
            .order_by(daily_briefs_table.c.generated_at.desc())
            .limit(1)
        )
        async with self.db.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        if row is None:
            return None
        return DailyBrief.model_validate(
            {'id': row.id, 'generated_at': row.generated_at, **row.content}
        )

    # =========================================================================
    # Stored credential
    # =========================================================================

    async def get_credential(self) -> StoredCredential | None:
        stmt = select(app_settings_table.c.value).where(app_settings_table.c.key == CREDENTIAL_KEY)
        async with self.db.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        if row is None:
            return None
        try:
            return StoredCredential.model_validate(row.value)
        except ValidationError as e:
            raise StoreError(
                'Stored credential is malformed', context={'key': CREDENTIAL_KEY}
            ) from e

    async def save_credential(self, credential: StoredCredential) -> None:
        value = credential.model_dump(mode='json')
        now = datetime.now()
        async with self.db.engine.begin() as conn:
            existing = (
                await conn.execute(
                    select(app_settings_table.c.key).where(app_settings_table.c.key == CREDENTIAL_KEY)
                )
            ).first()
            if existing is None:
                await conn.execute(
                    insert(app_settings_table).values(key=CREDENTIAL_KEY, value=value, updated_at=now)
                )
            else:
                await conn.execute(
                    update(app_settings_table)
                    .where(app_settings_table.c.key == CREDENTIAL_KEY)
                    .values(value=value, updated_at=now)
                )
