"""
Explicit user actions on canonical items.

These are the only code paths that change an item's status. Every
transition is appended to the user action log with its previous and new
value.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from ..errors import ItemNotFoundError
from ..logging import get_logger
from ..models.items import ActionStatus, CanonicalActionItem, UserAction, UserActionType
from ..repository import KeystoneRepository

logger = get_logger(__name__)


class ItemActionService:
    """
    done / snooze / ignore for canonical items, plus action history.

    Usage:
        actions = ItemActionService(repository)
        await actions.snooze(item_id, days=2)
    """

    def __init__(
        self,
        repository: KeystoneRepository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.clock = clock

    async def _load(self, item_id: UUID) -> CanonicalActionItem:
        item = await self.repository.get_item(item_id)
        if item is None:
            raise ItemNotFoundError('Item not found', context={'item_id': str(item_id)})
        return item

    async def _transition(
        self,
        item_id: UUID,
        action: UserActionType,
        new_status: ActionStatus,
        snoozed_until: datetime | None = None,
        new_value: str | None = None,
    ) -> CanonicalActionItem:
        item = await self._load(item_id)
        now = self.clock()

        await self.repository.append_user_action(
            UserAction(
                item_id=item.id,
                action=action,
                previous_value=item.status,
                new_value=new_value or new_status.value,
                item_type=item.type,
                item_source=item.source,
                created_at=now,
            )
        )
        await self.repository.set_item_status(item.id, new_status, now, snoozed_until=snoozed_until)

        logger.info(
            'actions.applied',
            item_id=str(item.id),
            action=action.value,
            previous_status=item.status,
            new_status=new_status.value,
        )
        return item.model_copy(
            update={
                'status': new_status.value,
                'status_changed_at': now,
                'snoozed_until': snoozed_until,
                'updated_at': now,
            }
        )

    async def mark_done(self, item_id: UUID) -> CanonicalActionItem:
        return await self._transition(item_id, UserActionType.DONE, ActionStatus.DONE)

    async def snooze(self, item_id: UUID, days: int = 1) -> CanonicalActionItem:
        """Defer an item; the pipeline will not touch it while deferred."""
        if days < 1:
            raise ValueError('days must be at least 1')
        until = self.clock() + timedelta(days=days)
        return await self._transition(
            item_id,
            UserActionType.SNOOZE,
            ActionStatus.DEFERRED,
            snoozed_until=until,
            new_value=f'deferred until {until.isoformat()}',
        )

    async def ignore(self, item_id: UUID) -> CanonicalActionItem:
        """Close an item that was never really due, logged as 'ignore'."""
        return await self._transition(item_id, UserActionType.IGNORE, ActionStatus.DONE)

    async def history(self, item_id: UUID | None = None, limit: int = 50) -> list[UserAction]:
        return await self.repository.list_user_actions(item_id=item_id, limit=limit)

    async def action_patterns(self, limit: int = 500) -> dict[str, Any]:
        """Counts of recent actions by action type and by item source."""
        actions = await self.repository.list_user_actions(limit=limit)
        return {
            'total': len(actions),
            'by_action': dict(Counter(a.action for a in actions)),
            'by_source': dict(Counter(a.item_source for a in actions if a.item_source)),
        }
