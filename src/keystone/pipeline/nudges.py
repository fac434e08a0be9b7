"""
Nudge generation with a daily cap.

Tier 1: unresolved items with someone waiting (blocking_who set), age >= 1 day
Tier 2: unresolved reply/approval items, age >= 3 days
Both tiers are ordered oldest first. An item is nudged at most once per
calendar day, and the total created per day never exceeds the cap.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from ..config import config
from ..errors import ItemNotFoundError
from ..logging import get_logger
from ..models.items import ActionItemType, ActiveNudge, CanonicalActionItem, Nudge, NudgeType
from ..repository import KeystoneRepository

logger = get_logger(__name__)

BLOCKING_MIN_AGE_DAYS = 1
OVERDUE_MIN_AGE_DAYS = 3
OVERDUE_TYPES = frozenset({ActionItemType.REPLY, ActionItemType.APPROVAL})


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _days(n: int) -> str:
    return f'{n} day' if n == 1 else f'{n} days'


def _type_label(item: CanonicalActionItem) -> str:
    return ActionItemType(item.type).value.replace('_', ' ')


class NudgeGenerator:
    """
    Selects and persists today's nudges.

    Usage:
        generator = NudgeGenerator(repository)
        created = await generator.generate()
    """

    def __init__(
        self,
        repository: KeystoneRepository,
        daily_cap: int = config.NUDGE_DAILY_CAP,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.daily_cap = daily_cap
        self.clock = clock

    async def generate(self) -> list[Nudge]:
        now = self.clock()
        sent_today = await self.repository.list_nudges_sent_since(_start_of_day(now))

        remaining = self.daily_cap - len(sent_today)
        if remaining <= 0:
            logger.info('nudges.cap_reached', sent_today=len(sent_today), cap=self.daily_cap)
            return []

        items = await self.repository.list_unresolved_items()
        nudged: set[UUID] = {n.item_id for n in sent_today}
        created: list[Nudge] = []

        for nudge_type, candidates in self._tiers(items, now):
            for item in candidates:
                if len(created) >= remaining:
                    break
                if item.id in nudged:
                    continue

                nudge = Nudge(
                    type=nudge_type,
                    item_id=item.id,
                    reason=self._reason(nudge_type, item, now),
                    sent_at=now,
                    created_at=now,
                )
                await self.repository.insert_nudge(nudge)
                nudged.add(item.id)
                created.append(nudge)

        logger.info('nudges.generated', created=len(created), sent_today=len(sent_today))
        return created

    @staticmethod
    def _tiers(
        items: list[CanonicalActionItem], now: datetime
    ) -> list[tuple[NudgeType, list[CanonicalActionItem]]]:
        by_age = sorted(items, key=lambda item: item.aging_days(now), reverse=True)
        blocking = [
            item
            for item in by_age
            if item.blocking_who and item.aging_days(now) >= BLOCKING_MIN_AGE_DAYS
        ]
        overdue = [
            item
            for item in by_age
            if ActionItemType(item.type) in OVERDUE_TYPES
            and item.aging_days(now) >= OVERDUE_MIN_AGE_DAYS
        ]
        return [(NudgeType.BLOCKING_OTHERS, blocking), (NudgeType.OVERDUE, overdue)]

    @staticmethod
    def _reason(nudge_type: NudgeType, item: CanonicalActionItem, now: datetime) -> str:
        age = _days(item.aging_days(now))
        if nudge_type == NudgeType.BLOCKING_OTHERS:
            return f'You are blocking {item.blocking_who} - this {_type_label(item)} has been waiting {age}'
        return f'This {_type_label(item)} is overdue by {age}'

    async def dismiss(self, nudge_id: UUID) -> None:
        """
        Mark a nudge dismissed.

        Raises:
            ItemNotFoundError: unknown nudge id
        """
        if not await self.repository.dismiss_nudge(nudge_id, self.clock()):
            raise ItemNotFoundError('Nudge not found', context={'nudge_id': str(nudge_id)})
        logger.info('nudges.dismissed', nudge_id=str(nudge_id))

    async def active(self) -> list[ActiveNudge]:
        """Today's nudges that have not been dismissed."""
        return await self.repository.list_active_nudges(_start_of_day(self.clock()))
