"""
Daily brief generation.

Sections:
- top_due_items: the oldest unresolved items
- overdue_items: unresolved reply/approval items older than the overdue threshold
- slipping_commitments: open sheet rows that are overdue or at risk

Only stored pipeline output is read; nothing is fetched from Gmail or the
sheet. Disappeared rows are left out of the slipping list.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from ..logging import get_logger
from ..models.brief import BriefItem, DailyBrief, SlippingCommitment
from ..models.items import ActionItemType, ActionStatus, CanonicalActionItem
from ..repository import KeystoneRepository
from .nudges import OVERDUE_TYPES

logger = get_logger(__name__)

TOP_ITEMS_LIMIT = 5
SLIPPING_LIMIT = 10
# Strictly older than this many days
OVERDUE_AFTER_DAYS = 3


class BriefGenerator:
    """
    Builds, persists and serves daily briefs.

    Usage:
        generator = BriefGenerator(repository)
        brief = await generator.generate()
        latest = await generator.latest()
    """

    def __init__(
        self,
        repository: KeystoneRepository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.clock = clock

    async def generate(self) -> DailyBrief:
        now = self.clock()

        items = sorted(
            await self.repository.list_unresolved_items(),
            key=lambda item: item.first_seen_at,
        )
        overdue = [
            item
            for item in items
            if ActionItemType(item.type) in OVERDUE_TYPES
            and item.aging_days(now) > OVERDUE_AFTER_DAYS
        ]

        rows = await self.repository.list_rows(disappeared=False, now=now)
        slipping = [
            SlippingCommitment(
                id=row.id,
                commitment=row.commitment,
                owner_email=row.owner_email,
                due_date=row.due_date,
                is_overdue=row.is_overdue(now),
            )
            for row in rows
            if ActionStatus(row.status) != ActionStatus.DONE
            and (row.is_overdue(now) or row.is_at_risk(now))
        ][:SLIPPING_LIMIT]

        brief = DailyBrief(
            generated_at=now,
            top_due_items=[self._entry(item, now) for item in items[:TOP_ITEMS_LIMIT]],
            overdue_items=[self._entry(item, now) for item in overdue],
            slipping_commitments=slipping,
        )
        await self.repository.insert_brief(brief)

        logger.info(
            'brief.generated',
            brief_id=str(brief.id),
            top_due=len(brief.top_due_items),
            overdue=len(brief.overdue_items),
            slipping=len(brief.slipping_commitments),
        )
        return brief

    async def latest(self) -> DailyBrief | None:
        return await self.repository.get_latest_brief()

    @staticmethod
    def _entry(item: CanonicalActionItem, now: datetime) -> BriefItem:
        return BriefItem(
            id=item.id,
            title=item.title,
            type=item.type,
            aging_days=item.aging_days(now),
            rationale=item.rationale,
        )
