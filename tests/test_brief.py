"""
Tests for BriefGenerator against an in-memory SQLite store.
"""

from datetime import timedelta

import pytest

from keystone.models.items import ActionItemType, ActionStatus, CanonicalActionItem, ItemSource
from keystone.models.sources import SourceRowRecord
from keystone.pipeline.brief import BriefGenerator

from conftest import NOW


async def _add_item(repository, source_id, age_days, item_type=ActionItemType.REPLY, status=ActionStatus.NOT_STARTED):
    item = CanonicalActionItem(
        type=item_type,
        source=ItemSource.MAIL,
        source_id=source_id,
        title=f'Thread {source_id}',
        status=status,
        rationale=f'Asked in {source_id}',
        first_seen_at=NOW - timedelta(days=age_days),
    )
    await repository.insert_item(item)
    return item


async def _add_row(repository, commitment, due_in_days=None, status=ActionStatus.NOT_STARTED, **extra):
    row = SourceRowRecord(
        commitment=commitment,
        fingerprint=commitment,
        status=status,
        owner_email='dana@example.com',
        due_date=NOW + timedelta(days=due_in_days) if due_in_days is not None else None,
        **extra,
    )
    await repository.insert_source_row(row)
    return row


def _generator(repository, clock_time=NOW) -> BriefGenerator:
    return BriefGenerator(repository, clock=lambda: clock_time)


class TestDueItemSections:
    @pytest.mark.asyncio
    async def test_top_items_are_oldest_unresolved(self, repository):
        await _add_item(repository, 'decision', 10, ActionItemType.DECISION)
        await _add_item(repository, 'approval-old', 7, ActionItemType.APPROVAL)
        await _add_item(repository, 'reply-5', 5)
        await _add_item(repository, 'reply-4', 4)
        await _add_item(repository, 'approval-new', 2, ActionItemType.APPROVAL)
        await _add_item(repository, 'follow-up', 1, ActionItemType.FOLLOW_UP)
        await _add_item(repository, 'closed', 20, status=ActionStatus.DONE)
        await _add_item(repository, 'snoozed', 15, status=ActionStatus.DEFERRED)

        brief = await _generator(repository).generate()

        assert [i.title for i in brief.top_due_items] == [
            'Thread decision',
            'Thread approval-old',
            'Thread reply-5',
            'Thread reply-4',
            'Thread approval-new',
        ]
        assert brief.top_due_items[0].aging_days == 10
        assert brief.top_due_items[0].rationale == 'Asked in decision'

    @pytest.mark.asyncio
    async def test_overdue_is_reply_or_approval_older_than_three_days(self, repository):
        await _add_item(repository, 'decision', 10, ActionItemType.DECISION)
        await _add_item(repository, 'approval-old', 7, ActionItemType.APPROVAL)
        await _add_item(repository, 'reply-4', 4)
        await _add_item(repository, 'reply-3', 3)
        await _add_item(repository, 'closed', 20, status=ActionStatus.DONE)

        brief = await _generator(repository).generate()

        assert [i.title for i in brief.overdue_items] == ['Thread approval-old', 'Thread reply-4']
        assert [i.type for i in brief.overdue_items] == ['approval', 'reply']

    @pytest.mark.asyncio
    async def test_empty_store_gives_empty_brief(self, repository):
        brief = await _generator(repository).generate()

        assert brief.top_due_items == []
        assert brief.overdue_items == []
        assert brief.slipping_commitments == []
        assert brief.generated_at == NOW


class TestSlippingCommitments:
    @pytest.mark.asyncio
    async def test_overdue_and_at_risk_open_rows(self, repository):
        late = await _add_row(repository, 'Send board deck', due_in_days=-2)
        soon = await _add_row(repository, 'Renew lease', due_in_days=1)
        await _add_row(repository, 'Plan offsite', due_in_days=10)
        await _add_row(repository, 'Hire designer')
        await _add_row(repository, 'File taxes', due_in_days=-5, status=ActionStatus.DONE)

        brief = await _generator(repository).generate()

        assert [(s.id, s.is_overdue) for s in brief.slipping_commitments] == [
            (late.id, True),
            (soon.id, False),
        ]
        assert brief.slipping_commitments[0].owner_email == 'dana@example.com'
        assert brief.slipping_commitments[0].due_date == NOW - timedelta(days=2)

    @pytest.mark.asyncio
    async def test_disappeared_rows_left_out(self, repository):
        await _add_row(repository, 'Removed from sheet', due_in_days=-1, disappeared_at=NOW)

        brief = await _generator(repository).generate()

        assert brief.slipping_commitments == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_latest_is_none_before_first_brief(self, repository):
        assert await _generator(repository).latest() is None

    @pytest.mark.asyncio
    async def test_generated_brief_is_stored(self, repository):
        await _add_item(repository, 'reply-5', 5)
        await _add_row(repository, 'Send board deck', due_in_days=-2)

        brief = await _generator(repository).generate()
        latest = await _generator(repository).latest()

        assert latest.model_dump() == brief.model_dump()

    @pytest.mark.asyncio
    async def test_latest_returns_newest_snapshot(self, repository):
        first = await _generator(repository).generate()
        await _add_item(repository, 'reply-5', 5)
        second = await _generator(repository, clock_time=NOW + timedelta(days=1)).generate()

        latest = await _generator(repository).latest()

        assert latest.id == second.id
        assert latest.id != first.id
        assert latest.top_due_items[0].aging_days == 6
