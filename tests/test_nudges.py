"""
Tests for NudgeGenerator: tiers, ordering, de-duplication and the daily cap.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from keystone.errors import ItemNotFoundError
from keystone.models.items import ActionItemType, ActionStatus, CanonicalActionItem, ItemSource, NudgeType
from keystone.pipeline.nudges import NudgeGenerator

from conftest import NOW


async def _add_item(repository, source_id, age_days, item_type=ActionItemType.REPLY, blocking_who=None,
                    status=ActionStatus.NOT_STARTED):
    item = CanonicalActionItem(
        type=item_type,
        status=status,
        source=ItemSource.MAIL,
        source_id=source_id,
        title=f'Thread {source_id}',
        blocking_who=blocking_who,
        first_seen_at=NOW - timedelta(days=age_days),
    )
    await repository.insert_item(item)
    return item


def _generator(repository, cap=3, clock_time=NOW) -> NudgeGenerator:
    return NudgeGenerator(repository, daily_cap=cap, clock=lambda: clock_time)


class TestTiers:
    @pytest.mark.asyncio
    async def test_blocking_tier_first_oldest_first(self, repository):
        young_blocker = await _add_item(repository, 'a', 2, blocking_who='bob@example.com')
        old_blocker = await _add_item(repository, 'b', 6, blocking_who='carol@example.com')
        overdue = await _add_item(repository, 'c', 10, item_type=ActionItemType.APPROVAL)

        nudges = await _generator(repository).generate()

        assert [n.item_id for n in nudges] == [old_blocker.id, young_blocker.id, overdue.id]
        assert nudges[0].type == NudgeType.BLOCKING_OTHERS.value
        assert nudges[2].type == NudgeType.OVERDUE.value

    @pytest.mark.asyncio
    async def test_reason_text(self, repository):
        await _add_item(repository, 'a', 1, blocking_who='bob@example.com')
        await _add_item(repository, 'b', 4, item_type=ActionItemType.APPROVAL)

        nudges = await _generator(repository).generate()

        assert nudges[0].reason == 'You are blocking bob@example.com - this reply has been waiting 1 day'
        assert nudges[1].reason == 'This approval is overdue by 4 days'

    @pytest.mark.asyncio
    async def test_thresholds(self, repository):
        await _add_item(repository, 'fresh-blocker', 0, blocking_who='bob@example.com')
        await _add_item(repository, 'young-reply', 2)
        await _add_item(repository, 'old-decision', 9, item_type=ActionItemType.DECISION)

        assert await _generator(repository).generate() == []

    @pytest.mark.asyncio
    async def test_resolved_items_never_nudged(self, repository):
        await _add_item(repository, 'a', 5, blocking_who='bob@example.com', status=ActionStatus.DONE)
        await _add_item(repository, 'b', 5, status=ActionStatus.DEFERRED)

        assert await _generator(repository).generate() == []

    @pytest.mark.asyncio
    async def test_item_in_both_tiers_nudged_once(self, repository):
        item = await _add_item(repository, 'a', 5, blocking_who='bob@example.com')

        nudges = await _generator(repository).generate()

        assert [n.item_id for n in nudges] == [item.id]
        assert nudges[0].type == NudgeType.BLOCKING_OTHERS.value


class TestDailyCap:
    @pytest.mark.asyncio
    async def test_cap_limits_one_run(self, repository):
        for i in range(5):
            await _add_item(repository, f't{i}', 5 + i, blocking_who='bob@example.com')

        nudges = await _generator(repository, cap=3).generate()

        assert len(nudges) == 3

    @pytest.mark.asyncio
    async def test_cap_holds_across_runs_same_day(self, repository):
        for i in range(5):
            await _add_item(repository, f't{i}', 5 + i, blocking_who='bob@example.com')

        first = await _generator(repository, cap=3).generate()
        second = await _generator(repository, cap=3, clock_time=NOW + timedelta(hours=3)).generate()

        assert len(first) == 3
        assert second == []

    @pytest.mark.asyncio
    async def test_partial_capacity_skips_already_nudged(self, repository):
        items = [await _add_item(repository, f't{i}', 5 + i, blocking_who='bob@example.com') for i in range(3)]

        first = await _generator(repository, cap=2).generate()
        second = await _generator(repository, cap=3, clock_time=NOW + timedelta(hours=1)).generate()

        assert len(first) == 2
        assert [n.item_id for n in second] == [items[0].id]

    @pytest.mark.asyncio
    async def test_new_day_resets_cap(self, repository):
        await _add_item(repository, 'a', 5, blocking_who='bob@example.com')

        await _generator(repository, cap=1).generate()
        tomorrow = await _generator(repository, cap=1, clock_time=NOW + timedelta(days=1)).generate()

        assert len(tomorrow) == 1


class TestDismissAndActive:
    @pytest.mark.asyncio
    async def test_active_lists_undismissed_with_title(self, repository):
        await _add_item(repository, 'a', 5, blocking_who='bob@example.com')
        await _add_item(repository, 'b', 6, blocking_who='bob@example.com')
        generator = _generator(repository)
        created = await generator.generate()

        await generator.dismiss(created[0].id)
        active = await generator.active()

        assert [n.id for n in active] == [created[1].id]
        assert active[0].item_title == 'Thread a'

    @pytest.mark.asyncio
    async def test_dismissed_nudge_still_counts_toward_cap(self, repository):
        await _add_item(repository, 'a', 5, blocking_who='bob@example.com')
        await _add_item(repository, 'b', 6, blocking_who='bob@example.com')
        generator = _generator(repository, cap=1)
        created = await generator.generate()
        await generator.dismiss(created[0].id)

        assert await generator.generate() == []

    @pytest.mark.asyncio
    async def test_dismiss_unknown_raises(self, repository):
        with pytest.raises(ItemNotFoundError):
            await _generator(repository).dismiss(uuid4())
