"""Tests for ItemActionService (done / snooze / ignore and the action log)."""

from datetime import timedelta
from typing import get_args
from uuid import uuid4

import pytest
import pytest_asyncio

from keystone.api.routes.items import ItemActionRequest
from keystone.errors import ItemNotFoundError
from keystone.models.items import (
    ActionItemType,
    ActionStatus,
    CanonicalActionItem,
    ItemSource,
    UserActionType,
)
from keystone.pipeline.actions import ItemActionService

from conftest import NOW


@pytest_asyncio.fixture
async def item(repository):
    item = CanonicalActionItem(
        type=ActionItemType.APPROVAL,
        source=ItemSource.MAIL,
        source_id='t1',
        title='Budget sign-off',
        first_seen_at=NOW - timedelta(days=3),
    )
    await repository.insert_item(item)
    return item


@pytest.fixture
def actions(repository) -> ItemActionService:
    return ItemActionService(repository, clock=lambda: NOW)


class TestTransitions:
    @pytest.mark.asyncio
    async def test_mark_done(self, repository, actions, item):
        updated = await actions.mark_done(item.id)

        assert updated.status == ActionStatus.DONE.value
        stored = await repository.get_item(item.id)
        assert stored.status == ActionStatus.DONE.value
        assert stored.status_changed_at == NOW
        assert stored.days_in_current_status(NOW + timedelta(days=2)) == 2

    @pytest.mark.asyncio
    async def test_snooze_defers_until(self, repository, actions, item):
        updated = await actions.snooze(item.id, days=2)

        assert updated.status == ActionStatus.DEFERRED.value
        assert updated.snoozed_until == NOW + timedelta(days=2)
        stored = await repository.get_item(item.id)
        assert stored.snoozed_until == NOW + timedelta(days=2)

        log = await actions.history(item.id)
        assert log[0].new_value.startswith('deferred until')

    @pytest.mark.asyncio
    async def test_snooze_rejects_non_positive_days(self, actions, item):
        with pytest.raises(ValueError):
            await actions.snooze(item.id, days=0)

    @pytest.mark.asyncio
    async def test_ignore_closes_and_logs_ignore(self, repository, actions, item):
        await actions.ignore(item.id)

        stored = await repository.get_item(item.id)
        assert stored.status == ActionStatus.DONE.value
        log = await actions.history(item.id)
        assert log[0].action == UserActionType.IGNORE.value

    @pytest.mark.asyncio
    async def test_unknown_item_raises(self, actions):
        with pytest.raises(ItemNotFoundError):
            await actions.mark_done(uuid4())


class TestHistory:
    @pytest.mark.asyncio
    async def test_log_records_previous_and_new_value(self, actions, item):
        await actions.mark_done(item.id)

        log = await actions.history(item.id)

        assert len(log) == 1
        entry = log[0]
        assert entry.action == UserActionType.DONE.value
        assert entry.previous_value == ActionStatus.NOT_STARTED.value
        assert entry.new_value == ActionStatus.DONE.value
        assert entry.item_type == ActionItemType.APPROVAL.value
        assert entry.item_source == ItemSource.MAIL.value

    @pytest.mark.asyncio
    async def test_action_patterns(self, repository, item):
        service = ItemActionService(repository, clock=lambda: NOW)

        await service.snooze(item.id)
        await service.mark_done(item.id)

        patterns = await service.action_patterns()

        assert patterns['total'] == 2
        assert patterns['by_action'] == {'snooze': 1, 'done': 1}
        assert patterns['by_source'] == {'mail': 2}

    @pytest.mark.asyncio
    async def test_every_logged_action_type_has_a_service_method(self, repository, actions):
        produced = set()
        for source_id, apply in (
            ('a', actions.mark_done),
            ('b', actions.snooze),
            ('c', actions.ignore),
        ):
            item = CanonicalActionItem(type=ActionItemType.REPLY, source=ItemSource.MAIL, source_id=source_id)
            await repository.insert_item(item)
            await apply(item.id)
            produced.update(entry.action for entry in await actions.history(item.id))

        assert produced == {action.value for action in UserActionType}
        assert set(get_args(ItemActionRequest.model_fields['action'].annotation)) == produced
