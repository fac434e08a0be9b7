"""
Canonical action items and the records that hang off them.

CanonicalActionItem is the unit of obligation tracking: at most one per
(source, source_id). Status changes only through explicit user actions
(see pipeline.actions); the ingestion pipeline may refresh classification
fields but never status.

Nudge and UserAction are append-mostly records keyed to an item.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ActionItemType(str, Enum):
    """What the account owner owes."""

    REPLY = 'reply'
    APPROVAL = 'approval'
    DECISION = 'decision'
    FOLLOW_UP = 'follow_up'


class ActionStatus(str, Enum):
    """Canonical status for items and spreadsheet rows."""

    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    BLOCKED = 'blocked'
    DONE = 'done'
    DEFERRED = 'deferred'


# The pipeline never reclassifies or reopens items in these states
TERMINAL_STATUSES = frozenset({ActionStatus.DONE, ActionStatus.DEFERRED})


def is_terminal_status(status: ActionStatus | str | None) -> bool:
    return status is not None and ActionStatus(status) in TERMINAL_STATUSES


class ItemSource(str, Enum):
    """Where a canonical item originated."""

    MAIL = 'mail'
    SHEET = 'sheet'
    CALENDAR = 'calendar'


class NudgeType(str, Enum):
    """Why a nudge was generated."""

    BLOCKING_OTHERS = 'blocking_others'
    OVERDUE = 'overdue'


class UserActionType(str, Enum):
    """User-initiated transitions recorded in the action log."""

    DONE = 'done'
    SNOOZE = 'snooze'
    IGNORE = 'ignore'


SUGGESTED_ACTIONS: dict[ActionItemType, str] = {
    ActionItemType.REPLY: 'Send a response',
    ActionItemType.APPROVAL: 'Review and approve/reject',
    ActionItemType.DECISION: 'Make a decision',
    ActionItemType.FOLLOW_UP: 'Complete your commitment',
}


def default_suggested_action(item_type: ActionItemType | str | None) -> str | None:
    """Default next step for an item type."""
    if item_type is None:
        return None
    return SUGGESTED_ACTIONS.get(ActionItemType(item_type))


def _days_between(earlier: datetime, later: datetime) -> int:
    return max(0, (later - earlier).days)


class CanonicalActionItem(BaseModel):
    """
    One action the account owner owes, regardless of source.

    Aging is never stored; aging_days() derives it from first_seen_at, which
    for mail is the most recent inbound message rather than the thread start.
    """

    id: UUID = Field(default_factory=uuid4, description='Unique identifier for this item')

    type: ActionItemType = Field(..., description='What kind of response is owed')
    status: ActionStatus = Field(
        default=ActionStatus.NOT_STARTED,
        description='Canonical status; mutated only by explicit user action',
    )
    source: ItemSource = Field(..., description='Originating source')
    source_id: str = Field(..., description='Identifier of the originating record (thread id, row id)')

    title: str = Field(default='', description='Human-readable title (thread subject)')
    blocking_who: str | None = Field(default=None, description='Who is waiting on the owner')
    owner_email: str | None = Field(default=None, description='Email of the person who owes the action')

    first_seen_at: datetime = Field(
        default_factory=datetime.now,
        description='When the obligation appeared (most recent inbound message for mail)',
    )
    last_seen_at: datetime = Field(default_factory=datetime.now)
    status_changed_at: datetime | None = Field(default=None)
    snoozed_until: datetime | None = Field(default=None)

    confidence_score: int | None = Field(default=None, ge=0, le=100)
    rationale: str | None = None
    suggested_action: str | None = None
    notes: str | None = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def aging_days(self, now: datetime | None = None) -> int:
        """Whole days since the obligation first appeared."""
        return _days_between(self.first_seen_at, now or datetime.now())

    def days_in_current_status(self, now: datetime | None = None) -> int:
        """Whole days since the last status change (or since first seen)."""
        since = self.status_changed_at or self.first_seen_at
        return _days_between(since, now or datetime.now())

    def to_api_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Serialize with read-time derived fields."""
        data = self.model_dump(mode='json')
        data['aging_days'] = self.aging_days(now)
        data['days_in_current_status'] = self.days_in_current_status(now)
        return data

    model_config = {'use_enum_values': True, 'validate_default': True}


class Nudge(BaseModel):
    """A persisted, rate-limited reminder about one canonical item."""

    id: UUID = Field(default_factory=uuid4)
    type: NudgeType
    item_id: UUID
    reason: str = Field(..., description='Why this item was selected')
    sent_at: datetime = Field(default_factory=datetime.now)
    dismissed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {'use_enum_values': True, 'validate_default': True}


class ActiveNudge(Nudge):
    """Nudge joined with its item title for display."""

    item_title: str | None = None


class UserAction(BaseModel):
    """Append-only audit entry for a user-initiated transition."""

    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    action: UserActionType
    previous_value: str | None = None
    new_value: str | None = None
    item_type: ActionItemType | None = None
    item_source: ItemSource | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {'use_enum_values': True, 'validate_default': True}
