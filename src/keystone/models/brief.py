"""
Daily brief snapshot.

A brief is a point-in-time summary built from the store: the oldest open
obligations, reply/approval items past the overdue threshold, and sheet
commitments that are slipping. Each generated brief is persisted whole so
the latest one can be served without recomputing.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .items import ActionItemType


class BriefItem(BaseModel):
    """One canonical item as it appears in a brief."""

    id: UUID
    title: str
    type: ActionItemType
    aging_days: int
    rationale: str | None = None

    model_config = {'use_enum_values': True}


class SlippingCommitment(BaseModel):
    """An open sheet row that is overdue or due within the at-risk window."""

    id: UUID
    commitment: str
    owner_email: str | None = None
    due_date: datetime | None = None
    is_overdue: bool = False


class DailyBrief(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    generated_at: datetime = Field(default_factory=datetime.now)

    top_due_items: list[BriefItem] = Field(default_factory=list)
    overdue_items: list[BriefItem] = Field(default_factory=list)
    slipping_commitments: list[SlippingCommitment] = Field(default_factory=list)
