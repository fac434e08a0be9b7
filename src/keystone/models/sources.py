"""
Mirrors of the external sources: mail threads and spreadsheet rows.

ParsedThread / ParsedMessage are the in-memory shape produced by the Gmail
client. SourceThreadRecord and SourceRowRecord are what the store keeps.
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .items import ActionItemType, ActionStatus

AT_RISK_WINDOW = timedelta(days=3)


# =============================================================================
# Mail
# =============================================================================


class ParsedMessage(BaseModel):
    """One message inside a mail thread."""

    id: str
    from_address: str = Field(default='', description='Bare sender address')
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    subject: str = ''
    body: str = Field(default='', description='First text/plain part of the message')
    snippet: str = ''
    received_at: datetime
    label_ids: list[str] = Field(default_factory=list)
    is_mailing_list: bool = False


class ParsedThread(BaseModel):
    """A full mail thread with messages ordered oldest to newest."""

    thread_id: str
    subject: str = '(No Subject)'
    messages: list[ParsedMessage]
    labels: list[str] = Field(default_factory=list)
    is_mailing_list: bool = False

    @property
    def last_message(self) -> ParsedMessage:
        return self.messages[-1]

    def last_message_from(self, email: str) -> bool:
        return bool(self.messages) and _same_address(self.last_message.from_address, email)

    def latest_inbound(self, owner_email: str) -> ParsedMessage | None:
        """Most recent message not sent by the owner."""
        for message in reversed(self.messages):
            if not _same_address(message.from_address, owner_email):
                return message
        return None

    def addressed_to(self, email: str) -> bool:
        """True when the owner is a direct (To) recipient of any message."""
        return any(
            _same_address(recipient, email)
            for message in self.messages
            for recipient in message.to
        )


def _same_address(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


class SourceThreadRecord(BaseModel):
    """Stored mirror of one mail thread plus its latest classification."""

    id: UUID = Field(default_factory=uuid4)
    thread_id: str = Field(..., description='Provider thread id (unique)')
    message_id: str | None = None
    subject: str = ''
    snippet: str | None = None
    from_address: str | None = None
    to_addresses: list[str] = Field(default_factory=list)
    cc_addresses: list[str] = Field(default_factory=list)
    received_at: datetime | None = None
    labels: list[str] = Field(default_factory=list)
    is_mailing_list: bool = False

    due_from_me_type: ActionItemType | None = None
    confidence_score: int | None = None
    rationale: str | None = None
    is_processed: bool = False

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_thread(cls, thread: ParsedThread) -> 'SourceThreadRecord':
        """Build a record from the latest message of a parsed thread."""
        last = thread.last_message
        return cls(
            thread_id=thread.thread_id,
            message_id=last.id,
            subject=thread.subject,
            snippet=last.snippet or None,
            from_address=last.from_address,
            to_addresses=last.to,
            cc_addresses=last.cc,
            received_at=last.received_at,
            labels=thread.labels,
            is_mailing_list=thread.is_mailing_list,
        )

    model_config = {'use_enum_values': True, 'validate_default': True}


# =============================================================================
# Spreadsheet
# =============================================================================


class SheetRow(BaseModel):
    """The five mapped cells of one data row, trimmed, empty as None."""

    row_number: int = Field(..., description='1-based sheet row number')
    commitment: str
    owner_label: str | None = None
    due_date_raw: str | None = None
    status_raw: str | None = None
    comments: str | None = None

    def mapped_cells(self) -> list[str | None]:
        """Cells in fingerprint order."""
        return [
            self.commitment,
            self.owner_label,
            self.due_date_raw,
            self.status_raw,
            self.comments,
        ]


class SourceRowRecord(BaseModel):
    """Stored mirror of one spreadsheet row."""

    id: UUID = Field(default_factory=uuid4)
    commitment: str
    owner_label: str | None = None
    owner_email: str | None = None
    needs_owner_mapping: bool = False
    due_date: datetime | None = None
    status: ActionStatus = ActionStatus.NOT_STARTED
    raw_status: str | None = None
    needs_review: bool = False
    comments: str | None = None

    row_number: int | None = Field(
        default=None, description='Stable row number; None for legacy records'
    )
    fingerprint: str

    first_seen_at: datetime = Field(default_factory=datetime.now)
    last_seen_at: datetime = Field(default_factory=datetime.now)
    last_synced_at: datetime = Field(default_factory=datetime.now)
    disappeared_at: datetime | None = None

    def is_overdue(self, now: datetime | None = None) -> bool:
        return self.due_date is not None and self.due_date < (now or datetime.now())

    def is_at_risk(self, now: datetime | None = None) -> bool:
        """Due within the next three days and not yet overdue."""
        if self.due_date is None:
            return False
        current = now or datetime.now()
        return current <= self.due_date <= current + AT_RISK_WINDOW

    def to_api_dict(self, now: datetime | None = None) -> dict[str, Any]:
        data = self.model_dump(mode='json')
        data['is_overdue'] = self.is_overdue(now)
        data['is_at_risk'] = self.is_at_risk(now)
        return data

    model_config = {'use_enum_values': True, 'validate_default': True}


class OwnerDirectoryEntry(BaseModel):
    """Display name -> email mapping maintained by the user."""

    id: UUID = Field(default_factory=uuid4)
    display_name: str
    email: str
    created_at: datetime = Field(default_factory=datetime.now)
