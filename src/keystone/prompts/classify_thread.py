"""
Due-From-Me classification prompt and response model.

Uses OpenAI structured output; the response model's validators reject
out-of-contract answers so the caller can fall back to the heuristic.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ..models.sources import ParsedThread

DueFromMeLiteral = Literal['reply', 'approval', 'decision', 'follow_up']

TRUNCATION_MARKER = '\n[...truncated]'


class ThreadClassification(BaseModel):
    """Structured answer for a single thread."""

    is_due_from_me: bool = Field(
        ...,
        description='True if the account owner must personally act on this thread.',
    )
    type: DueFromMeLiteral | None = Field(
        ...,
        description='Kind of action owed: reply, approval, decision or follow_up. '
        'Null when is_due_from_me is false.',
    )
    confidence: int = Field(
        ...,
        description='Confidence from 0 to 100 that the classification is correct.',
    )
    rationale: str = Field(
        ...,
        description='One or two sentences explaining the classification.',
    )
    blocking_who: str | None = Field(
        ...,
        description='Email address of the person waiting on the owner, or null.',
    )
    suggested_action: str | None = Field(
        ...,
        description='Short imperative next step for the owner, or null.',
    )

    @field_validator('confidence')
    @classmethod
    def confidence_in_range(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError('confidence must be between 0 and 100')
        return value

    @field_validator('rationale')
    @classmethod
    def rationale_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('rationale must not be empty')
        return value


SYSTEM_PROMPT = """You triage an executive's inbox. Decide whether the account owner \
personally owes an action on the thread below ("Due-From-Me").

Types:
- reply: someone asked the owner a question or is waiting on a response
- approval: someone needs the owner to approve, sign off, or reject
- decision: someone needs the owner to choose between options or make a call
- follow_up: the owner committed to doing something and has not done it yet

Rules:
- Messages marked (FROM OWNER) were written by the account owner.
- If the owner sent the most recent message and asked nothing of themselves, \
nothing is due: is_due_from_me=false, type=null.
- FYI notices, newsletters, receipts and automated notifications are never due.
- blocking_who is the email address of whoever is waiting on the owner.
- Be conservative. When unsure, lower the confidence rather than inventing an obligation."""


def _truncate(body: str, limit: int) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + TRUNCATION_MARKER


def build_classification_prompt(
    thread: ParsedThread,
    owner_email: str,
    max_body_chars: int = 2000,
) -> list[dict[str, str]]:
    """
    Render a thread into chat messages for classification.

    Every message is included oldest first with sender, recipients and
    timestamp; bodies longer than max_body_chars are cut.
    """
    owner = owner_email.lower()
    blocks: list[str] = []

    for index, message in enumerate(thread.messages, start=1):
        marker = ' (FROM OWNER)' if message.from_address.lower() == owner else ''
        blocks.append(
            f"--- Message {index}{marker} ---\n"
            f"From: {message.from_address}\n"
            f"To: {', '.join(message.to)}\n"
            f"Cc: {', '.join(message.cc)}\n"
            f"Date: {message.received_at.isoformat()}\n\n"
            f"{_truncate(message.body or message.snippet, max_body_chars)}"
        )

    user_prompt = (
        f"Account owner: {owner_email}\n"
        f"Subject: {thread.subject}\n"
        f"Messages: {len(thread.messages)}\n\n" + '\n\n'.join(blocks)
    )

    return [
        {'role': 'system', 'content': SYSTEM_PROMPT},
        {'role': 'user', 'content': user_prompt},
    ]
