"""
Gmail REST client for thread ingestion.

Two calls:
- list_thread_ids: time-windowed search, paginated up to a fetch cap
- get_thread: full thread detail parsed into a ParsedThread
"""

import base64
import re
from datetime import datetime
from typing import Any

import structlog

from ..models.sources import ParsedMessage, ParsedThread
from .google_http import GoogleAPIClient

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100
MAILING_LIST_HEADERS = ('list-unsubscribe', 'list-id')

_ANGLE_ADDRESS = re.compile(r'<([^>]+)>')


# =============================================================================
# Payload parsing
# =============================================================================


def _header(headers: list[dict[str, str]], name: str) -> str:
    lowered = name.lower()
    for header in headers:
        if header.get('name', '').lower() == lowered:
            return header.get('value', '')
    return ''


def extract_address(value: str) -> str:
    """'Jane Doe <jane@example.com>' -> 'jane@example.com'."""
    match = _ANGLE_ADDRESS.search(value)
    return (match.group(1) if match else value).strip()


def parse_address_list(value: str) -> list[str]:
    return [extract_address(part) for part in value.split(',') if part.strip()]


def _decode_body(data: str) -> str:
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode('utf-8', errors='replace')


def find_plain_text(payload: dict[str, Any]) -> str:
    """Depth-first search of the MIME tree for the first text/plain body."""
    if payload.get('mimeType') == 'text/plain':
        data = payload.get('body', {}).get('data')
        if data:
            return _decode_body(data)
    for part in payload.get('parts', []) or []:
        text = find_plain_text(part)
        if text:
            return text
    return ''


def parse_message(data: dict[str, Any]) -> ParsedMessage:
    payload = data.get('payload', {})
    headers = payload.get('headers', [])
    header_names = {h.get('name', '').lower() for h in headers}

    return ParsedMessage(
        id=data['id'],
        from_address=extract_address(_header(headers, 'From')),
        to=parse_address_list(_header(headers, 'To')),
        cc=parse_address_list(_header(headers, 'Cc')),
        subject=_header(headers, 'Subject'),
        body=find_plain_text(payload),
        snippet=data.get('snippet', ''),
        received_at=datetime.fromtimestamp(int(data.get('internalDate', '0')) / 1000),
        label_ids=data.get('labelIds', []) or [],
        is_mailing_list=any(name in header_names for name in MAILING_LIST_HEADERS),
    )


def parse_thread(data: dict[str, Any]) -> ParsedThread | None:
    """Parse a threads.get(format=full) body. Returns None for an empty thread."""
    raw_messages = data.get('messages') or []
    if not raw_messages:
        return None

    messages = sorted((parse_message(m) for m in raw_messages), key=lambda m: m.received_at)
    labels = sorted({label for m in messages for label in m.label_ids})

    return ParsedThread(
        thread_id=data['id'],
        subject=messages[0].subject or '(No Subject)',
        messages=messages,
        labels=labels,
        is_mailing_list=any(m.is_mailing_list for m in messages),
    )


# =============================================================================
# Client
# =============================================================================


class GmailClient(GoogleAPIClient):
    """Gmail API v1 client scoped to the authenticated user."""

    service = 'gmail'
    base_url = 'https://gmail.googleapis.com/gmail/v1/users/me/'

    async def list_thread_ids(self, query: str, cap: int = 500) -> list[str]:
        """
        Collect thread ids matching `query`, following nextPageToken until the
        results are exhausted or `cap` ids have been collected.
        """
        thread_ids: list[str] = []
        page_token: str | None = None

        while len(thread_ids) < cap:
            params: dict[str, Any] = {
                'q': query,
                'maxResults': min(MAX_PAGE_SIZE, cap - len(thread_ids)),
            }
            if page_token:
                params['pageToken'] = page_token

            body = await self.get_json('threads', params=params)
            thread_ids.extend(t['id'] for t in body.get('threads', []) or [])

            page_token = body.get('nextPageToken')
            if not page_token:
                break

        logger.debug('gmail_client.listed_threads', count=len(thread_ids), cap=cap)
        return thread_ids[:cap]

    async def get_thread(self, thread_id: str) -> ParsedThread | None:
        body = await self.get_json(f'threads/{thread_id}', params={'format': 'full'})
        return parse_thread(body)
