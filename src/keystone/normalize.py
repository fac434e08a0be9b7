"""
Pure helpers for spreadsheet ingestion.

- fingerprint: stable content hash over a row's mapped cells
- normalize_status: free-text status -> ActionStatus (+ needs_review flag)
- parse_due_date: ISO / month-name dates, then D/M/Y vs M/D/Y disambiguation
"""

import hashlib
import re
from collections.abc import Sequence
from datetime import datetime
from typing import NamedTuple

from .models.items import ActionStatus

FINGERPRINT_DELIMITER = '|'

STATUS_SYNONYMS: dict[str, ActionStatus] = {
    # not_started
    'not started': ActionStatus.NOT_STARTED,
    'new': ActionStatus.NOT_STARTED,
    'pending': ActionStatus.NOT_STARTED,
    'to do': ActionStatus.NOT_STARTED,
    'todo': ActionStatus.NOT_STARTED,
    'open': ActionStatus.NOT_STARTED,
    # in_progress
    'in progress': ActionStatus.IN_PROGRESS,
    'in-progress': ActionStatus.IN_PROGRESS,
    'wip': ActionStatus.IN_PROGRESS,
    'working': ActionStatus.IN_PROGRESS,
    'started': ActionStatus.IN_PROGRESS,
    'ongoing': ActionStatus.IN_PROGRESS,
    # blocked
    'blocked': ActionStatus.BLOCKED,
    'on hold': ActionStatus.BLOCKED,
    'waiting': ActionStatus.BLOCKED,
    'stuck': ActionStatus.BLOCKED,
    # done
    'done': ActionStatus.DONE,
    'complete': ActionStatus.DONE,
    'completed': ActionStatus.DONE,
    'finished': ActionStatus.DONE,
    'closed': ActionStatus.DONE,
    'resolved': ActionStatus.DONE,
    # deferred
    'deferred': ActionStatus.DEFERRED,
    'postponed': ActionStatus.DEFERRED,
    'later': ActionStatus.DEFERRED,
    'backlog': ActionStatus.DEFERRED,
}

_NAMED_MONTH_FORMATS = (
    '%d %B %Y',
    '%d %b %Y',
    '%B %d, %Y',
    '%b %d, %Y',
    '%B %d %Y',
    '%b %d %Y',
)

_NUMERIC_TRIPLE = re.compile(r'^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$')


class NormalizedStatus(NamedTuple):
    status: ActionStatus
    needs_review: bool


def fingerprint(cells: Sequence[str | None]) -> str:
    """
    Hash the ordered mapped cells of a row.

    None and missing cells both become the empty string, so a short row and a
    row padded with None hash identically.
    """
    joined = FINGERPRINT_DELIMITER.join('' if cell is None else cell for cell in cells)
    return hashlib.md5(joined.encode('utf-8'), usedforsecurity=False).hexdigest()


def normalize_status(raw: str | None) -> NormalizedStatus:
    """
    Map free-text status onto the closed ActionStatus set.

    Empty or missing input is "absent" (no review). Unrecognised non-empty
    input falls back to not_started and is flagged for review.
    """
    key = (raw or '').strip().lower()
    if not key:
        return NormalizedStatus(ActionStatus.NOT_STARTED, False)

    status = STATUS_SYNONYMS.get(key)
    if status is None:
        return NormalizedStatus(ActionStatus.NOT_STARTED, True)
    return NormalizedStatus(status, False)


def parse_due_date(raw: str | None) -> datetime | None:
    """
    Parse a spreadsheet due date. Never raises.

    Order:
    1. ISO 8601 and month-name formats (unambiguous)
    2. A/B/YYYY or A-B-YYYY triples: a first component > 12 is the day (D/M/Y),
       a second component > 12 is the day (M/D/Y), otherwise D/M/Y

    Results are naive wall-clock datetimes. An ISO value with a UTC offset
    keeps the date and time as written in the cell and drops the offset
    without converting: "2024-01-25T23:30-05:00" is due 25 January at 23:30,
    not 26 January in UTC. The sheet is edited in the owner's own zone, and
    every comparison (overdue, at risk) is against naive local time.
    """
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None

    try:
        return datetime.fromisoformat(value).replace(tzinfo=None)
    except ValueError:
        pass

    for fmt in _NAMED_MONTH_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    match = _NUMERIC_TRIPLE.match(value)
    if not match:
        return None

    first, second, year = (int(part) for part in match.groups())
    if second > 12 >= first:
        day, month = second, first
    else:
        day, month = first, second

    try:
        return datetime(year, month, day)
    except ValueError:
        return None
