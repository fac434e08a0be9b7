"""
Pydantic models for canonical items, source mirrors, briefs and credentials.
"""

from .brief import BriefItem, DailyBrief, SlippingCommitment
from .credentials import AccessGrant, StoredCredential, TokenGrant
from .items import (
    ActionItemType,
    ActionStatus,
    ActiveNudge,
    CanonicalActionItem,
    ItemSource,
    Nudge,
    NudgeType,
    TERMINAL_STATUSES,
    UserAction,
    UserActionType,
    default_suggested_action,
    is_terminal_status,
)
from .sources import (
    OwnerDirectoryEntry,
    ParsedMessage,
    ParsedThread,
    SheetRow,
    SourceRowRecord,
    SourceThreadRecord,
)

__all__ = [
    # Items
    'ActionItemType',
    'ActionStatus',
    'ActiveNudge',
    'CanonicalActionItem',
    'ItemSource',
    'Nudge',
    'NudgeType',
    'TERMINAL_STATUSES',
    'UserAction',
    'UserActionType',
    'default_suggested_action',
    'is_terminal_status',
    # Sources
    'OwnerDirectoryEntry',
    'ParsedMessage',
    'ParsedThread',
    'SheetRow',
    'SourceRowRecord',
    'SourceThreadRecord',
    # Brief
    'BriefItem',
    'DailyBrief',
    'SlippingCommitment',
    # Credentials
    'AccessGrant',
    'StoredCredential',
    'TokenGrant',
]
