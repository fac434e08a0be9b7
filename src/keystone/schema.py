"""
Relational schema for the Keystone store.

Tables (SQLAlchemy Core, portable across PostgreSQL/asyncpg and SQLite/aiosqlite):
- due_from_me_items   canonical items, UNIQUE (source, source_id)
- source_threads      mail thread mirror, UNIQUE thread_id
- source_rows         spreadsheet row mirror
- owner_directory     display name -> email, UNIQUE email
- nudges              generated reminders
- user_actions        append-only audit log
- daily_briefs        generated brief snapshots (JSON content)
- app_settings        key/value JSON (credential under 'oauth_tokens')
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

metadata = MetaData()

items_table = Table(
    'due_from_me_items',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('type', String(32), nullable=False),
    Column('status', String(32), nullable=False),
    Column('source', String(32), nullable=False),
    Column('source_id', String(255), nullable=False),
    Column('title', Text, nullable=False, default=''),
    Column('blocking_who', String(320)),
    Column('owner_email', String(320)),
    Column('first_seen_at', DateTime, nullable=False),
    Column('last_seen_at', DateTime, nullable=False),
    Column('status_changed_at', DateTime),
    Column('snoozed_until', DateTime),
    Column('confidence_score', Integer),
    Column('rationale', Text),
    Column('suggested_action', Text),
    Column('notes', Text),
    Column('created_at', DateTime, nullable=False),
    Column('updated_at', DateTime, nullable=False),
    UniqueConstraint('source', 'source_id', name='uq_items_source_source_id'),
)

threads_table = Table(
    'source_threads',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('thread_id', String(255), nullable=False, unique=True),
    Column('message_id', String(255)),
    Column('subject', Text, nullable=False, default=''),
    Column('snippet', Text),
    Column('from_address', String(320)),
    Column('to_addresses', JSON, nullable=False),
    Column('cc_addresses', JSON, nullable=False),
    Column('received_at', DateTime),
    Column('labels', JSON, nullable=False),
    Column('is_mailing_list', Boolean, nullable=False, default=False),
    Column('due_from_me_type', String(32)),
    Column('confidence_score', Integer),
    Column('rationale', Text),
    Column('is_processed', Boolean, nullable=False, default=False),
    Column('created_at', DateTime, nullable=False),
    Column('updated_at', DateTime, nullable=False),
)

rows_table = Table(
    'source_rows',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('commitment', Text, nullable=False),
    Column('owner_label', String(255)),
    Column('owner_email', String(320)),
    Column('needs_owner_mapping', Boolean, nullable=False, default=False),
    Column('due_date', DateTime),
    Column('status', String(32), nullable=False),
    Column('raw_status', String(255)),
    Column('needs_review', Boolean, nullable=False, default=False),
    Column('comments', Text),
    Column('row_number', Integer),
    Column('fingerprint', String(64), nullable=False),
    Column('first_seen_at', DateTime, nullable=False),
    Column('last_seen_at', DateTime, nullable=False),
    Column('last_synced_at', DateTime, nullable=False),
    Column('disappeared_at', DateTime),
)

owner_directory_table = Table(
    'owner_directory',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('display_name', String(255), nullable=False),
    Column('email', String(320), nullable=False, unique=True),
    Column('created_at', DateTime, nullable=False),
)

nudges_table = Table(
    'nudges',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('type', String(32), nullable=False),
    Column('item_id', Uuid, ForeignKey('due_from_me_items.id'), nullable=False),
    Column('reason', Text, nullable=False),
    Column('sent_at', DateTime, nullable=False),
    Column('dismissed_at', DateTime),
    Column('created_at', DateTime, nullable=False),
)

user_actions_table = Table(
    'user_actions',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('item_id', Uuid, ForeignKey('due_from_me_items.id'), nullable=False),
    Column('action', String(32), nullable=False),
    Column('previous_value', Text),
    Column('new_value', Text),
    Column('item_type', String(32)),
    Column('item_source', String(32)),
    Column('created_at', DateTime, nullable=False),
)

daily_briefs_table = Table(
    'daily_briefs',
    metadata,
    Column('id', Uuid, primary_key=True),
    Column('generated_at', DateTime, nullable=False, index=True),
    Column('content', JSON, nullable=False),
    Column('created_at', DateTime, nullable=False),
)

app_settings_table = Table(
    'app_settings',
    metadata,
    Column('key', String(128), primary_key=True),
    Column('value', JSON, nullable=False),
    Column('updated_at', DateTime, nullable=False),
)
