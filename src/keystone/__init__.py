"""
Keystone

Tracks what the account owner owes: reconciles a commitments spreadsheet,
classifies inbox threads into Due-From-Me items with OpenAI (and a
deterministic fallback), generates a daily-capped set of nudges and keeps
daily brief snapshots.
"""

__version__ = '0.1.0'

from .credentials import CredentialRefreshGuard
from .errors import (
    ClassificationError,
    ClientError,
    ConfigurationError,
    CredentialError,
    ItemNotFoundError,
    KeystoneError,
    MissingCredentialError,
    PipelineError,
    TokenRefreshError,
)
from .logging import (
    PipelineTimer,
    configure_logging,
    get_logger,
    logging_context,
)
from .normalize import fingerprint, normalize_status, parse_due_date
from .pipeline import (
    BriefGenerator,
    IngestionResult,
    ItemActionService,
    NudgeGenerator,
    ReconcileResult,
    SheetConfig,
    SheetReconciler,
    SyncDispatcher,
    ThreadClassifier,
    ThreadIngestionPipeline,
)
from .repository import KeystoneRepository

__all__ = [
    # Version
    '__version__',
    # Pipeline
    'BriefGenerator',
    'IngestionResult',
    'ItemActionService',
    'NudgeGenerator',
    'ReconcileResult',
    'SheetConfig',
    'SheetReconciler',
    'SyncDispatcher',
    'ThreadClassifier',
    'ThreadIngestionPipeline',
    # Store / credentials
    'KeystoneRepository',
    'CredentialRefreshGuard',
    # Normalization
    'fingerprint',
    'normalize_status',
    'parse_due_date',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'KeystoneError',
    'PipelineError',
    'ClientError',
    'ConfigurationError',
    'ClassificationError',
    'ItemNotFoundError',
    'CredentialError',
    'MissingCredentialError',
    'TokenRefreshError',
]
