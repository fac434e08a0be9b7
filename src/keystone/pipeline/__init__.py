"""
Pipeline components for Keystone.

Components:
- ThreadClassifier: OpenAI classification with heuristic fallback
- SheetReconciler: fingerprint diff of the commitments sheet
- ThreadIngestionPipeline: mail thread fetch, filter, classify, upsert
- NudgeGenerator: daily-capped reminders
- BriefGenerator: persisted daily brief snapshots
- ItemActionService: user-initiated status transitions
- SyncDispatcher: scheduled sheet + mail sync with fault isolation
"""

from .actions import ItemActionService
from .brief import BriefGenerator
from .classifier import Classification, ThreadClassifier, fallback_classify
from .dispatcher import SyncDispatcher, SyncResult
from .ingestion import IngestionResult, ThreadIngestionPipeline
from .nudges import NudgeGenerator
from .reconciler import ReconcileResult, SheetConfig, SheetReconciler

__all__ = [
    'BriefGenerator',
    'Classification',
    'IngestionResult',
    'ItemActionService',
    'NudgeGenerator',
    'ReconcileResult',
    'SheetConfig',
    'SheetReconciler',
    'SyncDispatcher',
    'SyncResult',
    'ThreadClassifier',
    'ThreadIngestionPipeline',
    'fallback_classify',
]
