"""
Sync module for anitrack.

    - models: OperationKind, QueuedOperation, SyncCursor, QueueReport, ReconcileReport
    - engine: SyncEngine (queue drain and list reconciliation)
"""

from anitrack.sync.engine import SyncEngine
from anitrack.sync.models import (
    OperationKind,
    QueuedOperation,
    QueueReport,
    ReconcileReport,
    SyncCursor,
)

__all__ = [
    "SyncEngine",
    "OperationKind",
    "QueuedOperation",
    "QueueReport",
    "ReconcileReport",
    "SyncCursor",
]
