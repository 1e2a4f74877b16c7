"""
Data models for the sync queue and sync reports.

Payloads by operation kind:
    UPDATE_PROGRESS: {"progress": int, "status"?: str, "score"?: float | None}
    UPDATE_STATUS:   {"status": str}
    DELETE_ENTRY:    {"remote_id"?: int}

A "score" key that is present with a null value clears the remote score.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class OperationKind(Enum):
    UPDATE_PROGRESS = "updateProgress"
    UPDATE_STATUS = "updateStatus"
    DELETE_ENTRY = "deleteEntry"


@dataclass(frozen=True)
class QueuedOperation:
    """
    A pending remote write.

    Attributes:
        id: Queue row id; ties in created_at are broken by id.
        kind: What to send.
        media_id: AniList media id the operation targets.
        payload: Kind-specific fields (see module docstring).
        created_at: Aware UTC enqueue time. The queue drains FIFO on it.
        attempts: Failed drains so far.
    """
    id: int
    kind: OperationKind
    media_id: int
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    @classmethod
    def from_database_dict(cls, data: dict[str, Any]) -> "QueuedOperation":
        return cls(
            id=data["id"],
            kind=OperationKind(data["kind"]),
            media_id=data["media_id"],
            payload=dict(data["payload"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            attempts=data["attempts"],
        )


@dataclass
class SyncCursor:
    """
    Pull bookkeeping for one engine lifetime.

    Attributes:
        last_sync_at: End of the last successful pull of any kind. Bounds
                      the incremental window.
        last_full_sync_at: End of the last successful sync_all().
    """
    last_sync_at: datetime | None = None
    last_full_sync_at: datetime | None = None

    def is_stale(self, max_age: float) -> bool:
        """True when no pull has happened within max_age seconds."""
        if self.last_sync_at is None:
            return True
        return datetime.now(timezone.utc) - self.last_sync_at > timedelta(seconds=max_age)


@dataclass
class QueueReport:
    """
    Outcome of one process_queue() pass.

    skipped is True when another drain was already running and this call
    did nothing. deferred counts operations held back because an earlier
    operation for the same media failed in this pass.
    """
    applied: int = 0
    failed: int = 0
    deferred: int = 0
    remaining: int = 0
    skipped: bool = False
    errors: list[Exception] = field(default_factory=list)


@dataclass
class ReconcileReport:
    """Outcome of one pull."""
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    kept_local: int = 0
    skipped_pending_delete: int = 0
    full: bool = False
