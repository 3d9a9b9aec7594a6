"""Queue data models."""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Any, Optional

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)


@dataclass
class QueueItem:
    """A request to mirror one thread's archived state to Gmail."""

    id: Any
    user_id: Any
    thread_id: Any
    gmail_thread_id: str
    status: str = PENDING
    attempts: int = 0
    max_attempts: int = 3
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QueueItem":
        """Build an item from a database row, ignoring unknown columns."""
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in row.items() if k in known})

    @property
    def exhausted(self) -> bool:
        return self.status == FAILED and self.attempts >= self.max_attempts


@dataclass
class ArchiveResult:
    """Confirmation returned to the caller of archive_thread."""

    thread_id: Any
    remote_sync_queued: bool
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "thread_id": str(self.thread_id),
            "gmail_sync_queued": self.remote_sync_queued,
        }


@dataclass
class QueueStats:
    """Snapshot of the queue for monitoring."""

    by_status: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in STATUSES})
    retry_scheduled: int = 0
    exhausted: int = 0
    oldest_pending_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return sum(self.by_status.values())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total"] = self.total
        if self.oldest_pending_at:
            data["oldest_pending_at"] = self.oldest_pending_at.isoformat()
        return data
