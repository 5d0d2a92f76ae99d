from beanie import Document
from pydantic import Field
from datetime import datetime
from typing import Any, Dict, Optional


class RetryQueueEntry(Document):
    """
    Retry queue for failed external operations.
    Dead-lettered entries are kept for manual inspection.
    """
    operation: str
    payload: Dict[str, Any] = {}
    attempts: int = 0
    max_attempts: int = 5
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    is_dead_letter: bool = False
    dead_letter_reason: Optional[str] = None
    completed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "retry_queue"


class ActivityLog(Document):
    """Operational events (retry_rescheduled, retry_deadletter, retry_processed)"""
    type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "activity_logs"
