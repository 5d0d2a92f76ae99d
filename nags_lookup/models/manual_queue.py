from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class NagsManualQueueEntry(Document):
    """
    Manual escalation queue.
    One document per unresolved batch of glass positions.
    """
    vin: Indexed(str)
    glass_positions: List[str]

    # Vehicle snapshot
    vin_pattern: str
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    trim: Optional[str] = None
    body_style: Optional[str] = None

    transaction_id: Optional[int] = None
    customer_context: Optional[Dict[str, Any]] = None
    urgency: str = "normal"
    attempt_log: List[Dict[str, Any]] = []
    status: Indexed(str) = "pending"
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    resolved_nags_number: Optional[str] = None
    resolved_parts: Dict[str, str] = {}
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_source: Optional[str] = None
    resolution_notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "nags_manual_queue"
