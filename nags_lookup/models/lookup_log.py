from beanie import Document
from pydantic import Field
from datetime import datetime
from typing import Optional


class NagsLookupLog(Document):
    """
    Lookup analytics.
    Insert-only: rows are never updated.
    """
    vin: str
    glass_position: str
    resolved_by_tier: Optional[int] = None
    resolved_by_source: Optional[str] = None
    total_duration_ms: Optional[int] = None
    tier1_duration_ms: Optional[int] = None
    tier2_duration_ms: Optional[int] = None
    tier3_duration_ms: Optional[int] = None
    success: bool
    nags_part_number: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "nags_lookup_log"
