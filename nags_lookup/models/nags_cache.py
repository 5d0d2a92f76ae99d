from beanie import Document, Indexed
from pydantic import Field
from pymongo import ASCENDING, IndexModel
from datetime import datetime
from typing import List, Optional


class NagsCacheEntry(Document):
    """
    NAGS parts cache.
    One document per (vin_pattern, glass_position), enforced by a unique index.
    """
    vin_pattern: str
    year: int
    make: str
    model: str
    trim: Optional[str] = None
    body_style: Optional[str] = None

    glass_position: str
    nags_part_number: Indexed(str)
    nags_part_number_alt: Optional[str] = None
    features: List[str] = []

    # Pricing (cents)
    last_known_cost: Optional[int] = None
    last_price_date: Optional[datetime] = None
    distributor_source: Optional[str] = None

    # Provenance
    source: str
    confidence: int = 100
    verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None

    # Usage stats
    lookup_count: int = 0
    last_lookup_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "nags_cache"
        indexes = [
            IndexModel(
                [("vin_pattern", ASCENDING), ("glass_position", ASCENDING)],
                name="idx_nags_cache_lookup",
                unique=True,
            ),
            IndexModel(
                [("year", ASCENDING), ("make", ASCENDING), ("model", ASCENDING)],
                name="idx_nags_cache_vehicle",
            ),
        ]
