"""
NAGS Cache / Lookup Log Repositories

Narrow record-store layer over MongoDB (Beanie).
Services exchange pydantic records with these classes and never see documents.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from beanie.operators import Inc, Set
from pymongo.errors import DuplicateKeyError

from nags_lookup.models.nags_cache import NagsCacheEntry
from nags_lookup.models.lookup_log import NagsLookupLog
from nags_lookup.schemas.records import CacheRecord, LookupLogRow

logger = logging.getLogger(__name__)

# Usage telemetry survives an overwrite of the part fields
_PRESERVED_ON_UPDATE = {"lookup_count", "last_lookup_at", "created_at"}


class NagsCacheRepository:
    """Keyed on (vin_pattern, glass_position); at most one document per key."""

    def _by_key(self, vin_pattern: str, glass_position: str):
        return NagsCacheEntry.find_one(
            NagsCacheEntry.vin_pattern == vin_pattern,
            NagsCacheEntry.glass_position == glass_position,
        )

    async def find(self, vin_pattern: str, glass_position: str) -> Optional[CacheRecord]:
        entry = await self._by_key(vin_pattern, glass_position)
        if not entry:
            return None
        return CacheRecord.model_validate(entry)

    async def record_hit(self, vin_pattern: str, glass_position: str) -> None:
        await self._by_key(vin_pattern, glass_position).update(
            Inc({NagsCacheEntry.lookup_count: 1}),
            Set({NagsCacheEntry.last_lookup_at: datetime.utcnow()}),
        )

    async def upsert(self, record: CacheRecord) -> None:
        position = record.glass_position.value
        fields = record.model_dump()
        fields["glass_position"] = position
        update_fields = {k: v for k, v in fields.items() if k not in _PRESERVED_ON_UPDATE}

        try:
            await self._by_key(record.vin_pattern, position).upsert(
                Set(update_fields),
                on_insert=NagsCacheEntry(**fields),
            )
        except DuplicateKeyError:
            # A concurrent cascade inserted the same key first
            logger.info(f"NAGS CACHE: Insert race on {record.vin_pattern}/{position}, updating instead")
            await self._by_key(record.vin_pattern, position).update(Set(update_fields))

    async def count(self) -> int:
        return await NagsCacheEntry.find_all().count()


class LookupLogRepository:
    """Append-only audit rows."""

    async def insert(self, row: LookupLogRow) -> None:
        await NagsLookupLog(**row.model_dump()).insert()

    async def tier_summary(self) -> List[Dict[str, Any]]:
        """Lookup count and average duration grouped by resolving tier."""
        pipeline = [
            {
                "$group": {
                    "_id": "$resolved_by_tier",
                    "count": {"$sum": 1},
                    "avg_duration_ms": {"$avg": "$total_duration_ms"},
                }
            },
            {"$sort": {"_id": 1}},
        ]
        rows = await NagsLookupLog.aggregate(pipeline).to_list()
        return [
            {
                "tier": row["_id"],
                "count": row["count"],
                "avg_duration_ms": round(row.get("avg_duration_ms") or 0),
            }
            for row in rows
        ]
