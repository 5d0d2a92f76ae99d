from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from beanie import PydanticObjectId
from beanie.operators import Set

from nags_lookup.models.manual_queue import NagsManualQueueEntry
from nags_lookup.schemas.lookup import VehicleInfo
from nags_lookup.schemas.records import EscalationEntry, EscalationStatus

logger = logging.getLogger(__name__)


class ManualQueueRepository:
    """
    Repository for the manual escalation queue (MongoDB/Beanie).
    Inserts never dedupe: identical requests produce identical entries.
    """

    async def insert(self, entry: EscalationEntry) -> str:
        vehicle = entry.vehicle
        document = NagsManualQueueEntry(
            vin=entry.vin,
            glass_positions=[p.value for p in entry.glass_positions],
            vin_pattern=vehicle.vin_pattern,
            year=vehicle.year,
            make=vehicle.make,
            model=vehicle.model,
            trim=vehicle.trim,
            body_style=vehicle.body_style,
            transaction_id=entry.transaction_id,
            customer_context=entry.customer_context.model_dump() if entry.customer_context else None,
            urgency=entry.priority.value,
            attempt_log=[a.model_dump() for a in entry.attempt_log],
            status=entry.status.value,
        )
        await document.insert()
        return str(document.id)

    async def get(self, entry_id: str) -> Optional[EscalationEntry]:
        if not PydanticObjectId.is_valid(entry_id):
            return None
        document = await NagsManualQueueEntry.get(PydanticObjectId(entry_id))
        return self._to_entry(document) if document else None

    async def list(
        self,
        status: Optional[EscalationStatus] = EscalationStatus.PENDING,
        limit: int = 50
    ) -> List[EscalationEntry]:
        if status:
            query = NagsManualQueueEntry.find(NagsManualQueueEntry.status == status.value)
        else:
            query = NagsManualQueueEntry.find_all()
        documents = await query.sort("+created_at").limit(limit).to_list()
        return [self._to_entry(d) for d in documents]

    async def update(self, entry_id: str, fields: Dict[str, Any]) -> Optional[EscalationEntry]:
        if not PydanticObjectId.is_valid(entry_id):
            return None
        document = await NagsManualQueueEntry.get(PydanticObjectId(entry_id))
        if not document:
            return None

        fields = {k: (v.value if isinstance(v, EscalationStatus) else v) for k, v in fields.items()}
        fields["updated_at"] = datetime.utcnow()
        await document.update(Set(fields))
        return await self.get(entry_id)

    async def top_missing_vehicles(self, limit: int = 10) -> List[Dict[str, Any]]:
        pipeline = [
            {"$match": {"status": EscalationStatus.PENDING.value}},
            {
                "$group": {
                    "_id": {"year": "$year", "make": "$make", "model": "$model"},
                    "count": {"$sum": 1},
                }
            },
            {"$sort": {"count": -1}},
            {"$limit": limit},
        ]
        rows = await NagsManualQueueEntry.aggregate(pipeline).to_list()
        return [{**row["_id"], "count": row["count"]} for row in rows]

    def _to_entry(self, document: NagsManualQueueEntry) -> EscalationEntry:
        return EscalationEntry(
            id=str(document.id),
            vin=document.vin,
            glass_positions=document.glass_positions,
            vehicle=VehicleInfo(
                vin=document.vin,
                vin_pattern=document.vin_pattern,
                year=document.year or 0,
                make=document.make or "Unknown",
                model=document.model or "Unknown",
                trim=document.trim,
                body_style=document.body_style,
            ),
            transaction_id=document.transaction_id,
            customer_context=document.customer_context,
            priority=document.urgency,
            attempt_log=document.attempt_log,
            status=document.status,
            claimed_by=document.claimed_by,
            claimed_at=document.claimed_at,
            resolved_nags_number=document.resolved_nags_number,
            resolved_parts=document.resolved_parts,
            resolved_by=document.resolved_by,
            resolved_at=document.resolved_at,
            resolution_source=document.resolution_source,
            resolution_notes=document.resolution_notes,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )
