"""
Manual Escalation Service - Tier 4

Durable queue of positions no automated tier could resolve. The
orchestrator only enqueues; claiming and resolving belong to the human
research workflow.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from nags_lookup.core.exceptions import EscalationPositionError, EscalationStateError
from nags_lookup.repositories.manual_queue_repository import ManualQueueRepository
from nags_lookup.schemas.lookup import GlassPosition
from nags_lookup.schemas.records import EscalationEntry, EscalationStatus

logger = logging.getLogger(__name__)


class ManualEscalationService:
    """Service for the manual research queue"""

    def __init__(self, repository: Optional[ManualQueueRepository] = None):
        self.repository = repository or ManualQueueRepository()

    async def queue_for_research(self, entry: EscalationEntry) -> Optional[str]:
        """
        Append one pending entry for the whole unresolved batch.

        Never raises: a failed enqueue is logged and reported as None.
        Identical requests are not deduplicated.
        """
        if not entry.glass_positions:
            return None
        try:
            entry = entry.model_copy(update={"status": EscalationStatus.PENDING})
            entry_id = await self.repository.insert(entry)
            positions = ",".join(p.value for p in entry.glass_positions)
            logger.info(
                f"MANUAL QUEUE: Queued {positions} for {entry.vin} "
                f"(priority={entry.priority.value}, id={entry_id})"
            )
            return entry_id
        except Exception as e:
            logger.warning(f"MANUAL QUEUE: Failed to queue {entry.vin} for research: {e}")
            return None

    async def get(self, entry_id: str) -> Optional[EscalationEntry]:
        return await self.repository.get(entry_id)

    async def list_pending(self, limit: int = 50) -> List[EscalationEntry]:
        return await self.repository.list(EscalationStatus.PENDING, limit)

    async def mark_in_progress(self, entry_id: str, researcher: Optional[str] = None) -> Optional[EscalationEntry]:
        entry = await self.repository.get(entry_id)
        if entry is None:
            return None
        if entry.status != EscalationStatus.PENDING:
            raise EscalationStateError(entry_id, entry.status.value, EscalationStatus.IN_PROGRESS.value)

        return await self.repository.update(entry_id, {
            "status": EscalationStatus.IN_PROGRESS,
            "claimed_by": researcher,
            "claimed_at": datetime.utcnow(),
        })

    async def resolve(
        self,
        entry_id: str,
        resolved_parts: Dict[GlassPosition, str],
        resolved_by: str,
        resolution_source: str,
        notes: Optional[str] = None
    ) -> Optional[EscalationEntry]:
        """
        Terminal transition. Every resolved position must be one the entry was
        queued for. Backfilling the cache with the resolved parts is the
        caller's job.
        """
        entry = await self.repository.get(entry_id)
        if entry is None:
            return None
        if entry.status == EscalationStatus.RESOLVED:
            raise EscalationStateError(entry_id, entry.status.value, EscalationStatus.RESOLVED.value)

        by_position = {GlassPosition(k).value: v for k, v in resolved_parts.items()}
        queued = {p.value for p in entry.glass_positions}
        unknown = sorted(set(by_position) - queued)
        if unknown or not by_position:
            raise EscalationPositionError(entry_id, unknown)
        ordered = [by_position[p.value] for p in entry.glass_positions if p.value in by_position]

        return await self.repository.update(entry_id, {
            "status": EscalationStatus.RESOLVED,
            "resolved_parts": by_position,
            "resolved_nags_number": ",".join(ordered),
            "resolved_by": resolved_by,
            "resolved_at": datetime.utcnow(),
            "resolution_source": resolution_source,
            "resolution_notes": notes,
        })

    async def top_missing_vehicles(self, limit: int = 10):
        return await self.repository.top_missing_vehicles(limit)


# Singleton instance
manual_escalation_service = ManualEscalationService()
