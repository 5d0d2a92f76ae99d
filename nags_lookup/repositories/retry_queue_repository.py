from typing import Any, Dict, List, Optional
from datetime import datetime

from beanie import PydanticObjectId
from beanie.operators import Or, Set

from nags_lookup.models.retry_queue import ActivityLog, RetryQueueEntry
from nags_lookup.schemas.records import RetryEntry


class RetryQueueRepository:
    """Durable retry queue polled by RetryQueueWorker."""

    async def get_pending_entries(self, batch_size: int) -> List[RetryEntry]:
        now = datetime.utcnow()
        documents = await RetryQueueEntry.find(
            RetryQueueEntry.is_dead_letter == False,  # noqa: E712
            RetryQueueEntry.completed_at == None,  # noqa: E711
            Or(RetryQueueEntry.next_attempt_at == None, RetryQueueEntry.next_attempt_at <= now),  # noqa: E711
        ).sort("+created_at").limit(batch_size).to_list()
        return [self._to_entry(d) for d in documents]

    async def update_entry(self, entry_id: str, fields: Dict[str, Any]) -> None:
        fields = dict(fields, updated_at=datetime.utcnow())
        await RetryQueueEntry.find_one(RetryQueueEntry.id == PydanticObjectId(entry_id)).update(Set(fields))

    async def move_to_dead_letter(self, entry_id: str, reason: str) -> None:
        await self.update_entry(entry_id, {"is_dead_letter": True, "dead_letter_reason": reason})

    async def create_entry(
        self,
        operation: str,
        payload: Dict[str, Any],
        max_attempts: int = 5,
        next_attempt_at: Optional[datetime] = None
    ) -> str:
        document = RetryQueueEntry(
            operation=operation,
            payload=payload,
            max_attempts=max_attempts,
            next_attempt_at=next_attempt_at,
        )
        await document.insert()
        return str(document.id)

    async def create_activity_log(self, type: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        await ActivityLog(type=type, message=message, details=details).insert()

    def _to_entry(self, document: RetryQueueEntry) -> RetryEntry:
        return RetryEntry(
            id=str(document.id),
            operation=document.operation,
            payload=document.payload,
            attempts=document.attempts,
            max_attempts=document.max_attempts,
            next_attempt_at=document.next_attempt_at,
            last_error=document.last_error,
            is_dead_letter=document.is_dead_letter,
        )
