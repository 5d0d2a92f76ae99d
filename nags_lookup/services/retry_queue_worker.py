"""
Retry Queue Worker

Polls the durable retry queue and re-drives failed operations through
registered async handlers, with exponential backoff and a dead-letter
cutoff.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from nags_lookup.core.config import settings
from nags_lookup.repositories.retry_queue_repository import RetryQueueRepository
from nags_lookup.schemas.records import RetryEntry

logger = logging.getLogger(__name__)

RetryHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


def backoff_seconds(attempts: int, max_backoff: int) -> int:
    """2**attempts seconds, capped at max_backoff."""
    return min(max_backoff, 2 ** attempts)


class RetryQueueWorker:
    """Background worker for the retry queue"""

    def __init__(
        self,
        repository: Optional[RetryQueueRepository] = None,
        handlers: Optional[Dict[str, RetryHandler]] = None,
        poll_interval: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_backoff: Optional[int] = None
    ):
        self.repository = repository or RetryQueueRepository()
        self.handlers: Dict[str, RetryHandler] = dict(handlers or {})
        self.poll_interval = poll_interval or settings.RETRY_QUEUE_POLL_SECONDS
        self.batch_size = batch_size or settings.RETRY_QUEUE_BATCH_SIZE
        self.max_backoff = max_backoff or settings.RETRY_MAX_BACKOFF_SECONDS
        self._task: Optional[asyncio.Task] = None

    def register(self, operation: str, handler: RetryHandler):
        self.handlers[operation] = handler

    async def enqueue(
        self,
        operation: str,
        payload: Dict[str, Any],
        max_attempts: Optional[int] = None,
        delay_seconds: int = 0
    ) -> str:
        """Add an operation to the retry queue; it is picked up on the next poll after the delay."""
        next_attempt = datetime.utcnow() + timedelta(seconds=delay_seconds) if delay_seconds else None
        entry_id = await self.repository.create_entry(
            operation,
            payload,
            max_attempts=max_attempts or settings.RETRY_DEFAULT_MAX_ATTEMPTS,
            next_attempt_at=next_attempt,
        )
        logger.info(f"RETRY WORKER: Queued {operation} as entry {entry_id}")
        return entry_id

    async def run_once(self) -> int:
        """Process one batch of due entries. Returns how many were picked up."""
        entries = await self.repository.get_pending_entries(self.batch_size)
        for entry in entries:
            await self._process(entry)
        return len(entries)

    async def _process(self, entry: RetryEntry):
        attempts = entry.attempts + 1
        await self.repository.update_entry(entry.id, {"attempts": attempts})

        handler = self.handlers.get(entry.operation)
        if handler is None:
            logger.warning(f"RETRY WORKER: Unknown operation '{entry.operation}' for entry {entry.id}")
            await self.repository.move_to_dead_letter(entry.id, "unknown operation")
            return

        try:
            await handler(entry.payload)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"RETRY WORKER: Entry {entry.id} ({entry.operation}) failed on attempt {attempts}: {error}")

            if attempts >= entry.max_attempts:
                await self.repository.move_to_dead_letter(entry.id, error)
                await self.repository.create_activity_log(
                    "retry_deadletter",
                    f"Retry entry {entry.id} moved to dead-letter",
                    {"entryId": entry.id, "operation": entry.operation, "error": error},
                )
                return

            next_attempt = datetime.utcnow() + timedelta(seconds=backoff_seconds(attempts, self.max_backoff))
            await self.repository.update_entry(entry.id, {"next_attempt_at": next_attempt, "last_error": error})
            await self.repository.create_activity_log(
                "retry_rescheduled",
                f"Retry entry {entry.id} rescheduled",
                {"entryId": entry.id, "nextAttempt": next_attempt.isoformat()},
            )
            return

        await self.repository.update_entry(entry.id, {"completed_at": datetime.utcnow(), "last_error": None})
        await self.repository.create_activity_log(
            "retry_processed",
            f"Retry entry {entry.id} processed for operation {entry.operation}",
            {"entryId": entry.id, "operation": entry.operation},
        )
        logger.info(f"RETRY WORKER: Entry {entry.id} ({entry.operation}) processed")

    async def _loop(self):
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"RETRY WORKER: Poll failed: {e}")
            await asyncio.sleep(self.poll_interval)

    def start(self) -> asyncio.Task:
        """Schedule the poll loop on the running event loop; the first poll runs immediately."""
        if self._task is None or self._task.done():
            logger.info(f"RETRY WORKER: Starting (interval={self.poll_interval}s, batch={self.batch_size})")
            self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("RETRY WORKER: Stopped")


# Singleton instance
retry_queue_worker = RetryQueueWorker()
