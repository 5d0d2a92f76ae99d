"""
NAGS Lookup API Routes

Endpoints:
- POST /lookup - Resolve glass parts for a VIN
- POST /lookup/retry - Queue a lookup for the retry worker
- GET /stats - Cache and tier statistics
- GET /manual-queue - Pending manual research entries
- POST /manual-queue/{entry_id}/claim - Researcher claims an entry
- POST /manual-queue/{entry_id}/resolve - Record researched part numbers
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional, Union

from nags_lookup.core.exceptions import EscalationPositionError, EscalationStateError
from nags_lookup.schemas.lookup import (
    CustomerContext,
    GlassPartResult,
    GlassPosition,
    LookupRequest,
    LookupResult,
    LookupSource,
    Priority,
)
from nags_lookup.schemas.records import EscalationEntry
from nags_lookup.services.cache_service import CacheService, cache_service
from nags_lookup.services.manual_escalation_service import ManualEscalationService, manual_escalation_service
from nags_lookup.services.nags_lookup_service import NAGSLookupOrchestrator, get_nags_lookup
from nags_lookup.services.retry_queue_worker import RetryQueueWorker, retry_queue_worker

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependency providers (overridden in tests)

def get_lookup_service() -> NAGSLookupOrchestrator:
    return get_nags_lookup()


def get_escalation_service() -> ManualEscalationService:
    return manual_escalation_service


def get_cache_service() -> CacheService:
    return cache_service


def get_retry_worker() -> RetryQueueWorker:
    return retry_queue_worker


class NagsLookupRequest(BaseModel):
    """Request schema for a NAGS lookup"""
    vin: str = Field(..., min_length=1, description="Vehicle VIN")
    glassPositions: List[Union[GlassPosition, Literal["all"]]] = Field(..., min_length=1)
    transactionId: Optional[int] = None
    customerContext: Optional[CustomerContext] = None
    priority: Priority = Priority.NORMAL

    class Config:
        json_schema_extra = {
            "example": {
                "vin": "1HGCM82633A004352",
                "glassPositions": ["windshield", "door_fl"],
                "priority": "normal"
            }
        }

    def to_lookup_request(self) -> LookupRequest:
        return LookupRequest(
            vin=self.vin,
            glass_positions=self.glassPositions,
            transaction_id=self.transactionId,
            customer_context=self.customerContext,
            priority=self.priority,
        )


class ClaimRequest(BaseModel):
    researcher: Optional[str] = None


class ResolveRequest(BaseModel):
    """Researched part numbers keyed by glass position"""
    resolvedParts: Dict[GlassPosition, str] = Field(..., min_length=1)
    resolvedBy: str = Field(..., min_length=1)
    resolutionSource: str = Field("manual_research", description="e.g. phone call, catalog, dealer")
    notes: Optional[str] = None


@router.post(
    "/lookup",
    response_model=LookupResult,
    summary="Look up NAGS part numbers",
    description="Resolve glass parts through cache, distributors, Omega EDI and the manual queue."
)
async def lookup_parts(
    request: NagsLookupRequest,
    service: NAGSLookupOrchestrator = Depends(get_lookup_service)
):
    """
    Never fails for tier errors: unresolved positions come back in
    `missing_positions` and are queued for manual research.
    """
    return await service.lookup(request.to_lookup_request())


@router.post(
    "/lookup/retry",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a lookup for the retry worker",
    description="Stores the request; the retry worker re-runs it with backoff until the VIN decodes."
)
async def queue_lookup_retry(
    request: NagsLookupRequest,
    delaySeconds: int = Query(0, ge=0),
    worker: RetryQueueWorker = Depends(get_retry_worker)
):
    payload = request.to_lookup_request().model_dump(mode="json")
    entry_id = await worker.enqueue("nags_lookup", payload, delay_seconds=delaySeconds)
    return {"retryEntryId": entry_id}


@router.get("/stats", summary="Lookup statistics")
async def get_stats(service: NAGSLookupOrchestrator = Depends(get_lookup_service)):
    return await service.get_stats()


@router.get(
    "/manual-queue",
    response_model=List[EscalationEntry],
    summary="List pending manual research entries"
)
async def list_manual_queue(
    limit: int = Query(50, ge=1, le=500),
    service: ManualEscalationService = Depends(get_escalation_service)
):
    return await service.list_pending(limit)


@router.post(
    "/manual-queue/{entry_id}/claim",
    response_model=EscalationEntry,
    summary="Claim a manual research entry"
)
async def claim_entry(
    entry_id: str,
    request: Optional[ClaimRequest] = None,
    service: ManualEscalationService = Depends(get_escalation_service)
):
    try:
        entry = await service.mark_in_progress(entry_id, request.researcher if request else None)
    except EscalationStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Manual queue entry {entry_id} not found"
        )
    return entry


@router.post(
    "/manual-queue/{entry_id}/resolve",
    response_model=EscalationEntry,
    summary="Resolve a manual research entry",
    description="Marks the entry resolved and backfills the cache with the researched part numbers."
)
async def resolve_entry(
    entry_id: str,
    request: ResolveRequest,
    service: ManualEscalationService = Depends(get_escalation_service),
    cache: CacheService = Depends(get_cache_service)
):
    try:
        entry = await service.resolve(
            entry_id,
            resolved_parts=request.resolvedParts,
            resolved_by=request.resolvedBy,
            resolution_source=request.resolutionSource,
            notes=request.notes,
        )
    except EscalationStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except EscalationPositionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Manual queue entry {entry_id} not found"
        )

    # Backfill so the next lookup for this vehicle is a cache hit
    for position in entry.glass_positions:
        nags_number = entry.resolved_parts.get(position.value)
        if not nags_number:
            continue
        part = GlassPartResult(nags_part_number=nags_number, glass_position=position)
        try:
            await cache.store(entry.vehicle, part, LookupSource.MANUAL)
        except Exception as e:
            logger.warning(f"MANUAL QUEUE: Cache backfill failed for {entry.vin}/{position.value}: {e}")

    return entry
