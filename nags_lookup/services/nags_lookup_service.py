"""
NAGS Lookup Service - Tier Orchestrator

Resolves glass positions for a VIN through, in order:
1. Cache (nags_cache)
2. Distributor portals (one call for all missing positions)
3. Omega EDI (one call for what is still missing)
4. Manual research queue (one entry for the remainder)

Every invocation writes exactly one lookup log row. Tier failures are
absorbed into the missing-position bookkeeping; only a decode failure
ends the cascade early.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from nags_lookup.core.exceptions import NagsLookupError
from nags_lookup.repositories.nags_repository import LookupLogRepository
from nags_lookup.schemas.lookup import (
    AttemptLogEntry,
    GlassPartResult,
    GlassPosition,
    LookupRequest,
    LookupResult,
    LookupSource,
    TierResult,
    VehicleInfo,
)
from nags_lookup.schemas.records import EscalationEntry, LookupLogRow
from nags_lookup.services.cache_service import cache_service
from nags_lookup.services.distributor_service import DistributorLookupService
from nags_lookup.services.manual_escalation_service import manual_escalation_service
from nags_lookup.services.omega_fallback_service import omega_fallback_service
from nags_lookup.services.vin_decoder_service import vin_decoder_service

logger = logging.getLogger(__name__)


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _outcome(resolved: int, asked: int) -> str:
    if resolved == 0:
        return "miss"
    return "hit" if resolved == asked else "partial"


class NAGSLookupOrchestrator:
    """Sequences the lookup tiers and owns the lookup audit log"""

    def __init__(
        self,
        decoder=None,
        cache=None,
        distributors=None,
        omega=None,
        manual=None,
        lookup_log: Optional[LookupLogRepository] = None
    ):
        self.decoder = decoder or vin_decoder_service
        self.cache = cache or cache_service
        self.distributors = distributors or DistributorLookupService()
        self.omega = omega or omega_fallback_service
        self.manual = manual or manual_escalation_service
        self.lookup_log = lookup_log or LookupLogRepository()

    async def lookup(self, request: LookupRequest) -> LookupResult:
        start = time.monotonic()
        timings: Dict[str, int] = {}

        vehicle, decode_error = await self._decode(request.vin)
        if vehicle is None:
            result = LookupResult(
                success=False,
                vehicle=VehicleInfo.unknown(request.vin),
                resolved_by_tier=4,
                resolved_by_source=LookupSource.ERROR,
                duration_ms=_elapsed_ms(start),
                error=decode_error,
            )
            await self._log(request, result, timings)
            return result

        positions = request.expand_positions()
        logger.info(f"NAGS LOOKUP: {vehicle.vin} ({vehicle.display_name}) positions={[p.value for p in positions]}")

        parts: List[GlassPartResult] = []
        missing: List[GlassPosition] = []
        attempts: List[AttemptLogEntry] = []

        # Tier 1: cache
        tier_start = time.monotonic()
        for position in positions:
            try:
                found = await self.cache.lookup(vehicle.vin_pattern, position)
            except Exception as e:
                logger.warning(f"NAGS LOOKUP: Cache read failed for {position.value}: {e}")
                found = None
            if found:
                parts.append(found)
            else:
                missing.append(position)
        timings["tier1"] = _elapsed_ms(tier_start)
        attempts.append(AttemptLogEntry(
            tier=1, source=LookupSource.CACHE, outcome=_outcome(len(parts), len(positions))
        ))

        if not missing:
            return await self._finish(request, vehicle, parts, [], 1, LookupSource.CACHE, start, timings, cached=True)

        last_tier = 1 if parts else None
        last_source = LookupSource.CACHE

        # Tier 2: distributors, Tier 3: Omega EDI
        for tier, service in ((2, self.distributors), (3, self.omega)):
            tier_start = time.monotonic()
            tier_result = await self._run_tier(tier, service, vehicle, missing)
            timings[f"tier{tier}"] = _elapsed_ms(tier_start)

            new_parts = [p for p in tier_result.parts if p.glass_position in missing]
            store_source = LookupSource.OMEGA if tier == 3 else tier_result.source
            for part in new_parts:
                await self._store(vehicle, part, tier_result.part_sources.get(part.glass_position, store_source))

            resolved = {p.glass_position for p in new_parts}
            attempts.append(AttemptLogEntry(
                tier=tier,
                source=tier_result.source,
                outcome="error" if tier_result.error and not new_parts else _outcome(len(resolved), len(missing)),
                detail=tier_result.error,
            ))

            if new_parts:
                parts.extend(new_parts)
                missing = [p for p in missing if p not in resolved]
                last_tier, last_source = tier, store_source

            if not missing:
                return await self._finish(request, vehicle, parts, [], tier, last_source, start, timings)

        # Tier 4: manual research for whatever is left
        await self._escalate(request, vehicle, missing, attempts)

        if parts:
            return await self._finish(
                request, vehicle, parts, missing, last_tier, LookupSource.PARTIAL, start, timings
            )
        return await self._finish(request, vehicle, parts, missing, 4, LookupSource.MANUAL_QUEUE, start, timings)

    async def get_stats(self) -> Dict[str, Any]:
        """Cache size, hit rate and per-tier lookup counts from the audit log."""
        tiers = await self.lookup_log.tier_summary()
        total_lookups = sum(t["count"] for t in tiers)
        cache_hits = sum(t["count"] for t in tiers if t["tier"] == 1)
        avg_response = (
            round(sum(t["count"] * t["avg_duration_ms"] for t in tiers) / total_lookups)
            if total_lookups else 0
        )

        return {
            "totalCachedParts": await self.cache.count(),
            "totalLookups": total_lookups,
            "cacheHitRate": round(cache_hits / total_lookups, 3) if total_lookups else 0.0,
            "lookupsByTier": tiers,
            "avgResponseTimeMs": avg_response,
            "topMissingVehicles": await self.manual.top_missing_vehicles(10),
        }

    async def retry_lookup(self, payload: Dict[str, Any]) -> LookupResult:
        """
        Retry queue handler for the "nags_lookup" operation.
        Raises when the VIN could not be decoded so the entry is rescheduled.
        """
        result = await self.lookup(LookupRequest.model_validate(payload))
        if result.resolved_by_source == LookupSource.ERROR:
            raise NagsLookupError(result.error or "lookup failed")
        return result

    async def _decode(self, vin: str):
        try:
            vehicle = await self.decoder.decode(vin)
        except Exception as e:
            logger.error(f"NAGS LOOKUP: VIN decoder raised for {vin}: {e}")
            return None, f"VIN decode failed: {e}"
        if vehicle is None:
            return None, "Invalid VIN or decode failed"
        return vehicle, None

    async def _run_tier(self, tier: int, service, vehicle: VehicleInfo, missing: List[GlassPosition]) -> TierResult:
        try:
            return await service.lookup(vehicle, list(missing))
        except Exception as e:
            logger.error(f"NAGS LOOKUP: Tier {tier} failed for {vehicle.vin}: {e}")
            return TierResult(success=False, source=LookupSource.NONE, error=str(e) or type(e).__name__)

    async def _store(self, vehicle: VehicleInfo, part: GlassPartResult, source: str):
        try:
            await self.cache.store(vehicle, part, source)
        except Exception as e:
            logger.warning(f"NAGS LOOKUP: Cache write failed for {part.glass_position.value}: {e}")

    async def _escalate(
        self,
        request: LookupRequest,
        vehicle: VehicleInfo,
        missing: List[GlassPosition],
        attempts: List[AttemptLogEntry]
    ):
        entry = EscalationEntry(
            vin=vehicle.vin,
            glass_positions=missing,
            vehicle=vehicle,
            transaction_id=request.transaction_id,
            customer_context=request.customer_context,
            priority=request.priority,
            attempt_log=attempts,
        )
        try:
            await self.manual.queue_for_research(entry)
        except Exception as e:
            logger.warning(f"NAGS LOOKUP: Manual escalation failed for {vehicle.vin}: {e}")

    async def _finish(
        self,
        request: LookupRequest,
        vehicle: VehicleInfo,
        parts: List[GlassPartResult],
        missing: List[GlassPosition],
        tier: int,
        source: str,
        start: float,
        timings: Dict[str, int],
        cached: bool = False
    ) -> LookupResult:
        result = LookupResult(
            success=bool(parts),
            vehicle=vehicle,
            parts=parts,
            resolved_by_tier=tier,
            resolved_by_source=source,
            duration_ms=_elapsed_ms(start),
            cached=cached,
            error=f"Missing positions queued: {','.join(p.value for p in missing)}" if missing else None,
            missing_positions=missing,
        )
        logger.info(
            f"NAGS LOOKUP: {vehicle.vin} resolved by tier {tier} ({source}), "
            f"{len(parts)} part(s), {len(missing)} missing, {result.duration_ms}ms"
        )
        await self._log(request, result, timings)
        return result

    async def _log(self, request: LookupRequest, result: LookupResult, timings: Dict[str, int]):
        """Write the audit row. Failure is logged, never raised."""
        try:
            await self.lookup_log.insert(LookupLogRow(
                vin=request.vin,
                glass_position=",".join(
                    p.value if isinstance(p, GlassPosition) else str(p) for p in request.glass_positions
                ),
                resolved_by_tier=result.resolved_by_tier,
                resolved_by_source=result.resolved_by_source,
                total_duration_ms=result.duration_ms,
                tier1_duration_ms=timings.get("tier1"),
                tier2_duration_ms=timings.get("tier2"),
                tier3_duration_ms=timings.get("tier3"),
                success=result.success,
                nags_part_number=result.parts[0].nags_part_number if result.parts else None,
                error_message=result.error,
            ))
        except Exception as e:
            logger.warning(f"NAGS LOOKUP: Failed to write lookup log: {e}")


_orchestrator: Optional[NAGSLookupOrchestrator] = None


def get_nags_lookup() -> NAGSLookupOrchestrator:
    """Shared orchestrator; distributor adapters keep their politeness state across requests."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = NAGSLookupOrchestrator()
    return _orchestrator
