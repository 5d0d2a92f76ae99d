"""
NAGS Cache Service - Tier 1

Point lookups keyed by (vin_pattern, glass_position) and keyed upserts of
parts resolved by the slower tiers. Confidence and the verified flag are
always derived from the storing source, never kept from a previous row.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from nags_lookup.repositories.nags_repository import NagsCacheRepository
from nags_lookup.schemas.lookup import (
    DISTRIBUTOR_CONFIDENCE,
    SOURCE_CONFIDENCE,
    GlassPartResult,
    GlassPosition,
    LookupSource,
    PartPrice,
    VehicleInfo,
)
from nags_lookup.schemas.records import CacheRecord

logger = logging.getLogger(__name__)


def confidence_for(source: str, declared: Optional[int] = None) -> Tuple[int, bool]:
    """
    Confidence and verified flag for a part stored from `source`.

    omega -> (100, True), manual -> (95, False), any distributor -> (85, False).
    A lower confidence declared by the source itself wins.
    """
    ceiling = SOURCE_CONFIDENCE.get(source, DISTRIBUTOR_CONFIDENCE)
    confidence = min(declared, ceiling) if declared is not None else ceiling
    return confidence, source == LookupSource.OMEGA


class CacheService:
    """Service for the NAGS parts cache"""

    def __init__(self, repository: Optional[NagsCacheRepository] = None):
        self.repository = repository or NagsCacheRepository()

    async def lookup(self, vin_pattern: str, glass_position: GlassPosition) -> Optional[GlassPartResult]:
        glass_position = GlassPosition(glass_position)
        record = await self.repository.find(vin_pattern, glass_position.value)
        if not record:
            return None

        # Usage stats (best-effort)
        try:
            await self.repository.record_hit(vin_pattern, glass_position.value)
        except Exception as e:
            logger.warning(f"NAGS CACHE: Failed to update usage stats for {vin_pattern}/{glass_position.value}: {e}")

        price = None
        if record.last_known_cost:
            price = PartPrice(
                cost=record.last_known_cost,
                source=record.distributor_source or "unknown",
                as_of_date=record.last_price_date or record.updated_at,
            )

        return GlassPartResult(
            nags_part_number=record.nags_part_number,
            nags_part_number_alt=record.nags_part_number_alt,
            glass_position=record.glass_position,
            features=record.features,
            price=price,
        )

    async def store(self, vehicle: VehicleInfo, part: GlassPartResult, source: str) -> None:
        """Upsert the part for (vehicle.vin_pattern, part.glass_position)."""
        confidence, verified = confidence_for(source, part.confidence)

        record = CacheRecord(
            vin_pattern=vehicle.vin_pattern,
            year=vehicle.year,
            make=vehicle.make,
            model=vehicle.model,
            trim=vehicle.trim,
            body_style=vehicle.body_style,
            glass_position=part.glass_position,
            nags_part_number=part.nags_part_number,
            nags_part_number_alt=part.nags_part_number_alt,
            features=list(part.features),
            last_known_cost=part.price.cost if part.price else None,
            last_price_date=part.price.as_of_date if part.price else None,
            distributor_source=part.price.source if part.price else None,
            source=source,
            confidence=confidence,
            verified=verified,
            updated_at=datetime.utcnow(),
        )
        await self.repository.upsert(record)
        logger.info(
            f"NAGS CACHE: Stored {part.nags_part_number} for {vehicle.vin_pattern}/{part.glass_position.value} "
            f"(source={source}, confidence={confidence})"
        )

    async def count(self) -> int:
        return await self.repository.count()


# Singleton instance
cache_service = CacheService()
