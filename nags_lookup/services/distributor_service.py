"""
Distributor Lookup Service - Tier 2

Fans a single request for the missing positions out to the registered
distributor adapters, in priority order, each only for what is still
unresolved.
"""
import logging
import time
from typing import Dict, List, Optional, Type

from nags_lookup.adapters.distributor_adapter_interface import (
    BaseDistributorAdapter,
    DistributorAdapterInterface,
)
from nags_lookup.adapters.mygrant_adapter import MygrantAdapter
from nags_lookup.adapters.pgw_scraper_adapter import PGWScraperAdapter
from nags_lookup.core.config import settings
from nags_lookup.repositories.credential_repository import CredentialRepository
from nags_lookup.schemas.lookup import GlassPartResult, GlassPosition, LookupSource, TierResult, VehicleInfo

logger = logging.getLogger(__name__)

ADAPTER_REGISTRY: Dict[str, Type[BaseDistributorAdapter]] = {
    "mygrant": MygrantAdapter,
    "pgw": PGWScraperAdapter,
}


def build_default_adapters(credential_repository=None) -> List[DistributorAdapterInterface]:
    """Instantiate the configured adapters in DISTRIBUTOR_PRIORITY order."""
    adapters = []
    for name in settings.DISTRIBUTOR_PRIORITY:
        adapter_cls = ADAPTER_REGISTRY.get(name)
        if adapter_cls is None:
            logger.warning(f"DISTRIBUTORS: No adapter registered for '{name}', skipping")
            continue
        adapters.append(adapter_cls(credential_repository=credential_repository))
    return adapters


class DistributorLookupService:
    """Service for distributor catalog lookups"""

    def __init__(self, adapters: Optional[List[DistributorAdapterInterface]] = None):
        if adapters is None:
            adapters = build_default_adapters(CredentialRepository())
        self.adapters = adapters

    async def lookup(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> TierResult:
        start = time.monotonic()
        parts: List[GlassPartResult] = []
        contributors: List[str] = []
        part_sources: Dict[GlassPosition, str] = {}

        for adapter in self.adapters:
            resolved = {p.glass_position for p in parts}
            remaining = [p for p in positions if p not in resolved]
            if not remaining:
                break

            try:
                found = await adapter.lookup_parts(vehicle, remaining)
            except Exception as e:
                # Adapters should not raise, but one bad adapter must not stop the others
                logger.warning(f"DISTRIBUTORS: {adapter.name} raised: {e}")
                continue

            added = 0
            for part in found:
                if part.glass_position in remaining and part.glass_position not in resolved:
                    resolved.add(part.glass_position)
                    parts.append(part)
                    part_sources[part.glass_position] = adapter.name
                    added += 1
            if added:
                contributors.append(adapter.name)

        if len(contributors) == 1:
            source = contributors[0]
        elif contributors:
            source = LookupSource.DISTRIBUTOR
        else:
            source = LookupSource.NONE

        return TierResult(
            success=bool(parts),
            source=source,
            parts=parts,
            part_sources=part_sources,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
