"""
Omega EDI Fallback Service - Tier 3

Authoritative but paid per call; only reached for positions that the
cache and every distributor left unresolved.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from nags_lookup.adapters.distributor_adapter_interface import map_position
from nags_lookup.core.config import settings
from nags_lookup.core.exceptions import OmegaServiceError
from nags_lookup.schemas.lookup import (
    GlassPartResult,
    GlassPosition,
    LookupSource,
    PartPrice,
    TierResult,
    VehicleInfo,
)
from nags_lookup.utils.scraper_utils import parse_features, parse_price_to_cents

logger = logging.getLogger(__name__)

PARTS_ENDPOINT = "/pricing/glass-parts"


class OmegaFallbackService:
    """Client for Omega EDI glass part pricing"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.OMEGA_API_BASE_URL).rstrip("/")
        self.api_key = settings.OMEGA_API_KEY if api_key is None else api_key
        self.timeout = settings.OMEGA_TIMEOUT
        self._transport = transport

    async def lookup(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> TierResult:
        start = time.monotonic()

        def result(parts: List[GlassPartResult], error: Optional[str] = None) -> TierResult:
            return TierResult(
                success=bool(parts),
                source=LookupSource.OMEGA,
                parts=parts,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=error,
            )

        if not self.api_key:
            logger.warning("OMEGA: OMEGA_API_KEY not configured, skipping tier 3")
            return result([], "Omega EDI not configured")
        if not positions:
            return result([])

        try:
            data = await self._request(vehicle, positions)
            parts = self._parse_parts(data, positions)
            logger.info(f"OMEGA: Resolved {len(parts)}/{len(positions)} position(s) for {vehicle.vin}")
            return result(parts)
        except (httpx.HTTPError, OmegaServiceError, ValueError) as e:
            logger.error(f"OMEGA: Lookup failed for {vehicle.vin}: {e}")
            return result([], str(e))
        except Exception as e:
            logger.error(f"OMEGA: Unexpected error for {vehicle.vin}: {e}")
            return result([], str(e) or type(e).__name__)

    async def _request(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> Dict[str, Any]:
        payload = {
            "vin": vehicle.vin,
            "year": vehicle.year,
            "make": vehicle.make,
            "model": vehicle.model,
            "glassPositions": [p.value for p in positions],
        }
        headers = {"api_key": self.api_key, "Content-Type": "application/json"}

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(PARTS_ENDPOINT, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            raise OmegaServiceError(f"Unexpected response type {type(data).__name__}")
        if data.get("success") is False:
            raise OmegaServiceError(data.get("message") or "Omega reported failure")
        return data

    def _parse_parts(self, data: Dict[str, Any], positions: List[GlassPosition]) -> List[GlassPartResult]:
        """
        Accepts both the parts endpoint shape ({"parts": [...]}) and the
        pricing breakdown shape ({"breakdown": {"parts": [...]}}).
        """
        items = data.get("parts")
        if items is None:
            breakdown = data.get("breakdown")
            items = breakdown.get("parts") if isinstance(breakdown, dict) else None
        if not isinstance(items, list):
            return []

        parts: List[GlassPartResult] = []
        seen = set()
        for item in items:
            if not isinstance(item, dict):
                continue
            nags_number = item.get("nagsNumber") or item.get("partNumber")
            if not nags_number or nags_number == "N/A":
                continue

            position = map_position(item.get("glassType") or item.get("position") or "windshield")
            if position not in positions or position in seen:
                continue
            seen.add(position)

            cost = parse_price_to_cents(item.get("price") if item.get("price") is not None else item.get("cost"))
            parts.append(GlassPartResult(
                nags_part_number=str(nags_number),
                nags_part_number_alt=item.get("alternateNags") or None,
                glass_position=position,
                features=parse_features(item.get("features") or ""),
                price=PartPrice(cost=cost, source=LookupSource.OMEGA) if cost else None,
            ))
        return parts


# Singleton instance
omega_fallback_service = OmegaFallbackService()
