"""
Mygrant Glass Adapter - JSON Portal API

Mygrant exposes a JSON VIN lookup behind its dealer portal login,
so no browser is needed: plain httpx requests with a session token.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from nags_lookup.adapters.distributor_adapter_interface import BaseDistributorAdapter
from nags_lookup.core.config import settings
from nags_lookup.core.exceptions import DistributorAuthError, DistributorError
from nags_lookup.schemas.lookup import GlassPartResult, GlassPosition, PartPrice, VehicleInfo
from nags_lookup.utils.scraper_utils import USER_AGENT, get_site_config, parse_features, parse_price_to_cents

logger = logging.getLogger(__name__)


class MygrantAdapter(BaseDistributorAdapter):
    """
    Mygrant implementation over the portal's JSON endpoints.
    Pass an httpx transport to route requests somewhere other than the network.
    """

    def __init__(self, credential_repository=None, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs):
        kwargs.setdefault("enabled", settings.ENABLE_MYGRANT_SCRAPER)
        kwargs.setdefault("base_url", settings.MYGRANT_BASE_URL)
        super().__init__(name="mygrant", credential_repository=credential_repository, **kwargs)
        self._transport = transport
        self._config = get_site_config("mygrant")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )

    async def login(self, username: str, password: str) -> Optional[str]:
        async with self._client() as client:
            response = await client.post(
                self._config["login_path"],
                json={"username": username, "password": password},
            )

        if response.status_code in (401, 403):
            raise DistributorAuthError(self.name, f"login rejected ({response.status_code})")
        response.raise_for_status()

        data = response.json() if response.content else {}
        token = data.get("token") or response.cookies.get("sess")
        logger.info(f"MYGRANT: Login {'successful' if token else 'returned no token'}")
        return token

    async def _fetch_parts(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> List[GlassPartResult]:
        headers = {}
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"

        async with self._client() as client:
            response = await client.post(
                self._config["lookup_path"],
                json={"vin": vehicle.vin_pattern.ljust(17, "0")},
                headers=headers,
            )

        if response.status_code == 401:
            self.invalidate_session()
            raise DistributorAuthError(self.name, "session expired")
        if response.status_code >= 400:
            raise DistributorError(self.name, f"HTTP {response.status_code}")

        data = response.json()
        parts = []
        for item in data.get("parts") or []:
            part = self._normalize(item)
            if part:
                parts.append(part)
        return parts

    def _normalize(self, item: Dict[str, Any]) -> Optional[GlassPartResult]:
        """Map one Mygrant part record onto GlassPartResult"""
        nags_number = item.get("nagsNumber") or item.get("partNumber")
        if not nags_number:
            return None

        cost = parse_price_to_cents(item.get("price"))
        confidence = item.get("confidence")
        if not isinstance(confidence, int) or isinstance(confidence, bool) or not 0 <= confidence <= 100:
            confidence = None

        return GlassPartResult(
            nags_part_number=str(nags_number),
            nags_part_number_alt=item.get("alternateNags") or None,
            glass_position=self.map_position(item.get("glassType") or item.get("position") or "windshield"),
            features=parse_features(item.get("features") or item.get("options") or ""),
            price=PartPrice(cost=cost, source=self.name) if cost else None,
            confidence=confidence,
        )
