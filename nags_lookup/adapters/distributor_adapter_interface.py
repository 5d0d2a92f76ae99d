"""
Distributor Adapter Interface

Abstract interface for glass distributor portals (Mygrant, PGW, ...).
Every adapter turns (vehicle, positions) into GlassPartResult records and
owns its own login session and request spacing.
"""
import asyncio
import base64
import binascii
import logging
import random
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from nags_lookup.core.config import settings
from nags_lookup.core.exceptions import DistributorAuthError
from nags_lookup.schemas.lookup import GlassPartResult, GlassPosition, VehicleInfo

logger = logging.getLogger(__name__)


class DistributorAdapterInterface(ABC):
    """Abstract interface for distributor lookup adapters"""

    name: str

    @abstractmethod
    async def lookup_parts(
        self,
        vehicle: VehicleInfo,
        positions: List[GlassPosition]
    ) -> List[GlassPartResult]:
        """
        Look up glass parts for a vehicle.

        Args:
            vehicle: Decoded vehicle
            positions: Positions still unresolved

        Returns:
            Parts found, at most one per requested position. Never raises.
        """
        pass


def map_position(raw: Optional[str]) -> GlassPosition:
    """
    Map distributor position vocabulary onto GlassPosition by keyword.

    This is a lossy best-effort match: anything unrecognised becomes the
    windshield. Door keywords are checked before "front" so that
    "front left door" is not read as a windshield, and "rear" before
    "wind" so that "rear window" is back glass.
    """
    text = (raw or "").strip().lower().replace("-", " ").replace("_", " ")

    for position in GlassPosition:
        if text == position.value.replace("_", " "):
            return position

    if "vent" in text:
        return GlassPosition.VENT
    if "quarter" in text:
        return GlassPosition.QUARTER
    if "door" in text or "side" in text:
        words = text.split()
        rear = "rear" in words or "back" in words or "rr" in words or "rl" in words
        right = "right" in words or "passenger" in words or "rh" in words or "rr" in words or "fr" in words
        if rear:
            return GlassPosition.DOOR_RR if right else GlassPosition.DOOR_RL
        return GlassPosition.DOOR_FR if right else GlassPosition.DOOR_FL
    if "windshield" in text or "windscreen" in text:
        return GlassPosition.WINDSHIELD
    if "rear" in text or "back" in text:
        return GlassPosition.BACK_GLASS
    if "wind" in text or "front" in text:
        return GlassPosition.WINDSHIELD

    logger.debug(f"Unmapped glass position '{raw}', defaulting to windshield")
    return GlassPosition.WINDSHIELD


class BaseDistributorAdapter(DistributorAdapterInterface):
    """
    Shared session, politeness and error handling for distributor adapters.

    Subclasses implement login() and _fetch_parts(); lookup_parts() wraps
    them so that a failing portal surfaces as "no parts found".
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        enabled: bool,
        credential_repository=None,
        min_delay_ms: Optional[int] = None,
        jitter_ms: Optional[int] = None,
        session_ttl: Optional[timedelta] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.credential_repository = credential_repository
        self.timeout = timeout if timeout is not None else settings.DISTRIBUTOR_TIMEOUT
        self.session_ttl = session_ttl or timedelta(hours=settings.DISTRIBUTOR_SESSION_TTL_HOURS)

        self.session_token: Optional[str] = None
        self.session_expires_at: Optional[datetime] = None

        # Politeness state, per adapter instance
        self.min_delay_ms = settings.DISTRIBUTOR_MIN_DELAY_MS if min_delay_ms is None else min_delay_ms
        self.jitter_ms = settings.DISTRIBUTOR_JITTER_MS if jitter_ms is None else jitter_ms
        self.last_request_at: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self._dispatch_lock = asyncio.Lock()

    @abstractmethod
    async def login(self, username: str, password: str) -> Optional[str]:
        """Log in to the portal and return a session token"""
        pass

    @abstractmethod
    async def _fetch_parts(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> List[GlassPartResult]:
        """Query the portal. May raise; lookup_parts() handles it."""
        pass

    async def lookup_parts(
        self,
        vehicle: VehicleInfo,
        positions: List[GlassPosition]
    ) -> List[GlassPartResult]:
        if not self.enabled:
            logger.debug(f"{self.name.upper()}: Disabled by feature flag")
            return []
        if not positions:
            return []

        try:
            await self._polite_delay()

            if not self.is_session_valid():
                await self._start_session()

            found = await self._fetch_parts(vehicle, positions)
            parts = self._select(found, positions)
            logger.info(f"{self.name.upper()}: Found {len(parts)} part(s) for {vehicle.vin_pattern}")
            await self._record_outcome(None)
            return parts

        except Exception as e:
            logger.warning(f"{self.name.upper()}: Lookup failed for {vehicle.vin_pattern}: {e}")
            await self._record_outcome(str(e) or type(e).__name__)
            return []

    def is_session_valid(self) -> bool:
        if not self.session_token or not self.session_expires_at:
            return False
        return datetime.utcnow() < self.session_expires_at

    def invalidate_session(self):
        self.session_token = None
        self.session_expires_at = None

    async def _polite_delay(self):
        """
        Keep at least min_delay_ms (+ jitter) between dispatches.
        The first dispatch after idle goes out immediately.
        """
        async with self._dispatch_lock:
            if self.last_request_at is not None:
                elapsed_ms = (self._clock() - self.last_request_at) * 1000
                if elapsed_ms < self.min_delay_ms:
                    wait_ms = self.min_delay_ms - elapsed_ms + random.randint(0, max(self.jitter_ms, 0))
                    logger.debug(f"{self.name.upper()}: Politeness delay {wait_ms:.0f}ms")
                    await self._sleep(wait_ms / 1000)
            self.last_request_at = self._clock()

    async def _start_session(self):
        credentials = None
        if self.credential_repository is not None:
            credentials = await self.credential_repository.get_active(self.name)

        if credentials is None:
            logger.warning(f"{self.name.upper()}: No stored credentials, continuing without login")
            return

        logger.info(f"{self.name.upper()}: Logging in as {credentials.username}")
        token = await self.login(credentials.username, self.decrypt_password(credentials.password_encrypted))
        if not token:
            raise DistributorAuthError(self.name, "login returned no session")

        self.session_token = token
        self.session_expires_at = datetime.utcnow() + self.session_ttl

    async def _record_outcome(self, error: Optional[str]):
        """Best-effort credential bookkeeping"""
        if self.credential_repository is None:
            return
        try:
            if error is None:
                await self.credential_repository.record_success(self.name)
            else:
                await self.credential_repository.record_failure(self.name, error)
        except Exception as e:
            logger.warning(f"{self.name.upper()}: Failed to record credential outcome: {e}")

    def _select(self, parts: List[GlassPartResult], positions: List[GlassPosition]) -> List[GlassPartResult]:
        """Keep the first part for each requested position"""
        selected: List[GlassPartResult] = []
        seen = set()
        for part in parts:
            if part.glass_position in positions and part.glass_position not in seen:
                seen.add(part.glass_position)
                selected.append(part)
        return selected

    @staticmethod
    def decrypt_password(encrypted: str) -> str:
        try:
            return base64.b64decode(encrypted, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return encrypted

    map_position = staticmethod(map_position)
