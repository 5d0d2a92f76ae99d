"""Shared fixtures: in-memory repositories, a sample vehicle and stub tiers.

Nothing here touches MongoDB or the network.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from nags_lookup.schemas.lookup import (
    GlassPartResult,
    GlassPosition,
    LookupSource,
    PartPrice,
    TierResult,
    VehicleInfo,
)
from nags_lookup.schemas.records import (
    CacheRecord,
    DistributorCredentialRecord,
    EscalationEntry,
    EscalationStatus,
    LookupLogRow,
    RetryEntry,
)
from nags_lookup.services.cache_service import CacheService
from nags_lookup.services.manual_escalation_service import ManualEscalationService


SAMPLE_VIN = "1HGCM82633A004352"
SAMPLE_PATTERN = "1HGCM82633A"


# === Fake repositories ===


class FakeCacheRepository:
    def __init__(self):
        self.rows: Dict[tuple, CacheRecord] = {}
        self.upserts: List[CacheRecord] = []
        self.fail_hits = False

    async def find(self, vin_pattern: str, glass_position: str) -> Optional[CacheRecord]:
        return self.rows.get((vin_pattern, glass_position))

    async def record_hit(self, vin_pattern: str, glass_position: str) -> None:
        if self.fail_hits:
            raise RuntimeError("counter update failed")
        row = self.rows[(vin_pattern, glass_position)]
        self.rows[(vin_pattern, glass_position)] = row.model_copy(
            update={"lookup_count": row.lookup_count + 1, "last_lookup_at": datetime.utcnow()}
        )

    async def upsert(self, record: CacheRecord) -> None:
        self.upserts.append(record)
        key = (record.vin_pattern, record.glass_position.value)
        existing = self.rows.get(key)
        if existing:
            record = record.model_copy(update={
                "lookup_count": existing.lookup_count,
                "last_lookup_at": existing.last_lookup_at,
                "created_at": existing.created_at,
            })
        self.rows[key] = record

    async def count(self) -> int:
        return len(self.rows)


class FakeLookupLogRepository:
    def __init__(self, fail: bool = False):
        self.rows: List[LookupLogRow] = []
        self.fail = fail

    async def insert(self, row: LookupLogRow) -> None:
        if self.fail:
            raise RuntimeError("log store unavailable")
        self.rows.append(row)

    async def tier_summary(self) -> List[Dict[str, Any]]:
        summary = []
        for tier in sorted({r.resolved_by_tier for r in self.rows}):
            rows = [r for r in self.rows if r.resolved_by_tier == tier]
            summary.append({
                "tier": tier,
                "count": len(rows),
                "avg_duration_ms": round(sum(r.total_duration_ms for r in rows) / len(rows)),
            })
        return summary


class FakeManualQueueRepository:
    def __init__(self, fail: bool = False):
        self.entries: Dict[str, EscalationEntry] = {}
        self.fail = fail

    async def insert(self, entry: EscalationEntry) -> str:
        if self.fail:
            raise RuntimeError("queue store unavailable")
        entry_id = str(len(self.entries) + 1)
        self.entries[entry_id] = entry.model_copy(update={"id": entry_id})
        return entry_id

    async def get(self, entry_id: str) -> Optional[EscalationEntry]:
        return self.entries.get(entry_id)

    async def list(self, status=EscalationStatus.PENDING, limit: int = 50) -> List[EscalationEntry]:
        entries = [e for e in self.entries.values() if status is None or e.status == status]
        return entries[:limit]

    async def update(self, entry_id: str, fields: Dict[str, Any]) -> Optional[EscalationEntry]:
        entry = self.entries.get(entry_id)
        if entry is None:
            return None
        entry = entry.model_copy(update=dict(fields, updated_at=datetime.utcnow()))
        self.entries[entry_id] = entry
        return entry

    async def top_missing_vehicles(self, limit: int = 10) -> List[Dict[str, Any]]:
        counts: Dict[tuple, int] = {}
        for entry in self.entries.values():
            if entry.status == EscalationStatus.PENDING:
                key = (entry.vehicle.year, entry.vehicle.make, entry.vehicle.model)
                counts[key] = counts.get(key, 0) + 1
        ranked = sorted(counts.items(), key=lambda kv: -kv[1])[:limit]
        return [{"year": y, "make": mk, "model": md, "count": c} for (y, mk, md), c in ranked]


class FakeCredentialRepository:
    def __init__(self, credentials: Optional[Dict[str, DistributorCredentialRecord]] = None):
        self.credentials = credentials or {}
        self.successes: List[str] = []
        self.failures: List[tuple] = []

    async def get_active(self, distributor: str) -> Optional[DistributorCredentialRecord]:
        return self.credentials.get(distributor)

    async def record_success(self, distributor: str) -> None:
        self.successes.append(distributor)

    async def record_failure(self, distributor: str, error: str) -> None:
        self.failures.append((distributor, error))


class FakeRetryQueueRepository:
    def __init__(self, entries: Optional[List[RetryEntry]] = None):
        self.entries: Dict[str, RetryEntry] = {e.id: e for e in entries or []}
        self.updates: List[tuple] = []
        self.dead_letters: Dict[str, str] = {}
        self.activity: List[tuple] = []

    async def get_pending_entries(self, batch_size: int) -> List[RetryEntry]:
        pending = [
            e for e in self.entries.values()
            if not e.is_dead_letter and e.id not in self.dead_letters
        ]
        return pending[:batch_size]

    async def update_entry(self, entry_id: str, fields: Dict[str, Any]) -> None:
        self.updates.append((entry_id, fields))

    async def move_to_dead_letter(self, entry_id: str, reason: str) -> None:
        self.dead_letters[entry_id] = reason

    async def create_activity_log(self, type: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.activity.append((type, message, details))

    async def create_entry(self, operation: str, payload: Dict[str, Any], max_attempts: int = 5,
                           next_attempt_at: Optional[datetime] = None) -> str:
        entry_id = f"r{len(self.entries) + 1}"
        self.entries[entry_id] = RetryEntry(
            id=entry_id,
            operation=operation,
            payload=payload,
            max_attempts=max_attempts,
            next_attempt_at=next_attempt_at,
        )
        return entry_id


# === Stub tiers ===


class StubDecoder:
    def __init__(self, vehicle: Optional[VehicleInfo] = None, raises: Optional[Exception] = None):
        self.vehicle = vehicle
        self.raises = raises
        self.calls: List[str] = []

    async def decode(self, vin: str) -> Optional[VehicleInfo]:
        self.calls.append(vin)
        if self.raises:
            raise self.raises
        return self.vehicle


class StubTier:
    """Tier 2/3 stand-in: answers from a fixed position -> part number table."""

    def __init__(self, source: str, parts: Optional[Dict[GlassPosition, str]] = None,
                 raises: Optional[Exception] = None, cost: Optional[int] = None):
        self.source = source
        self.parts = parts or {}
        self.raises = raises
        self.cost = cost
        self.calls: List[List[GlassPosition]] = []

    async def lookup(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> TierResult:
        self.calls.append(list(positions))
        if self.raises:
            raise self.raises
        found = [
            GlassPartResult(
                nags_part_number=number,
                glass_position=position,
                price=PartPrice(cost=self.cost, source=self.source) if self.cost else None,
            )
            for position, number in self.parts.items()
            if position in positions
        ]
        return TierResult(
            success=bool(found),
            source=self.source if found else LookupSource.NONE,
            parts=found,
        )


# === Fixtures ===


@pytest.fixture
def sample_vehicle() -> VehicleInfo:
    return VehicleInfo(
        vin=SAMPLE_VIN,
        vin_pattern=SAMPLE_PATTERN,
        year=2003,
        make="HONDA",
        model="Accord",
        trim="EX",
        body_style="Sedan/Saloon",
    )


@pytest.fixture
def cache_repository() -> FakeCacheRepository:
    return FakeCacheRepository()


@pytest.fixture
def cache(cache_repository) -> CacheService:
    return CacheService(cache_repository)


@pytest.fixture
def queue_repository() -> FakeManualQueueRepository:
    return FakeManualQueueRepository()


@pytest.fixture
def escalation(queue_repository) -> ManualEscalationService:
    return ManualEscalationService(queue_repository)


@pytest.fixture
def log_repository() -> FakeLookupLogRepository:
    return FakeLookupLogRepository()


@pytest.fixture
def windshield_part() -> GlassPartResult:
    return GlassPartResult(
        nags_part_number="FW02345GBYN",
        glass_position=GlassPosition.WINDSHIELD,
        features=["rain_sensor"],
        price=PartPrice(cost=24550, source="mygrant"),
    )
