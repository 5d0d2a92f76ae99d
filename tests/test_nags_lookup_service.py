"""Tests for services/nags_lookup_service.py: tier cascade, escalation and audit log."""
import pytest

from conftest import (
    SAMPLE_PATTERN,
    SAMPLE_VIN,
    FakeLookupLogRepository,
    FakeManualQueueRepository,
    StubDecoder,
    StubTier,
)
from nags_lookup.adapters.distributor_adapter_interface import DistributorAdapterInterface
from nags_lookup.core.exceptions import DistributorError, NagsLookupError
from nags_lookup.schemas.lookup import (
    DEFAULT_POSITIONS,
    GlassPartResult,
    GlassPosition,
    LookupRequest,
    LookupSource,
    Priority,
)
from nags_lookup.services.distributor_service import DistributorLookupService
from nags_lookup.services.manual_escalation_service import ManualEscalationService
from nags_lookup.services.nags_lookup_service import NAGSLookupOrchestrator

W = GlassPosition.WINDSHIELD
B = GlassPosition.BACK_GLASS


@pytest.fixture
def distributors():
    return StubTier("mygrant")


@pytest.fixture
def omega():
    return StubTier(LookupSource.OMEGA)


@pytest.fixture
def orchestrator(sample_vehicle, cache, distributors, omega, escalation, log_repository):
    return NAGSLookupOrchestrator(
        decoder=StubDecoder(sample_vehicle),
        cache=cache,
        distributors=distributors,
        omega=omega,
        manual=escalation,
        lookup_log=log_repository,
    )


def request(*positions, **kwargs):
    return LookupRequest(vin=SAMPLE_VIN, glass_positions=list(positions), **kwargs)


class FixedAdapter(DistributorAdapterInterface):
    def __init__(self, name, numbers):
        self.name = name
        self.numbers = numbers

    async def lookup_parts(self, vehicle, positions):
        return [
            GlassPartResult(nags_part_number=number, glass_position=position)
            for position, number in self.numbers.items()
            if position in positions
        ]


class TestCacheTier:
    @pytest.mark.asyncio
    async def test_stored_part_resolves_at_tier_one(
        self, orchestrator, cache, sample_vehicle, windshield_part, distributors, omega
    ):
        await cache.store(sample_vehicle, windshield_part, "mygrant")

        result = await orchestrator.lookup(request(W))

        assert result.success is True
        assert result.resolved_by_tier == 1
        assert result.resolved_by_source == LookupSource.CACHE
        assert result.cached is True
        assert result.parts[0].nags_part_number == "FW02345GBYN"
        assert distributors.calls == []
        assert omega.calls == []

    @pytest.mark.asyncio
    async def test_cache_hit_is_not_rewritten(
        self, orchestrator, cache, cache_repository, sample_vehicle, windshield_part
    ):
        await cache.store(sample_vehicle, windshield_part, "mygrant")
        cache_repository.upserts.clear()

        await orchestrator.lookup(request(W))

        assert cache_repository.upserts == []
        assert cache_repository.rows[(SAMPLE_PATTERN, "windshield")].lookup_count == 1


class TestTierOrdering:
    @pytest.mark.asyncio
    async def test_distributor_resolution_skips_omega(self, orchestrator, distributors, omega):
        distributors.parts = {W: "FW00001"}
        omega.parts = {W: "FW99999"}

        result = await orchestrator.lookup(request(W))

        assert result.resolved_by_tier == 2
        assert result.resolved_by_source == "mygrant"
        assert result.parts[0].nags_part_number == "FW00001"
        assert omega.calls == []

    @pytest.mark.asyncio
    async def test_single_call_per_tier_for_all_missing(self, orchestrator, distributors, omega):
        await orchestrator.lookup(request(W, B, GlassPosition.DOOR_FL))

        assert distributors.calls == [[W, B, GlassPosition.DOOR_FL]]
        assert omega.calls == [[W, B, GlassPosition.DOOR_FL]]

    @pytest.mark.asyncio
    async def test_omega_only_asked_for_what_distributors_missed(self, orchestrator, distributors, omega):
        distributors.parts = {W: "FW00001"}
        omega.parts = {B: "FB00002"}

        result = await orchestrator.lookup(request(W, B))

        assert omega.calls == [[B]]
        assert result.resolved_by_tier == 3
        assert result.resolved_by_source == LookupSource.OMEGA
        assert {p.glass_position for p in result.parts} == {W, B}

    @pytest.mark.asyncio
    async def test_all_expands_to_default_positions(self, orchestrator, distributors):
        await orchestrator.lookup(request("all"))

        assert distributors.calls[0] == DEFAULT_POSITIONS

    @pytest.mark.asyncio
    async def test_each_cached_part_keeps_its_distributor(
        self, sample_vehicle, cache, cache_repository, omega, escalation, log_repository
    ):
        orchestrator = NAGSLookupOrchestrator(
            decoder=StubDecoder(sample_vehicle),
            cache=cache,
            distributors=DistributorLookupService([
                FixedAdapter("mygrant", {W: "FW00001"}),
                FixedAdapter("pgw", {B: "FB00002"}),
            ]),
            omega=omega,
            manual=escalation,
            lookup_log=log_repository,
        )

        result = await orchestrator.lookup(request(W, B))

        assert result.resolved_by_source == LookupSource.DISTRIBUTOR
        assert cache_repository.rows[(SAMPLE_PATTERN, "windshield")].source == "mygrant"
        assert cache_repository.rows[(SAMPLE_PATTERN, "back_glass")].source == "pgw"


class TestConcreteScenarios:
    @pytest.mark.asyncio
    async def test_windshield_resolved_by_omega(
        self, orchestrator, omega, cache_repository, queue_repository
    ):
        omega.parts = {W: "NAGS-TEST-1"}
        omega.cost = 12345

        result = await orchestrator.lookup(request("windshield"))

        assert result.success is True
        assert result.resolved_by_tier == 3
        assert result.resolved_by_source == "omega"
        assert result.parts[0].price.cost == 12345
        assert len(cache_repository.upserts) == 1
        assert cache_repository.upserts[0].source == "omega"
        assert cache_repository.upserts[0].verified is True
        assert queue_repository.entries == {}

    @pytest.mark.asyncio
    async def test_partial_escalates_back_glass_only(self, orchestrator, distributors, queue_repository):
        distributors.parts = {W: "FW00001"}

        result = await orchestrator.lookup(request("windshield", "back_glass"))

        assert result.success is True
        assert result.resolved_by_source == LookupSource.PARTIAL
        assert result.resolved_by_tier == 2
        assert result.missing_positions == [B]
        assert "back_glass" in result.error
        assert len(queue_repository.entries) == 1
        entry = next(iter(queue_repository.entries.values()))
        assert entry.glass_positions == [B]


class TestEscalation:
    @pytest.mark.asyncio
    async def test_escalation_lists_only_unresolved(
        self, orchestrator, cache, sample_vehicle, windshield_part, distributors, omega, queue_repository
    ):
        await cache.store(sample_vehicle, windshield_part, "mygrant")
        distributors.parts = {B: "FB00002"}
        omega.parts = {GlassPosition.DOOR_FL: "FD00003"}

        positions = [W, B, GlassPosition.DOOR_FL, GlassPosition.DOOR_FR, GlassPosition.DOOR_RL]
        result = await orchestrator.lookup(request(*positions))

        assert len(result.parts) == 3
        entry = next(iter(queue_repository.entries.values()))
        assert entry.glass_positions == [GlassPosition.DOOR_FR, GlassPosition.DOOR_RL]

    @pytest.mark.asyncio
    async def test_total_miss_queues_everything(self, orchestrator, queue_repository):
        result = await orchestrator.lookup(request(W, B, transaction_id=42, priority=Priority.HIGH))

        assert result.success is False
        assert result.resolved_by_tier == 4
        assert result.resolved_by_source == LookupSource.MANUAL_QUEUE
        assert result.parts == []
        entry = next(iter(queue_repository.entries.values()))
        assert entry.glass_positions == [W, B]
        assert entry.transaction_id == 42
        assert entry.priority == Priority.HIGH
        assert [a.tier for a in entry.attempt_log] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_escalation_failure_does_not_fail_lookup(
        self, sample_vehicle, cache, distributors, omega, log_repository
    ):
        orchestrator = NAGSLookupOrchestrator(
            decoder=StubDecoder(sample_vehicle),
            cache=cache,
            distributors=distributors,
            omega=omega,
            manual=ManualEscalationService(FakeManualQueueRepository(fail=True)),
            lookup_log=log_repository,
        )

        result = await orchestrator.lookup(request(W))

        assert result.resolved_by_source == LookupSource.MANUAL_QUEUE
        assert len(log_repository.rows) == 1

    @pytest.mark.asyncio
    async def test_no_escalation_when_fully_resolved(self, orchestrator, distributors, queue_repository):
        distributors.parts = {W: "FW00001", B: "FB00002"}

        await orchestrator.lookup(request(W, B))

        assert queue_repository.entries == {}


class TestFailureTolerance:
    @pytest.mark.asyncio
    async def test_throwing_distributor_tier_falls_through_to_omega(self, orchestrator, distributors, omega):
        distributors.raises = DistributorError("mygrant", "boom")
        omega.parts = {W: "FW00009"}

        result = await orchestrator.lookup(request(W))

        assert result.success is True
        assert result.resolved_by_tier == 3
        assert omega.calls == [[W]]

    @pytest.mark.asyncio
    async def test_throwing_omega_still_escalates(self, orchestrator, omega, queue_repository):
        omega.raises = RuntimeError("omega down")

        result = await orchestrator.lookup(request(W))

        assert result.resolved_by_source == LookupSource.MANUAL_QUEUE
        entry = next(iter(queue_repository.entries.values()))
        assert entry.attempt_log[-1].outcome == "error"
        assert entry.attempt_log[-1].detail == "omega down"

    @pytest.mark.asyncio
    async def test_audit_log_failure_is_swallowed(self, sample_vehicle, cache, distributors, omega, escalation):
        distributors.parts = {W: "FW00001"}
        orchestrator = NAGSLookupOrchestrator(
            decoder=StubDecoder(sample_vehicle),
            cache=cache,
            distributors=distributors,
            omega=omega,
            manual=escalation,
            lookup_log=FakeLookupLogRepository(fail=True),
        )

        result = await orchestrator.lookup(request(W))

        assert result.success is True


class TestDecodeFailure:
    @pytest.mark.asyncio
    async def test_undecodable_vin_is_terminal(self, cache, distributors, omega, escalation, queue_repository, log_repository):
        orchestrator = NAGSLookupOrchestrator(
            decoder=StubDecoder(None),
            cache=cache,
            distributors=distributors,
            omega=omega,
            manual=escalation,
            lookup_log=log_repository,
        )

        result = await orchestrator.lookup(LookupRequest(vin="BADVIN", glass_positions=[W]))

        assert result.success is False
        assert result.resolved_by_source == LookupSource.ERROR
        assert result.parts == []
        assert result.error
        assert distributors.calls == []
        assert omega.calls == []
        assert queue_repository.entries == {}
        assert len(log_repository.rows) == 1
        assert log_repository.rows[0].success is False

    @pytest.mark.asyncio
    async def test_decoder_exception_is_terminal(self, cache, distributors, omega, escalation, log_repository):
        orchestrator = NAGSLookupOrchestrator(
            decoder=StubDecoder(raises=RuntimeError("nhtsa down")),
            cache=cache,
            distributors=distributors,
            omega=omega,
            manual=escalation,
            lookup_log=log_repository,
        )

        result = await orchestrator.lookup(request(W))

        assert result.resolved_by_source == LookupSource.ERROR
        assert "nhtsa down" in result.error


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_exactly_one_row_per_lookup(self, orchestrator, distributors, log_repository):
        distributors.parts = {W: "FW00001"}

        await orchestrator.lookup(request(W))
        await orchestrator.lookup(request(W))
        await orchestrator.lookup(request(W, B))

        assert len(log_repository.rows) == 3
        assert [r.resolved_by_tier for r in log_repository.rows] == [2, 1, 1]

    @pytest.mark.asyncio
    async def test_row_carries_tier_timings(self, orchestrator, log_repository):
        await orchestrator.lookup(request(W, B))

        row = log_repository.rows[0]
        assert row.glass_position == "windshield,back_glass"
        assert row.tier1_duration_ms is not None
        assert row.tier2_duration_ms is not None
        assert row.tier3_duration_ms is not None
        assert row.error_message == "Missing positions queued: windshield,back_glass"


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_from_log_and_cache(self, orchestrator, distributors):
        distributors.parts = {W: "FW00001"}
        await orchestrator.lookup(request(W))
        await orchestrator.lookup(request(W))

        stats = await orchestrator.get_stats()

        assert stats["totalCachedParts"] == 1
        assert stats["totalLookups"] == 2
        assert stats["cacheHitRate"] == 0.5
        assert [t["tier"] for t in stats["lookupsByTier"]] == [1, 2]


class TestRetryHandler:
    @pytest.mark.asyncio
    async def test_retry_lookup_redrives_payload(self, orchestrator, distributors):
        distributors.parts = {W: "FW00001"}

        result = await orchestrator.retry_lookup({"vin": SAMPLE_VIN, "glass_positions": ["windshield"]})

        assert result.resolved_by_tier == 2

    @pytest.mark.asyncio
    async def test_retry_lookup_raises_on_decode_failure(self, orchestrator):
        orchestrator.decoder = StubDecoder(None)

        with pytest.raises(NagsLookupError):
            await orchestrator.retry_lookup({"vin": SAMPLE_VIN, "glass_positions": ["windshield"]})
