"""
Record Schemas

Plain pydantic shapes exchanged between services and repositories.
The Beanie documents in nags_lookup.models persist these; services never
touch the documents directly.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
import enum

from nags_lookup.schemas.lookup import (
    AttemptLogEntry,
    CustomerContext,
    GlassPosition,
    Priority,
    VehicleInfo,
)


class EscalationStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class CacheRecord(BaseModel):
    """One row per (vin_pattern, glass_position)"""
    model_config = ConfigDict(from_attributes=True)

    vin_pattern: str
    year: int
    make: str
    model: str
    trim: Optional[str] = None
    body_style: Optional[str] = None
    glass_position: GlassPosition
    nags_part_number: str
    nags_part_number_alt: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    last_known_cost: Optional[int] = None
    last_price_date: Optional[datetime] = None
    distributor_source: Optional[str] = None

    # Provenance
    source: str
    confidence: int = Field(100, ge=0, le=100)
    verified: bool = False

    # Usage telemetry
    lookup_count: int = 0
    last_lookup_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class EscalationEntry(BaseModel):
    """Unresolved positions queued for human research"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    vin: str
    glass_positions: List[GlassPosition]
    vehicle: VehicleInfo
    transaction_id: Optional[int] = None
    customer_context: Optional[CustomerContext] = None
    priority: Priority = Priority.NORMAL
    attempt_log: List[AttemptLogEntry] = Field(default_factory=list)
    status: EscalationStatus = EscalationStatus.PENDING
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    # Populated only on human resolution
    resolved_nags_number: Optional[str] = None
    resolved_parts: Dict[str, str] = Field(default_factory=dict)
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_source: Optional[str] = None
    resolution_notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class LookupLogRow(BaseModel):
    """Append-only audit row, one per orchestrator invocation"""
    vin: str
    glass_position: str  # requested positions, comma-joined
    resolved_by_tier: int
    resolved_by_source: str
    total_duration_ms: int
    tier1_duration_ms: Optional[int] = None
    tier2_duration_ms: Optional[int] = None
    tier3_duration_ms: Optional[int] = None
    success: bool
    nags_part_number: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DistributorCredentialRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    distributor: str
    login_url: str
    username: str
    password_encrypted: str
    is_active: bool = True


class RetryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    operation: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 5
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    is_dead_letter: bool = False
