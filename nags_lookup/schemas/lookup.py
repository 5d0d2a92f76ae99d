from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional, Union
from datetime import datetime
import enum


# ============================================================================
# Enumerations
# ============================================================================

class GlassPosition(str, enum.Enum):
    """Physical location of a glass panel on the vehicle."""
    WINDSHIELD = "windshield"
    BACK_GLASS = "back_glass"
    DOOR_FL = "door_fl"
    DOOR_FR = "door_fr"
    DOOR_RL = "door_rl"
    DOOR_RR = "door_rr"
    VENT = "vent"
    QUARTER = "quarter"


# What "all" expands to. Vent and quarter glass must be requested explicitly.
ALL_POSITIONS = "all"
DEFAULT_POSITIONS: List[GlassPosition] = [
    GlassPosition.WINDSHIELD,
    GlassPosition.BACK_GLASS,
    GlassPosition.DOOR_FL,
    GlassPosition.DOOR_FR,
    GlassPosition.DOOR_RL,
    GlassPosition.DOOR_RR,
]


class Priority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class LookupSource:
    """Enum-like class for the sources a lookup can be resolved by"""
    CACHE = "cache"
    DISTRIBUTOR = "distributor"   # more than one distributor contributed
    OMEGA = "omega"
    MANUAL = "manual"
    PARTIAL = "partial"
    MANUAL_QUEUE = "manual_queue"
    ERROR = "error"
    NONE = "none"


# Confidence ceiling per cache source. Anything not listed is a distributor scrape.
SOURCE_CONFIDENCE: Dict[str, int] = {
    LookupSource.OMEGA: 100,
    LookupSource.MANUAL: 95,
}
DISTRIBUTOR_CONFIDENCE = 85


# ============================================================================
# Vehicle / Part Schemas
# ============================================================================

class VehicleInfo(BaseModel):
    """Decoded vehicle. Created once per request and never mutated."""
    model_config = ConfigDict(frozen=True)

    vin: str = Field(..., description="Normalized 17-character VIN")
    vin_pattern: str = Field(..., description="First 11 characters of the VIN")
    year: int = 0
    make: str = "Unknown"
    model: str = "Unknown"
    trim: Optional[str] = None
    body_style: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Return formatted vehicle name."""
        parts = [str(self.year) if self.year else None, self.make, self.model, self.trim]
        return " ".join(filter(None, parts))

    @classmethod
    def unknown(cls, vin: str) -> "VehicleInfo":
        """Placeholder returned alongside a decode failure"""
        normalized = (vin or "").strip().upper()
        return cls(vin=normalized, vin_pattern=normalized[:11])


class PartPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    cost: int = Field(..., ge=0, description="Cost in cents")
    source: str
    as_of_date: datetime = Field(default_factory=datetime.utcnow)


class GlassPartResult(BaseModel):
    """A resolved glass part. Immutable once returned by a tier."""
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "nags_part_number": "FW02345GBYN",
                "glass_position": "windshield",
                "features": ["rain_sensor", "heated"],
                "price": {"cost": 24550, "source": "mygrant", "as_of_date": "2024-05-01T12:00:00"}
            }
        },
    )

    nags_part_number: str = Field(..., min_length=1)
    nags_part_number_alt: Optional[str] = None
    glass_position: GlassPosition
    features: List[str] = Field(default_factory=list)
    price: Optional[PartPrice] = None
    # Set only when the source itself signals uncertainty
    confidence: Optional[int] = Field(None, ge=0, le=100)


# ============================================================================
# Lookup Request / Result
# ============================================================================

class CustomerContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    phone: Optional[str] = None


class LookupRequest(BaseModel):
    vin: str = Field(..., min_length=1)
    glass_positions: List[Union[GlassPosition, Literal["all"]]] = Field(..., min_length=1)
    transaction_id: Optional[int] = None
    customer_context: Optional[CustomerContext] = None
    priority: Priority = Priority.NORMAL

    def expand_positions(self) -> List[GlassPosition]:
        """Expand "all" to the default position set, otherwise dedupe in request order."""
        if ALL_POSITIONS in self.glass_positions:
            return list(DEFAULT_POSITIONS)

        positions: List[GlassPosition] = []
        for position in self.glass_positions:
            if position not in positions:
                positions.append(GlassPosition(position))
        return positions


class TierResult(BaseModel):
    """What one tier produced for the positions it was asked about"""
    success: bool
    source: str
    parts: List[GlassPartResult] = Field(default_factory=list)
    # Position -> adapter that produced it (tier 2 only)
    part_sources: Dict[GlassPosition, str] = Field(default_factory=dict)
    duration_ms: int = 0
    error: Optional[str] = None


class LookupResult(BaseModel):
    success: bool
    vehicle: VehicleInfo
    parts: List[GlassPartResult] = Field(default_factory=list)
    resolved_by_tier: Literal[1, 2, 3, 4]
    resolved_by_source: str
    duration_ms: int
    cached: bool = False
    error: Optional[str] = None
    missing_positions: List[GlassPosition] = Field(default_factory=list)


class AttemptLogEntry(BaseModel):
    tier: int
    source: str
    outcome: str  # "hit", "miss", "partial", "error"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    detail: Optional[str] = None
