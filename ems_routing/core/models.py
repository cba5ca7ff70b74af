"""
Defines the Pydantic data models used throughout the routing engine.

These models give a clear, validated structure to emergency cases, hospital
capability records, notification records and the derived scoring results that
the ranking engine hands to dispatchers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ems_routing.utils.timestamps import to_datetime


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Location(BaseModel):
    """Represents a geographical location with latitude and longitude."""

    latitude: float = Field(
        ..., description="Latitude in decimal degrees.", ge=-90.0, le=90.0
    )
    longitude: float = Field(
        ..., description="Longitude in decimal degrees.", ge=-180.0, le=180.0
    )

    @property
    def is_null_island(self) -> bool:
        """True for the 0,0 pair that missing coordinates usually collapse to."""
        return self.latitude == 0.0 and self.longitude == 0.0


class EmergencyType(str, Enum):
    """Emergency categories the scoring profiles are keyed by."""

    CARDIAC = "cardiac"
    TRAUMA = "trauma"
    BURN = "burn"
    MEDICAL = "medical"
    ACCIDENT = "accident"
    FIRE = "fire"
    INFECTIOUS = "infectious"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "EmergencyType":
        """Resolve a raw type string, collapsing legacy aliases onto a known type."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.OTHER
        key = value.strip().lower()
        key = EMERGENCY_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.OTHER


# Legacy type names still found in older case records
EMERGENCY_TYPE_ALIASES: Dict[str, str] = {
    "industrial": "trauma",
    "stroke": "cardiac",
}


class CaseStatus(str, Enum):
    """Lifecycle states of an emergency case."""

    CREATED = "created"
    TRIAGED = "triaged"
    DISPATCHED = "dispatched"
    AWAITING_RESPONSE = "awaiting_response"
    ACCEPTED = "accepted"
    ESCALATION_REQUIRED = "escalation_required"
    DISPATCHER_OVERRIDE = "dispatcher_override"
    ENROUTE = "enroute"
    HANDOVER_INITIATED = "handover_initiated"
    HANDOVER_ACKNOWLEDGED = "handover_acknowledged"
    COMPLETED = "completed"


# Statuses from which a case can never be escalated (again)
NON_ESCALATABLE_STATUSES = frozenset(
    {
        CaseStatus.ACCEPTED,
        CaseStatus.ESCALATION_REQUIRED,
        CaseStatus.DISPATCHER_OVERRIDE,
        CaseStatus.ENROUTE,
        CaseStatus.HANDOVER_INITIATED,
        CaseStatus.HANDOVER_ACKNOWLEDGED,
        CaseStatus.COMPLETED,
    }
)

# Statuses that mean a destination hospital is already settled
RESOLVED_STATUSES = frozenset(
    {
        CaseStatus.ACCEPTED,
        CaseStatus.DISPATCHER_OVERRIDE,
        CaseStatus.ENROUTE,
        CaseStatus.HANDOVER_INITIATED,
        CaseStatus.HANDOVER_ACKNOWLEDGED,
        CaseStatus.COMPLETED,
    }
)


class NotificationResponse(str, Enum):
    """Terminal responses of a hospital notification (pending is None)."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RejectionReason(str, Enum):
    """Mandatory reason codes a hospital gives when rejecting a case."""

    NO_ICU = "no_icu"
    NO_SPECIALIST = "no_specialist"
    OVER_CAPACITY = "over_capacity"
    EQUIPMENT_UNAVAILABLE = "equipment_unavailable"
    OTHER = "other"

    @property
    def label(self) -> str:
        return REJECTION_REASON_LABELS[self]


REJECTION_REASON_LABELS: Dict[RejectionReason, str] = {
    RejectionReason.NO_ICU: "No ICU Available",
    RejectionReason.NO_SPECIALIST: "No Specialist Available",
    RejectionReason.OVER_CAPACITY: "Over Capacity",
    RejectionReason.EQUIPMENT_UNAVAILABLE: "Equipment Unavailable",
    RejectionReason.OTHER: "Other",
}


class EscalationTrigger(str, Enum):
    """Which threshold caused an escalation."""

    REJECTIONS = "rejections"
    TIMEOUT = "timeout"
    BOTH = "both"


class ReadinessStatus(str, Enum):
    """Emergency department readiness as published by the hospital."""

    ACCEPTING = "accepting"
    DIVERTING = "diverting"
    FULL = "full"


class TraumaLevel(str, Enum):
    """Trauma center designation."""

    NONE = "none"
    LEVEL_1 = "level_1"
    LEVEL_2 = "level_2"
    LEVEL_3 = "level_3"


# ---------------------------------------------------------------------------
# Hospital capability record (normalized)
# ---------------------------------------------------------------------------


class BedCategory(BaseModel):
    """Total and available beds of one category."""

    total: float = Field(default=0, description="Total beds in this category.", ge=0)
    available: float = Field(
        default=0, description="Beds currently available in this category.", ge=0
    )


class BedAvailability(BaseModel):
    """Bed availability across the categories the scorers look at."""

    total: float = Field(default=0, description="Total beds in the hospital.", ge=0)
    available: float = Field(
        default=0, description="Total beds currently available.", ge=0
    )
    icu: BedCategory = Field(default_factory=BedCategory)
    emergency: BedCategory = Field(default_factory=BedCategory)
    trauma_beds: BedCategory = Field(default_factory=BedCategory)
    isolation_beds: BedCategory = Field(default_factory=BedCategory)
    pediatric_beds: BedCategory = Field(default_factory=BedCategory)

    def available_in(self, category: str) -> float:
        """Available beds for a category name such as 'icu' or 'trauma_beds'."""
        bucket = getattr(self, category, None)
        if isinstance(bucket, BedCategory):
            return bucket.available
        return 0


class EmergencyReadiness(BaseModel):
    """Current emergency department operating state."""

    status: ReadinessStatus = Field(default=ReadinessStatus.ACCEPTING)
    diversion_status: bool = Field(
        default=False, description="Whether the ED has declared ambulance diversion."
    )
    ambulance_queue: float = Field(
        default=0, description="Ambulances currently waiting to offload.", ge=0
    )

    @property
    def is_diverting(self) -> bool:
        return self.diversion_status or self.status == ReadinessStatus.DIVERTING


class Equipment(BaseModel):
    """Equipment counts relevant to emergency intake."""

    ventilators_total: float = Field(default=0, ge=0)
    ventilators_available: float = Field(default=0, ge=0)
    defibrillators: float = Field(default=0, ge=0)
    portable_xray: float = Field(default=0, ge=0)
    dialysis_machines: float = Field(default=0, ge=0)
    ct_scanners: float = Field(default=0, ge=0)


class ClinicalCapabilities(BaseModel):
    """Boolean clinical service flags."""

    stroke_center: bool = False
    emergency_surgery: bool = False
    ct_scan_available: bool = False
    mri_available: bool = False


class ServiceAvailability(BaseModel):
    """Round-the-clock service flags."""

    emergency_24x7: bool = Field(
        default=False, description="Emergency department staffed around the clock."
    )
    surgery_24x7: bool = Field(
        default=False, description="Operating theatre available around the clock."
    )


class CaseAcceptance(BaseModel):
    """Per-emergency-type case acceptance flags."""

    accepts_cardiac: bool = False
    accepts_trauma: bool = False
    accepts_burns: bool = False
    accepts_infectious: bool = False


class Hospital(BaseModel):
    """A fully populated hospital capability record.

    Produced by the capability normalizer from raw, possibly partial records;
    every field the scorers read has a safe default.
    """

    hospital_id: str = Field(
        ..., description="Unique identifier for the hospital.", min_length=1
    )
    name: str = Field(default="Unknown", description="Display name of the hospital.")
    location: Optional[Location] = Field(
        default=None, description="Hospital location; None when not published."
    )
    address: Optional[str] = None
    phone: Optional[str] = None
    case_acceptance: CaseAcceptance = Field(default_factory=CaseAcceptance)
    emergency_readiness: EmergencyReadiness = Field(default_factory=EmergencyReadiness)
    bed_availability: BedAvailability = Field(default_factory=BedAvailability)
    specialists: Dict[str, float] = Field(
        default_factory=dict, description="On-duty specialist counts by role."
    )
    equipment: Equipment = Field(default_factory=Equipment)
    clinical_capabilities: ClinicalCapabilities = Field(
        default_factory=ClinicalCapabilities
    )
    service_availability: ServiceAvailability = Field(
        default_factory=ServiceAvailability
    )
    trauma_level: TraumaLevel = Field(default=TraumaLevel.NONE)
    capacity_last_updated: Optional[datetime] = Field(
        default=None, description="When capacity data was last published."
    )

    @field_validator("capacity_last_updated")
    @classmethod
    def capacity_timestamp_utc(cls, v):
        return to_datetime(v)

    def accepts(self, flag: str) -> bool:
        """Read a case acceptance flag by attribute name."""
        return bool(getattr(self.case_acceptance, flag, False))


# ---------------------------------------------------------------------------
# Emergency case and notifications
# ---------------------------------------------------------------------------


class SupportRequired(BaseModel):
    """Patient-specific life support requirements."""

    ventilator: bool = False
    defibrillator: bool = False
    oxygen: bool = False


class InfectionRisk(BaseModel):
    """Infection control requirements."""

    isolation_required: bool = False


class NotificationRecord(BaseModel):
    """One hospital notification for a case.

    `response` moves from None to a terminal value exactly once.
    """

    hospital_id: str = Field(..., min_length=1)
    hospital_name: str = Field(default="Unknown")
    notified_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
    response: Optional[NotificationResponse] = None
    reason: Optional[str] = Field(
        default=None, description="Rejection reason code or free text for 'other'."
    )
    score: Optional[float] = None
    rank: Optional[int] = None

    @field_validator("notified_at", "responded_at")
    @classmethod
    def timestamps_utc(cls, v):
        return to_datetime(v)

    @property
    def is_pending(self) -> bool:
        return self.response is None


class EmergencyCase(BaseModel):
    """An emergency case and its dispatch workflow state."""

    case_id: str = Field(..., description="Unique identifier for the case.", min_length=1)
    acuity_level: int = Field(
        default=3, description="Clinical acuity level, 1 to 5.", ge=1, le=5
    )
    emergency_type: EmergencyType = Field(default=EmergencyType.OTHER)
    pickup_location: Optional[Location] = None
    incident_timestamp: Optional[datetime] = None
    support_required: SupportRequired = Field(default_factory=SupportRequired)
    infection_risk: InfectionRisk = Field(default_factory=InfectionRisk)
    status: CaseStatus = Field(default=CaseStatus.CREATED)
    hospital_notifications: List[NotificationRecord] = Field(default_factory=list)
    rejection_count: int = Field(default=0, ge=0)
    awaiting_response_since: Optional[datetime] = None
    accepted_hospital_id: Optional[str] = None
    override_used: bool = False
    override_hospital_id: Optional[str] = None
    escalation_reason: Optional[EscalationTrigger] = None

    created_at: datetime = Field(default_factory=utcnow)
    dispatched_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    escalation_triggered_at: Optional[datetime] = None
    override_at: Optional[datetime] = None
    enroute_at: Optional[datetime] = None
    handover_status: Optional[str] = None
    handover_initiated_at: Optional[datetime] = None
    handover_acknowledged_at: Optional[datetime] = None
    handover_summary: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None

    # Context carried for the handover summary
    patient: Dict[str, Any] = Field(default_factory=dict)
    vitals: Dict[str, Any] = Field(default_factory=dict)
    clinical_flags: List[str] = Field(default_factory=list)

    version: int = Field(default=0, description="Optimistic concurrency counter.")

    @field_validator("emergency_type", mode="before")
    @classmethod
    def resolve_emergency_type(cls, v):
        """Collapse legacy and unknown emergency type strings."""
        return EmergencyType.parse(v)

    @field_validator(
        "incident_timestamp",
        "awaiting_response_since",
        "created_at",
        "dispatched_at",
        "accepted_at",
        "escalation_triggered_at",
        "override_at",
        "enroute_at",
        "handover_initiated_at",
        "handover_acknowledged_at",
        "completed_at",
    )
    @classmethod
    def timestamps_utc(cls, v):
        """Naive datetimes are read as UTC so elapsed-time arithmetic never mixes kinds."""
        return to_datetime(v)

    def notification_for(self, hospital_id: str) -> Optional[NotificationRecord]:
        """Return the notification record for a hospital, if any."""
        for record in self.hospital_notifications:
            if record.hospital_id == hospital_id:
                return record
        return None

    @property
    def pending_notifications(self) -> List[NotificationRecord]:
        return [n for n in self.hospital_notifications if n.is_pending]

    @property
    def rejected_hospital_ids(self) -> List[str]:
        return [
            n.hospital_id
            for n in self.hospital_notifications
            if n.response == NotificationResponse.REJECTED
        ]

    @property
    def target_hospital_id(self) -> Optional[str]:
        """Hospital the patient is headed to, from acceptance or override."""
        return self.accepted_hospital_id or self.override_hospital_id


# ---------------------------------------------------------------------------
# Derived scoring results
# ---------------------------------------------------------------------------


class WeightProfile(BaseModel):
    """Factor weights for the weighted sum; always sums to 1.0."""

    model_config = ConfigDict(frozen=True)

    capability: float = Field(..., ge=0)
    specialists: float = Field(..., ge=0)
    equipment: float = Field(..., ge=0)
    beds: float = Field(..., ge=0)
    load: float = Field(..., ge=0)
    distance: float = Field(..., ge=0)

    def total(self) -> float:
        return (
            self.capability
            + self.specialists
            + self.equipment
            + self.beds
            + self.load
            + self.distance
        )


class GoldenHourInfo(BaseModel):
    """Golden hour state used to boost the distance weight."""

    in_golden_hour: bool = False
    modifier: float = Field(default=0.0, description="Distance weight boost applied.")
    minutes_remaining: Optional[int] = None
    escalation_boost: float = Field(
        default=0.0, description="Escalation-driven boost that replaced the base one."
    )


class ScoreBreakdown(BaseModel):
    """Per-factor raw scores and auxiliary counts behind a suitability score."""

    capability: float = 0
    specialists: float = 0
    equipment: float = 0
    beds: float = 0
    load: float = 0
    load_penalty: float = 0
    distance: float = 0
    freshness_multiplier: float = 1.0
    icu_count: float = 0
    specialist_count: float = 0


class ScoreResult(BaseModel):
    """Suitability of one hospital for one case."""

    hospital_id: str
    hospital_name: str = "Unknown"
    suitability_score: int = Field(default=0, ge=0, le=100)
    distance_km: float = 0.0
    eta_minutes: int = 0
    disqualified: bool = False
    disqualify_reasons: List[str] = Field(default_factory=list)
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    weights: Optional[WeightProfile] = None
    golden_hour: GoldenHourInfo = Field(default_factory=GoldenHourInfo)
    recommendation_reasons: List[str] = Field(default_factory=list)
    trauma_level: TraumaLevel = TraumaLevel.NONE
    rejection_penalty_applied: bool = False
    original_score: Optional[int] = None
