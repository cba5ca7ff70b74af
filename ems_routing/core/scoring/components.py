"""
Component scorers for hospital suitability.

Every scorer is a pure function of a normalized hospital, the case and the
emergency profile, and returns a FactorScore whose score is clamped to
[0, 100] together with short explanation strings for dispatchers.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ems_routing.core.models import EmergencyCase, Hospital, TraumaLevel
from ems_routing.core.profiles import DEFAULT_TRAUMA_LEVEL_SCORES, EmergencyProfile
from ems_routing.utils.geolocation import round_half_up
from ems_routing.utils.timestamps import seconds_between

logger = logging.getLogger(__name__)

# Capability points
BASE_ACCEPTANCE_POINTS = 30
SURGERY_24X7_POINTS = 10

# Specialist weighted count that earns a full score
SPECIALIST_SATURATION = 5
NEUTRAL_SPECIALIST_SCORE = 50

# Equipment points for patient-specific support
EQUIPMENT_BASE_SCORE = 50
VENTILATOR_PRESENT, VENTILATOR_ABSENT = 20, -40
DEFIBRILLATOR_PRESENT, DEFIBRILLATOR_ABSENT = 25, -40
OXYGEN_POINTS = 5

# Load penalties
DIVERSION_PENALTY = 50
QUEUE_PENALTY_PER_AMBULANCE = 6
MAX_QUEUE_PENALTY = 30
NO_24X7_EMERGENCY_PENALTY = 15

# Distance at which the distance score reaches zero
MAX_SCORED_DISTANCE_KM = 50

CAPABILITY_LABELS = {
    "stroke_center": "Stroke Center",
    "emergency_surgery": "Emergency Surgery",
    "ct_scan_available": "CT Scan",
    "mri_available": "MRI",
}

BED_LABELS = {
    "icu": "ICU beds",
    "emergency": "ER beds",
    "trauma_beds": "trauma beds",
    "isolation_beds": "isolation beds",
    "pediatric_beds": "pediatric beds",
}


class FactorScore(BaseModel):
    """Result of one component scorer."""

    score: float = Field(default=0, ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    count: float = Field(default=0, description="Auxiliary count used for tie-breaking.")
    penalty: float = Field(default=0, description="Points deducted, where applicable.")


def clamp_score(value: float) -> float:
    """Clamp a raw score into [0, 100]."""
    return max(0.0, min(100.0, value))


def _format_count(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _plural(value: float) -> str:
    return "" if value == 1 else "s"


def score_capability(
    hospital: Hospital, case: EmergencyCase, profile: EmergencyProfile
) -> FactorScore:
    """
    Score clinical capability for the emergency type.

    Args:
        hospital: Normalized hospital that passed disqualification.
        case: Emergency case.
        profile: Emergency profile for the case type.

    Returns:
        FactorScore capped at 100.
    """
    score = BASE_ACCEPTANCE_POINTS
    reasons = [f"Accepts {case.emergency_type.value} cases"]

    if profile.trauma_level_bonus and hospital.trauma_level != TraumaLevel.NONE:
        table = profile.trauma_level_scores or DEFAULT_TRAUMA_LEVEL_SCORES
        points = table.get(hospital.trauma_level, 0)
        score += points
        if points > 0:
            reasons.append(
                f"{hospital.trauma_level.value.replace('_', ' ').upper()} trauma center"
            )

    for capability, points in profile.capability_scores.items():
        if getattr(hospital.clinical_capabilities, capability, False):
            score += points
            reasons.append(f"Has {CAPABILITY_LABELS.get(capability, capability)}")

    if hospital.service_availability.surgery_24x7:
        score += SURGERY_24X7_POINTS
        reasons.append("24/7 surgery available")

    return FactorScore(score=clamp_score(score), reasons=reasons)


def score_specialists(hospital: Hospital, profile: EmergencyProfile) -> FactorScore:
    """Weighted on-duty specialist count; neutral 50 when the profile names none."""
    if not profile.specialist_weights:
        return FactorScore(score=NEUTRAL_SPECIALIST_SCORE)

    weighted = 0.0
    raw_count = 0.0
    reasons = []
    for role, weight in profile.specialist_weights.items():
        count = hospital.specialists.get(role, 0)
        weighted += count * weight
        raw_count += count
        if count > 0:
            reasons.append(
                f"{_format_count(count)} {role.replace('_', ' ')}{_plural(count)}"
            )

    score = round_half_up(weighted / SPECIALIST_SATURATION * 100)
    return FactorScore(score=clamp_score(score), reasons=reasons, count=raw_count)


def _equipment_available(hospital: Hospital, name: str) -> bool:
    equipment = hospital.equipment
    if name == "ventilator":
        return equipment.ventilators_available > 0
    if name == "defibrillator":
        return equipment.defibrillators > 0
    if name == "portable_xray":
        return equipment.portable_xray > 0
    if name == "dialysis":
        return equipment.dialysis_machines > 0
    if name == "ct_scanner":
        return equipment.ct_scanners > 0
    logger.debug(f"Unknown equipment type in profile: {name}")
    return False


def score_equipment(
    hospital: Hospital, case: EmergencyCase, profile: EmergencyProfile
) -> FactorScore:
    """
    Score equipment against patient support needs and the profile's equipment table.

    Required-but-missing support is penalized as heavily as it is rewarded when
    present, so a hospital that cannot ventilate a ventilated patient sinks.
    """
    score = EQUIPMENT_BASE_SCORE
    reasons = []
    support = case.support_required

    if support.ventilator:
        available = hospital.equipment.ventilators_available
        if available > 0:
            score += VENTILATOR_PRESENT
            reasons.append(f"Ventilator available ({_format_count(available)})")
        else:
            score += VENTILATOR_ABSENT
            reasons.append("Ventilator required but unavailable")

    if support.defibrillator:
        if hospital.equipment.defibrillators > 0:
            score += DEFIBRILLATOR_PRESENT
            reasons.append("Defibrillator available")
        else:
            score += DEFIBRILLATOR_ABSENT
            reasons.append("Defibrillator required but unavailable")

    if support.oxygen:
        score += OXYGEN_POINTS
        reasons.append("Oxygen support available")

    for name, delta in profile.equipment_scores.items():
        if _equipment_available(hospital, name):
            score += delta.present
        else:
            score += delta.absent

    return FactorScore(score=clamp_score(score), reasons=reasons)


def bed_curve(available_beds: float) -> float:
    """Three-tier bed availability curve."""
    if available_beds <= 0:
        return 0
    if available_beds >= 10:
        return min(100, 80 + (available_beds - 10) * 2)
    if available_beds >= 5:
        return 60 + (available_beds - 5) * 4
    return 20 + available_beds * 8


def score_beds(hospital: Hospital, profile: EmergencyProfile) -> FactorScore:
    """
    Score bed availability across the profile's bed categories.

    Falls back to general availability when none of the relevant categories
    has a free bed. The returned count is the ICU availability, used for
    tie-breaking.
    """
    beds = hospital.bed_availability
    icu_count = beds.icu.available
    available = 0.0
    reasons = []

    for bed_type in profile.bed_types:
        count = beds.available_in(bed_type)
        if count > 0:
            available += count
            reasons.append(f"{_format_count(count)} {BED_LABELS.get(bed_type, bed_type)}")

    if available == 0:
        available = beds.available
        if available > 0:
            reasons.append(f"{_format_count(available)} general beds")

    if available == 0:
        return FactorScore(score=0, reasons=["No beds available"], count=icu_count)

    score = round_half_up(bed_curve(available))
    return FactorScore(score=clamp_score(score), reasons=reasons, count=icu_count)


def score_load(hospital: Hospital) -> FactorScore:
    """Operational load: diversion, ambulance queue and 24/7 emergency coverage."""
    score = 100.0
    reasons = []
    readiness = hospital.emergency_readiness

    if readiness.is_diverting:
        score -= DIVERSION_PENALTY
        reasons.append("Currently on diversion")

    queue = readiness.ambulance_queue
    if queue > 0:
        score -= min(MAX_QUEUE_PENALTY, queue * QUEUE_PENALTY_PER_AMBULANCE)
        reasons.append(f"{_format_count(queue)} ambulance{_plural(queue)} in queue")

    if not hospital.service_availability.emergency_24x7:
        score -= NO_24X7_EMERGENCY_PENALTY
        reasons.append("Emergency not 24/7")

    score = clamp_score(score)
    return FactorScore(
        score=score,
        reasons=reasons or ["Low operational load"],
        penalty=100 - score,
    )


def score_distance(distance_km: float) -> float:
    """100 at 0 km, falling linearly to 0 at 50 km and beyond."""
    if distance_km <= 0:
        return 100
    if distance_km >= MAX_SCORED_DISTANCE_KM:
        return 0
    return clamp_score(round_half_up(100 - distance_km * 2))


def freshness_multiplier(
    last_updated: Optional[datetime], now: datetime
) -> Tuple[float, Optional[str]]:
    """
    Multiplier applied to the weighted score for stale capacity data.

    Args:
        last_updated: When capacity data was last published, if ever.
        now: Reference time.

    Returns:
        (multiplier, reason) where reason is None for fresh data.
    """
    if last_updated is None:
        return 0.8, "Capacity data not updated"

    elapsed = seconds_between(last_updated, now)
    hours = (elapsed or 0) / 3600

    if hours > 48:
        return 0.70, "Data very stale (48+ hrs)"
    if hours > 24:
        return 0.85, "Data stale (24+ hrs)"
    if hours > 12:
        return 0.95, "Data aging (12+ hrs)"
    return 1.0, None
