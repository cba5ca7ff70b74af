"""
Acuity-based weight profiles and the golden-hour distance boost.
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from ems_routing.core.models import (
    CaseStatus,
    EmergencyCase,
    GoldenHourInfo,
    WeightProfile,
)
from ems_routing.utils.geolocation import round_half_up
from ems_routing.utils.timestamps import seconds_between

logger = logging.getLogger(__name__)

GOLDEN_HOUR_MINUTES = 60
GOLDEN_HOUR_BOOST = 0.10

# Replacement boosts for acuity 1-2 cases once dispatch has gone wrong
ESCALATION_REQUIRED_BOOST = 0.20
DISPATCHER_OVERRIDE_BOOST = 0.30
AMPLIFIED_MAX_ACUITY = 2

WEIGHT_PROFILES: Mapping[str, WeightProfile] = MappingProxyType(
    {
        # acuity >= 4
        "critical": WeightProfile(
            capability=0.60, specialists=0.10, equipment=0.03,
            beds=0.10, load=0.02, distance=0.15,
        ),
        # acuity 3
        "moderate": WeightProfile(
            capability=0.40, specialists=0.10, equipment=0.05,
            beds=0.15, load=0.05, distance=0.25,
        ),
        # acuity <= 2
        "minor": WeightProfile(
            capability=0.25, specialists=0.05, equipment=0.05,
            beds=0.10, load=0.05, distance=0.50,
        ),
    }
)


def acuity_band(acuity_level: Optional[int]) -> str:
    """Map an acuity level onto a weight profile name."""
    if acuity_level is None:
        return "moderate"
    if acuity_level >= 4:
        return "critical"
    if acuity_level <= 2:
        return "minor"
    return "moderate"


def get_weight_profile(acuity_level: Optional[int], distance_boost: float = 0.0) -> WeightProfile:
    """
    Select the base profile for an acuity level and apply a distance boost.

    The boost is taken half from capability and half from beds. A donor that
    cannot cover its half gives everything it has and the other donor covers
    the remainder, so weights stay non-negative and still sum to 1.0.

    Args:
        acuity_level: Case acuity, 1 to 5.
        distance_boost: Amount added to the distance weight.

    Returns:
        The effective WeightProfile.
    """
    base = WEIGHT_PROFILES[acuity_band(acuity_level)]
    if distance_boost <= 0:
        return base

    boost = min(distance_boost, base.capability + base.beds)
    half = boost / 2
    capability_share = min(half, base.capability)
    beds_share = min(boost - capability_share, base.beds)
    capability_share = boost - beds_share

    return base.model_copy(
        update={
            # float residue from exhausting a donor must not go below zero
            "capability": max(0.0, base.capability - capability_share),
            "beds": max(0.0, base.beds - beds_share),
            "distance": base.distance + boost,
        }
    )


def golden_hour_state(case: EmergencyCase, now: datetime) -> GoldenHourInfo:
    """
    Golden hour status for a case at a given time.

    A case without an incident timestamp is never in the golden hour.
    """
    escalation_boost = escalation_golden_hour_boost(case)

    elapsed = seconds_between(case.incident_timestamp, now)
    if case.incident_timestamp is not None and elapsed is None:
        # Incident stamped in the future; treat as just happened
        elapsed = 0.0

    in_golden_hour = elapsed is not None and elapsed / 60 <= GOLDEN_HOUR_MINUTES
    base_boost = GOLDEN_HOUR_BOOST if in_golden_hour else 0.0
    minutes_remaining = (
        round_half_up(GOLDEN_HOUR_MINUTES - elapsed / 60) if in_golden_hour else None
    )

    return GoldenHourInfo(
        in_golden_hour=in_golden_hour,
        modifier=max(base_boost, escalation_boost),
        minutes_remaining=minutes_remaining,
        escalation_boost=escalation_boost,
    )


def escalation_golden_hour_boost(case: EmergencyCase) -> float:
    """
    Distance boost for severe cases that escalated or were overridden.

    Replaces the base golden-hour boost rather than stacking with it.
    """
    if case.acuity_level > AMPLIFIED_MAX_ACUITY:
        return 0.0
    if case.status == CaseStatus.DISPATCHER_OVERRIDE or case.override_used:
        return DISPATCHER_OVERRIDE_BOOST
    if case.status == CaseStatus.ESCALATION_REQUIRED:
        return ESCALATION_REQUIRED_BOOST
    return 0.0
