"""
Disqualification filter for the routing decision engine.

This module hard-eliminates hospitals that cannot safely take a case before any
scoring happens.
"""

import logging
from typing import List

from ems_routing.core.models import EmergencyCase, Hospital, ReadinessStatus
from ems_routing.core.profiles import EmergencyProfile

logger = logging.getLogger(__name__)

# Acuity at or above which a missing ICU bed disqualifies
CRITICAL_ACUITY = 4


def check_disqualification(
    hospital: Hospital, case: EmergencyCase, profile: EmergencyProfile
) -> List[str]:
    """
    Check whether a hospital must be excluded for a case.

    Args:
        hospital: Normalized hospital to check
        case: Emergency case being routed
        profile: Emergency profile for the case type

    Returns:
        List of disqualification reasons (empty if the hospital qualifies)
    """
    reasons: List[str] = []
    beds = hospital.bed_availability

    # Case acceptance mismatch
    if not hospital.accepts(profile.case_acceptance):
        reasons.append(f"Does not accept {case.emergency_type.value} cases")

    if hospital.emergency_readiness.status == ReadinessStatus.FULL:
        reasons.append("Hospital is FULL")

    if case.infection_risk.isolation_required or profile.requires_isolation:
        if beds.isolation_beds.available == 0:
            reasons.append("No isolation beds available (required)")

    if case.acuity_level >= CRITICAL_ACUITY and "icu" in profile.critical_beds:
        if beds.icu.available == 0:
            reasons.append("No ICU beds for critical case")

    if beds.available == 0 and beds.emergency.available == 0:
        reasons.append("No beds available")

    if reasons:
        logger.info(
            f"Hospital {hospital.name} disqualified for case {case.case_id}: {reasons}"
        )

    return reasons
