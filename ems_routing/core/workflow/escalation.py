"""
Acuity-aware escalation rules.

A case escalates when too many hospitals reject it or when no hospital has
accepted within the timeout for its acuity level. These functions are pure;
the ResponseEngine applies their verdict inside a case transaction.
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ems_routing.core.models import (
    NON_ESCALATABLE_STATUSES,
    EmergencyCase,
    EscalationTrigger,
)
from ems_routing.utils.geolocation import round_half_up
from ems_routing.utils.timestamps import to_datetime

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_ACUITY = 3


class EscalationThreshold(BaseModel):
    """Rejection count and response timeout that trigger escalation."""

    model_config = ConfigDict(frozen=True)

    max_rejections: int
    timeout_seconds: int


class EscalationDecision(BaseModel):
    """Outcome of an escalation evaluation."""

    model_config = ConfigDict(frozen=True)

    should_escalate: bool = False
    reason: Optional[EscalationTrigger] = None


ESCALATION_THRESHOLDS: Mapping[int, EscalationThreshold] = MappingProxyType(
    {
        1: EscalationThreshold(max_rejections=1, timeout_seconds=60),
        2: EscalationThreshold(max_rejections=2, timeout_seconds=90),
        3: EscalationThreshold(max_rejections=3, timeout_seconds=120),
        4: EscalationThreshold(max_rejections=3, timeout_seconds=180),
        5: EscalationThreshold(max_rejections=3, timeout_seconds=180),
    }
)


def get_escalation_threshold(acuity_level: Optional[int]) -> EscalationThreshold:
    """Threshold for an acuity level; unknown levels use the level 3 entry."""
    return ESCALATION_THRESHOLDS.get(
        acuity_level, ESCALATION_THRESHOLDS[DEFAULT_THRESHOLD_ACUITY]
    )


def _elapsed_awaiting(case: EmergencyCase, now: datetime) -> Optional[float]:
    if case.awaiting_response_since is None:
        return None
    return (to_datetime(now) - to_datetime(case.awaiting_response_since)).total_seconds()


def evaluate_escalation(case: EmergencyCase, now: datetime) -> EscalationDecision:
    """
    Decide whether a case should escalate.

    Cases that are already escalated or resolved never escalate again.

    Args:
        case: Current case state.
        now: Reference time for the timeout check.

    Returns:
        EscalationDecision naming the trigger, or 'both' when both thresholds are hit.
    """
    if case.status in NON_ESCALATABLE_STATUSES:
        return EscalationDecision()

    threshold = get_escalation_threshold(case.acuity_level)
    rejection_hit = case.rejection_count >= threshold.max_rejections

    elapsed = _elapsed_awaiting(case, now)
    timeout_hit = elapsed is not None and elapsed >= threshold.timeout_seconds

    if rejection_hit and timeout_hit:
        reason = EscalationTrigger.BOTH
    elif rejection_hit:
        reason = EscalationTrigger.REJECTIONS
    elif timeout_hit:
        reason = EscalationTrigger.TIMEOUT
    else:
        return EscalationDecision()

    logger.debug(
        f"Case {case.case_id} meets escalation threshold: {reason.value} "
        f"(rejections={case.rejection_count}, elapsed={elapsed})"
    )
    return EscalationDecision(should_escalate=True, reason=reason)


def get_timeout_remaining(case: EmergencyCase, now: datetime) -> int:
    """Whole seconds left before the response timeout fires, never negative."""
    threshold = get_escalation_threshold(case.acuity_level)
    elapsed = _elapsed_awaiting(case, now)
    if elapsed is None:
        return threshold.timeout_seconds
    return max(0, round_half_up(threshold.timeout_seconds - elapsed))
