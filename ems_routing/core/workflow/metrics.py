"""
Response and escalation metrics computed from a batch of cases.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ems_routing.core.models import CaseStatus, EmergencyCase, EscalationTrigger
from ems_routing.utils.timestamps import seconds_between


class EscalationSummary(BaseModel):
    """Escalation counts across a set of cases."""

    total_cases: int = 0
    escalated: int = 0
    override_used: int = 0
    escalation_rate: float = Field(default=0.0, description="Escalated share, 0 to 1.")
    by_trigger: Dict[str, int] = Field(default_factory=dict)
    avg_rejections_before_escalation: float = 0.0


def dispatch_to_accept_seconds(case: EmergencyCase) -> Optional[float]:
    """Seconds from first dispatch to acceptance, or None if either is missing."""
    return seconds_between(case.dispatched_at, case.accepted_at)


def average_dispatch_to_accept(cases: Iterable[EmergencyCase]) -> Optional[float]:
    durations = [d for d in (dispatch_to_accept_seconds(c) for c in cases) if d is not None]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 2)


def _was_escalated(case: EmergencyCase) -> bool:
    return case.escalation_triggered_at is not None or case.status in (
        CaseStatus.ESCALATION_REQUIRED,
        CaseStatus.DISPATCHER_OVERRIDE,
    )


def escalation_summary(cases: Iterable[EmergencyCase]) -> EscalationSummary:
    """
    Summarize how often cases escalated and why.

    Args:
        cases: Cases to summarize.

    Returns:
        EscalationSummary with counts per trigger.
    """
    cases = list(cases)
    if not cases:
        return EscalationSummary()

    escalated: List[EmergencyCase] = [c for c in cases if _was_escalated(c)]
    by_trigger = {trigger.value: 0 for trigger in EscalationTrigger}
    for case in escalated:
        if case.escalation_reason is not None:
            by_trigger[case.escalation_reason.value] += 1

    avg_rejections = (
        sum(c.rejection_count for c in escalated) / len(escalated) if escalated else 0.0
    )

    return EscalationSummary(
        total_cases=len(cases),
        escalated=len(escalated),
        override_used=sum(1 for c in cases if c.override_used),
        escalation_rate=round(len(escalated) / len(cases), 4),
        by_trigger=by_trigger,
        avg_rejections_before_escalation=round(avg_rejections, 1),
    )
