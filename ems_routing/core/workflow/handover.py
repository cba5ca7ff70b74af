"""
Digital patient handover protocol.

Extends the case lifecycle after a destination is settled:
accepted | dispatcher_override -> enroute -> handover_initiated ->
handover_acknowledged -> completed. Each step is a guarded transition run
inside a case transaction; a rejected step raises before anything is written.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ems_routing.core.exceptions import (
    ConcurrencyConflictError,
    HospitalNotFoundError,
    InvalidTransitionError,
)
from ems_routing.core.models import CaseStatus, EmergencyCase, utcnow
from ems_routing.core.scoring.weights import GOLDEN_HOUR_MINUTES
from ems_routing.core.workflow.audit import AuditEventType, AuditLog
from ems_routing.core.workflow.repository import CaseRepository
from ems_routing.utils.geolocation import round_half_up
from ems_routing.utils.timestamps import to_datetime

logger = logging.getLogger(__name__)

HANDOVER_INITIATED = "initiated"
HANDOVER_ACKNOWLEDGED = "acknowledged"

ENROUTE_FROM = frozenset({CaseStatus.ACCEPTED, CaseStatus.DISPATCHER_OVERRIDE})

# vitals key -> accepted source keys, first present wins
_VITAL_KEYS = {
    "heart_rate": ("heart_rate", "heartRate", "hr"),
    "systolic_bp": ("systolic_bp", "systolicBP", "bloodPressureSystolic"),
    "diastolic_bp": ("diastolic_bp", "diastolicBP", "bloodPressureDiastolic"),
    "spo2": ("spo2", "spO2", "oxygenSaturation"),
    "respiratory_rate": ("respiratory_rate", "respiratoryRate", "rr"),
    "temperature": ("temperature", "temp"),
    "consciousness_level": ("consciousness_level", "consciousnessLevel", "gcsTotal"),
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _pick(source: Dict[str, Any], keys) -> Any:
    for key in keys:
        if source.get(key) is not None:
            return source[key]
    return None


def build_handover_summary(case: EmergencyCase, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Structured summary handed to the receiving hospital.

    Args:
        case: Case at the moment of handover.
        now: Reference time for the golden hour countdown.

    Returns:
        Dict with patient, clinical, timeline and operational sections.
    """
    now = to_datetime(now) or utcnow()
    patient = case.patient or {}
    vitals = case.vitals or {}

    elapsed_minutes = (now - case.created_at).total_seconds() / 60
    golden_hour_remaining = max(0, round_half_up(GOLDEN_HOUR_MINUTES - elapsed_minutes))

    return {
        "patient": {
            "name": patient.get("name") or "Unknown",
            "age": patient.get("age"),
            "gender": patient.get("gender"),
        },
        "clinical": {
            "acuity_level": case.acuity_level,
            "emergency_type": case.emergency_type.value,
            "vitals": {name: _pick(vitals, keys) for name, keys in _VITAL_KEYS.items()},
            "clinical_flags": list(case.clinical_flags),
            "support_required": case.support_required.model_dump(),
            "isolation_required": case.infection_risk.isolation_required,
        },
        "timeline": {
            "created_at": _iso(case.created_at),
            "dispatched_at": _iso(case.dispatched_at),
            "accepted_at": _iso(case.accepted_at),
            "escalation_triggered_at": _iso(case.escalation_triggered_at),
            "override_used": case.override_used,
            "enroute_at": _iso(case.enroute_at),
        },
        "operational": {
            "golden_hour_remaining": golden_hour_remaining,
            "rejection_count": case.rejection_count,
            "destination_hospital_id": case.target_hospital_id,
        },
    }


class HandoverService:
    """
    Guards and records the lifecycle tail of a case.

    Args:
        repository: Case storage.
        audit_log: Destination for audit events.
    """

    def __init__(self, repository: CaseRepository, audit_log: Optional[AuditLog] = None):
        self.repository = repository
        self.audit_log = audit_log or AuditLog()

    def mark_enroute(self, case_id: str, now: Optional[datetime] = None) -> EmergencyCase:
        """Ambulance has left for the accepted or override hospital."""
        now = to_datetime(now) or utcnow()
        with self.repository.transaction(case_id) as case:
            if case.status not in ENROUTE_FROM:
                raise InvalidTransitionError(
                    f"Cannot mark enroute from status: {case.status.value}"
                )
            case.status = CaseStatus.ENROUTE
            case.enroute_at = now
            snapshot = case.model_copy(deep=True)

        logger.info(f"Case {case_id} enroute to {snapshot.target_hospital_id}")
        return snapshot

    def initiate_handover(self, case_id: str, now: Optional[datetime] = None) -> EmergencyCase:
        """
        Crew starts the digital handover and attaches the summary.

        Raises:
            InvalidTransitionError: The case is not enroute.
            ConcurrencyConflictError: Handover already initiated or acknowledged.
        """
        now = to_datetime(now) or utcnow()
        with self.repository.transaction(case_id) as case:
            if case.handover_status in (HANDOVER_INITIATED, HANDOVER_ACKNOWLEDGED):
                raise ConcurrencyConflictError("Handover already initiated or acknowledged")
            if case.status != CaseStatus.ENROUTE:
                raise InvalidTransitionError(
                    f"Cannot initiate handover from status: {case.status.value}"
                )
            case.handover_summary = build_handover_summary(case, now)
            case.status = CaseStatus.HANDOVER_INITIATED
            case.handover_status = HANDOVER_INITIATED
            case.handover_initiated_at = now
            snapshot = case.model_copy(deep=True)

        logger.info(f"Handover initiated for case {case_id}")
        self.audit_log.emit(
            AuditEventType.HANDOVER_INITIATED,
            case_id=case_id,
            hospital_id=snapshot.target_hospital_id,
        )
        return snapshot

    def acknowledge_handover(
        self, case_id: str, hospital_id: str, now: Optional[datetime] = None
    ) -> EmergencyCase:
        """
        Receiving hospital confirms the handover.

        Raises:
            ConcurrencyConflictError: Handover already acknowledged.
            InvalidTransitionError: Handover was not initiated.
            HospitalNotFoundError: The hospital is not the case's destination.
        """
        now = to_datetime(now) or utcnow()
        with self.repository.transaction(case_id) as case:
            if case.handover_status == HANDOVER_ACKNOWLEDGED:
                raise ConcurrencyConflictError("Handover already acknowledged")
            if case.status != CaseStatus.HANDOVER_INITIATED:
                raise InvalidTransitionError(
                    f"Cannot acknowledge handover from status: {case.status.value}"
                )
            target = case.target_hospital_id
            if target and target != hospital_id:
                raise HospitalNotFoundError(
                    hospital_id, "only the assigned hospital can acknowledge this handover"
                )
            case.status = CaseStatus.HANDOVER_ACKNOWLEDGED
            case.handover_status = HANDOVER_ACKNOWLEDGED
            case.handover_acknowledged_at = now
            snapshot = case.model_copy(deep=True)

        logger.info(f"Handover for case {case_id} acknowledged by {hospital_id}")
        self.audit_log.emit(
            AuditEventType.HANDOVER_ACKNOWLEDGED, case_id=case_id, hospital_id=hospital_id
        )
        return snapshot

    def complete_case(self, case_id: str, now: Optional[datetime] = None) -> EmergencyCase:
        """Close a case once the hospital has acknowledged the handover."""
        now = to_datetime(now) or utcnow()
        with self.repository.transaction(case_id) as case:
            if case.status != CaseStatus.HANDOVER_ACKNOWLEDGED:
                raise InvalidTransitionError(
                    f"Cannot complete case from status: {case.status.value}"
                )
            case.status = CaseStatus.COMPLETED
            case.completed_at = now
            snapshot = case.model_copy(deep=True)

        logger.info(f"Case {case_id} completed")
        self.audit_log.emit(
            AuditEventType.CASE_COMPLETED,
            case_id=case_id,
            hospital_id=snapshot.target_hospital_id,
        )
        return snapshot
