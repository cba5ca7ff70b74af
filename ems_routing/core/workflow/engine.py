"""
Hospital response workflow.

The ResponseEngine drives a case from notification through acceptance or
escalation to dispatcher override. Every state change runs inside a single
repository transaction that reads the current status, decides and writes, so
concurrent accepts, rejects and timeout scans on the same case cannot
interleave. Audit events are emitted only after the transaction commits.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field

from ems_routing.config import RoutingSettings
from ems_routing.core.decision.engine import apply_rejection_penalty, rank_hospitals
from ems_routing.core.exceptions import (
    ConcurrencyConflictError,
    HospitalNotFoundError,
    InvalidRejectionReasonError,
    InvalidTransitionError,
)
from ems_routing.core.models import (
    NON_ESCALATABLE_STATUSES,
    RESOLVED_STATUSES,
    CaseStatus,
    EmergencyCase,
    EscalationTrigger,
    NotificationRecord,
    NotificationResponse,
    RejectionReason,
    ScoreResult,
    utcnow,
)
from ems_routing.core.workflow.audit import AuditEventType, AuditLog, build_audit_log
from ems_routing.core.workflow.escalation import (
    EscalationDecision,
    EscalationThreshold,
    evaluate_escalation,
    get_escalation_threshold,
    get_timeout_remaining,
)
from ems_routing.core.workflow.repository import CaseRepository, open_repository
from ems_routing.utils.timestamps import to_datetime

logger = logging.getLogger(__name__)

# Acuity level that notifies several hospitals at once
PARALLEL_ACUITY = 1

# Statuses from which a new notification round may be sent
DISPATCHABLE_STATUSES = frozenset(
    {
        CaseStatus.CREATED,
        CaseStatus.TRIAGED,
        CaseStatus.DISPATCHED,
        CaseStatus.AWAITING_RESPONSE,
    }
)

# Statuses in which the override re-ranking is meaningful
OVERRIDE_RANKING_STATUSES = frozenset(
    {CaseStatus.ESCALATION_REQUIRED, CaseStatus.DISPATCHER_OVERRIDE}
)


class DispatchResult(BaseModel):
    """Hospitals notified by one dispatch round."""

    case_id: str
    mode: str = Field(..., description="'parallel' or 'sequential'.")
    notified: List[str] = Field(default_factory=list)


class AcceptResult(BaseModel):
    """Outcome of a successful accept."""

    case_id: str
    hospital_id: str
    cancelled_hospital_ids: List[str] = Field(default_factory=list)


class RejectResult(BaseModel):
    """Outcome of a reject call."""

    case_id: str
    hospital_id: str
    recorded: bool = Field(
        ..., description="False when the notification was already terminal."
    )
    rejection_count: int
    escalated: bool = False
    escalation_reason: Optional[EscalationTrigger] = None


class ResponseEngine:
    """
    Service object for the notification, response and escalation workflow.

    Args:
        repository: Case storage providing the per-case transaction primitive.
        audit_log: Destination for audit events; logs them by default.
        settings: Workflow tunables.
    """

    def __init__(
        self,
        repository: CaseRepository,
        audit_log: Optional[AuditLog] = None,
        settings: Optional[RoutingSettings] = None,
    ):
        self.repository = repository
        self.audit_log = audit_log or AuditLog()
        self.settings = settings or RoutingSettings()

    @classmethod
    def from_settings(cls, settings: RoutingSettings) -> "ResponseEngine":
        """Engine over the configured case database and audit destinations."""
        return cls(
            open_repository(settings.database_path),
            build_audit_log(settings),
            settings=settings,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def notify_count(self, acuity_level: int) -> int:
        """How many hospitals one dispatch round notifies."""
        if acuity_level == PARALLEL_ACUITY:
            return self.settings.parallel_notify_count
        return 1

    def dispatch_notifications(
        self,
        case_id: str,
        ranked: Iterable[ScoreResult],
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Notify the next hospital(s) in the ranking.

        A new round is only sent once every earlier notification has a
        response, and hospitals that already have a record for the case are
        skipped, so concurrent or repeated dispatch attempts never notify a
        hospital twice.

        Args:
            case_id: Case to dispatch.
            ranked: Ranked score results, best first.
            now: Notification time, defaults to now.

        Returns:
            DispatchResult listing the newly notified hospitals.

        Raises:
            CaseNotFoundError: Unknown case.
            InvalidTransitionError: The case is escalated or already resolved.
        """
        now = to_datetime(now) or utcnow()
        qualified = [r for r in ranked if not r.disqualified]
        notified: List[NotificationRecord] = []

        with self.repository.transaction(case_id) as case:
            if case.status not in DISPATCHABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot dispatch case {case_id} from status: {case.status.value}"
                )

            mode = "parallel" if case.acuity_level == PARALLEL_ACUITY else "sequential"
            acuity_level = case.acuity_level
            already_notified = {n.hospital_id for n in case.hospital_notifications}
            if case.pending_notifications:
                # Current round is still open
                candidates = []
            else:
                candidates = [
                    (rank, result)
                    for rank, result in enumerate(qualified, start=1)
                    if result.hospital_id not in already_notified
                ][: self.notify_count(case.acuity_level)]

            for rank, result in candidates:
                record = NotificationRecord(
                    hospital_id=result.hospital_id,
                    hospital_name=result.hospital_name,
                    notified_at=now,
                    score=result.suitability_score,
                    rank=rank,
                )
                case.hospital_notifications.append(record)
                notified.append(record)

            if notified:
                case.status = CaseStatus.AWAITING_RESPONSE
                if case.awaiting_response_since is None or self.settings.restart_timeout_per_round:
                    case.awaiting_response_since = now
                if case.dispatched_at is None:
                    case.dispatched_at = now
            round_open = bool(case.pending_notifications) and not notified

        if round_open:
            logger.info(f"Case {case_id} still has pending notifications; nothing dispatched")
        elif not notified:
            logger.warning(f"No eligible hospitals left to notify for case {case_id}")

        for record in notified:
            logger.info(
                f"Notified {record.hospital_name} ({record.hospital_id}) for case "
                f"{case_id}, rank {record.rank}, {mode}"
            )
            self.audit_log.emit(
                AuditEventType.HOSPITAL_NOTIFIED,
                case_id=case_id,
                hospital_id=record.hospital_id,
                metadata={
                    "hospital_name": record.hospital_name,
                    "score": record.score,
                    "acuity_level": acuity_level,
                    "mode": mode,
                },
            )

        return DispatchResult(
            case_id=case_id, mode=mode, notified=[r.hospital_id for r in notified]
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def accept(
        self, case_id: str, hospital_id: str, now: Optional[datetime] = None
    ) -> AcceptResult:
        """
        Accept a case on behalf of a notified hospital.

        Exactly one accept can win per case; every other pending notification
        is cancelled in the same transaction.

        Raises:
            CaseNotFoundError: Unknown case.
            HospitalNotFoundError: The hospital was never notified for this case.
            ConcurrencyConflictError: The case is already accepted, or this
                hospital's notification is no longer pending.
        """
        now = to_datetime(now) or utcnow()
        cancelled: List[str] = []

        with self.repository.transaction(case_id) as case:
            if case.status in RESOLVED_STATUSES:
                raise ConcurrencyConflictError("Case already accepted by another hospital")

            record = case.notification_for(hospital_id)
            if record is None:
                raise HospitalNotFoundError(hospital_id, f"not notified for case {case_id}")
            if not record.is_pending:
                raise ConcurrencyConflictError(
                    f"Notification for {hospital_id} is already {record.response.value}"
                )

            for notification in case.hospital_notifications:
                if not notification.is_pending:
                    continue
                notification.responded_at = now
                if notification.hospital_id == hospital_id:
                    notification.response = NotificationResponse.ACCEPTED
                else:
                    notification.response = NotificationResponse.CANCELLED
                    cancelled.append(notification.hospital_id)

            case.status = CaseStatus.ACCEPTED
            case.accepted_hospital_id = hospital_id
            case.accepted_at = now

        logger.info(f"Case {case_id} accepted by {hospital_id}")
        self.audit_log.emit(
            AuditEventType.HOSPITAL_ACCEPTED, case_id=case_id, hospital_id=hospital_id
        )
        for cancelled_id in cancelled:
            self.audit_log.emit(
                AuditEventType.PARALLEL_CANCELLED,
                case_id=case_id,
                hospital_id=cancelled_id,
                metadata={"cancelled_by": hospital_id},
            )

        return AcceptResult(
            case_id=case_id, hospital_id=hospital_id, cancelled_hospital_ids=cancelled
        )

    def reject(
        self,
        case_id: str,
        hospital_id: str,
        reason: Any,
        reason_text: str = "",
        now: Optional[datetime] = None,
    ) -> RejectResult:
        """
        Record a hospital's rejection and evaluate escalation.

        The rejection, the counter increment and any resulting escalation are
        written in one transaction. Rejecting an already terminal notification
        changes nothing.

        Args:
            case_id: Case being rejected.
            hospital_id: Rejecting hospital.
            reason: RejectionReason or its code.
            reason_text: Free text, used when reason is 'other'.
            now: Response time, defaults to now.

        Returns:
            RejectResult with the new rejection count and escalation outcome.

        Raises:
            InvalidRejectionReasonError: Missing or unknown reason code.
            CaseNotFoundError: Unknown case.
            HospitalNotFoundError: The hospital was never notified for this case.
        """
        try:
            reason_code = RejectionReason(reason)
        except ValueError:
            raise InvalidRejectionReasonError(
                f"Invalid rejection reason: {reason!r}; expected one of "
                f"{[r.value for r in RejectionReason]}"
            ) from None

        now = to_datetime(now) or utcnow()
        recorded = False
        decision = EscalationDecision()

        with self.repository.transaction(case_id) as case:
            record = case.notification_for(hospital_id)
            if record is None:
                raise HospitalNotFoundError(hospital_id, f"not notified for case {case_id}")

            if record.is_pending:
                record.response = NotificationResponse.REJECTED
                record.responded_at = now
                if reason_code == RejectionReason.OTHER:
                    record.reason = reason_text.strip() or RejectionReason.OTHER.label
                else:
                    record.reason = reason_code.value
                case.rejection_count += 1
                recorded = True

                decision = evaluate_escalation(case, now)
                if decision.should_escalate:
                    self._apply_escalation(case, decision.reason, now)

            rejection_count = case.rejection_count

        if not recorded:
            logger.info(
                f"Ignoring reject from {hospital_id} on case {case_id}: "
                f"notification already {record.response.value}"
            )
        else:
            logger.info(
                f"Case {case_id} rejected by {hospital_id} ({reason_code.value}); "
                f"rejections={rejection_count}"
            )
            self.audit_log.emit(
                AuditEventType.HOSPITAL_REJECTED,
                case_id=case_id,
                hospital_id=hospital_id,
                metadata={"reason": reason_code.value, "reason_text": reason_text},
            )
            if decision.should_escalate:
                self._emit_escalation(case_id, decision.reason)

        return RejectResult(
            case_id=case_id,
            hospital_id=hospital_id,
            recorded=recorded,
            rejection_count=rejection_count,
            escalated=decision.should_escalate,
            escalation_reason=decision.reason,
        )

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def evaluate(self, case: EmergencyCase, now: Optional[datetime] = None) -> EscalationDecision:
        """Evaluate escalation for a case snapshot without changing it."""
        return evaluate_escalation(case, to_datetime(now) or utcnow())

    def get_escalation_threshold(self, acuity_level: Optional[int]) -> EscalationThreshold:
        return get_escalation_threshold(acuity_level)

    def get_timeout_remaining(self, case_id: str, now: Optional[datetime] = None) -> int:
        """Seconds until the case's response timeout fires."""
        return get_timeout_remaining(self.repository.get(case_id), to_datetime(now) or utcnow())

    def _apply_escalation(
        self, case: EmergencyCase, reason: EscalationTrigger, now: datetime
    ) -> None:
        case.status = CaseStatus.ESCALATION_REQUIRED
        case.escalation_triggered_at = now
        case.escalation_reason = reason

    def _emit_escalation(self, case_id: str, reason: EscalationTrigger) -> None:
        logger.warning(f"Case {case_id} escalated ({reason.value})")
        self.audit_log.emit(
            AuditEventType.ESCALATION_TRIGGERED,
            case_id=case_id,
            metadata={"reason": reason.value},
        )

    def trigger_escalation(
        self,
        case_id: str,
        reason: Optional[EscalationTrigger] = None,
        now: Optional[datetime] = None,
        reevaluate: bool = False,
    ) -> bool:
        """
        Move a case to escalation_required.

        Re-reads the status inside the transaction, so calling it on a case that
        is already escalated or resolved is a no-op.

        Args:
            case_id: Case to escalate.
            reason: Trigger to record. Required unless `reevaluate` is set.
            now: Escalation time, defaults to now.
            reevaluate: Re-run the threshold check on the committed case state
                and take the trigger from it; no-op when no threshold is met.

        Returns:
            True if this call escalated the case.
        """
        now = to_datetime(now) or utcnow()
        if reason is not None:
            reason = EscalationTrigger(reason)
        elif not reevaluate:
            raise ValueError("An escalation reason is required without reevaluate")

        with self.repository.transaction(case_id) as case:
            if case.status in NON_ESCALATABLE_STATUSES:
                logger.debug(
                    f"Skipping escalation of case {case_id}: status {case.status.value}"
                )
                return False
            if reevaluate:
                decision = evaluate_escalation(case, now)
                if not decision.should_escalate:
                    logger.debug(f"Case {case_id} no longer meets an escalation threshold")
                    return False
                reason = decision.reason
            self._apply_escalation(case, reason, now)

        self._emit_escalation(case_id, reason)
        return True

    def check_timeout_escalations(self, now: Optional[datetime] = None) -> List[str]:
        """
        Scan cases awaiting a response and escalate those past a threshold.

        Returns:
            Ids of the cases this scan escalated.
        """
        now = to_datetime(now) or utcnow()
        escalated = []
        for case in self.repository.list_by_status(CaseStatus.AWAITING_RESPONSE):
            decision = evaluate_escalation(case, now)
            if not decision.should_escalate:
                continue
            if self.trigger_escalation(case.case_id, now=now, reevaluate=True):
                escalated.append(case.case_id)
        if escalated:
            logger.info(f"Timeout scan escalated {len(escalated)} case(s): {escalated}")
        return escalated

    # ------------------------------------------------------------------
    # Dispatcher override
    # ------------------------------------------------------------------

    def rerank_for_override(
        self,
        case_id: str,
        hospitals: Iterable[Any],
        now: Optional[datetime] = None,
    ) -> List[ScoreResult]:
        """
        Re-rank every hospital for a dispatcher override.

        Hospitals that rejected the case stay eligible but their score is
        multiplied by the rejection penalty.

        Raises:
            CaseNotFoundError: Unknown case.
            InvalidTransitionError: The case has not escalated.
        """
        case = self.repository.get(case_id)
        if case.status not in OVERRIDE_RANKING_STATUSES:
            raise InvalidTransitionError(
                f"Override ranking requires an escalated case; {case_id} is "
                f"{case.status.value}"
            )
        ranked = rank_hospitals(hospitals, case, to_datetime(now) or utcnow())
        return apply_rejection_penalty(
            ranked, case.rejected_hospital_ids, self.settings.rejection_penalty_multiplier
        )

    def confirm_override(
        self, case_id: str, hospital_id: str, now: Optional[datetime] = None
    ) -> EmergencyCase:
        """
        Assign a hospital by dispatcher override. Allowed once per case.

        Raises:
            CaseNotFoundError: Unknown case.
            ConcurrencyConflictError: An override was already confirmed.
            InvalidTransitionError: The case is not awaiting an override.
        """
        if not hospital_id:
            raise HospitalNotFoundError(str(hospital_id), "no hospital selected")
        now = to_datetime(now) or utcnow()

        with self.repository.transaction(case_id) as case:
            if case.override_used:
                raise ConcurrencyConflictError("Override already used for this case")
            if case.status != CaseStatus.ESCALATION_REQUIRED:
                raise InvalidTransitionError(
                    f"Cannot override case {case_id} from status: {case.status.value}"
                )
            case.status = CaseStatus.DISPATCHER_OVERRIDE
            case.override_used = True
            case.override_hospital_id = hospital_id
            case.override_at = now
            snapshot = case.model_copy(deep=True)

        logger.info(f"Dispatcher override for case {case_id}: {hospital_id}")
        self.audit_log.emit(
            AuditEventType.DISPATCHER_OVERRIDE,
            case_id=case_id,
            hospital_id=hospital_id,
            metadata={"override_type": "constrained"},
        )
        return snapshot
