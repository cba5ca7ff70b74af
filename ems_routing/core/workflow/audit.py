"""
Append-only audit trail for dispatch and handover transitions.

Audit emission is fire-and-forget: `AuditLog.emit` never raises and never
blocks on a slow sink. Sink failures are logged as warnings and dropped.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import requests
from pydantic import BaseModel, Field

from ems_routing.core.models import utcnow

logger = logging.getLogger(__name__)


class AuditEventType(str, Enum):
    """Workflow events recorded in the audit trail."""

    HOSPITAL_NOTIFIED = "hospital_notified"
    HOSPITAL_ACCEPTED = "hospital_accepted"
    HOSPITAL_REJECTED = "hospital_rejected"
    PARALLEL_CANCELLED = "parallel_cancelled"
    ESCALATION_TRIGGERED = "escalation_triggered"
    DISPATCHER_OVERRIDE = "dispatcher_override"
    HANDOVER_INITIATED = "handover_initiated"
    HANDOVER_ACKNOWLEDGED = "handover_acknowledged"
    CASE_COMPLETED = "case_completed"


class AuditEvent(BaseModel):
    """One audit record."""

    event_type: AuditEventType
    case_id: Optional[str] = None
    hospital_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AuditSink:
    """Destination for audit events."""

    def write(self, event: AuditEvent) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    """Writes each event as an INFO line on the audit logger."""

    def __init__(self, logger_name: str = "ems_routing.audit"):
        self._logger = logging.getLogger(logger_name)

    def write(self, event: AuditEvent) -> None:
        self._logger.info(
            f"{event.event_type.value} case={event.case_id} "
            f"hospital={event.hospital_id} metadata={event.metadata}"
        )


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list; used by tests and the CLI."""

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def write(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]


class WebhookAuditSink(AuditSink):
    """
    Posts events as JSON to an external append-only log.

    Requests run on a small background executor so a slow or unreachable
    endpoint never holds up a workflow transition.
    """

    def __init__(self, url: str, timeout: float = 5.0, max_workers: int = 2):
        self.url = url
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="audit-webhook"
        )

    def write(self, event: AuditEvent) -> None:
        self._executor.submit(self._post, event)

    def _post(self, event: AuditEvent) -> None:
        try:
            response = requests.post(
                self.url, json=event.model_dump(mode="json"), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Audit webhook failed for {event.event_type.value} "
                f"(case {event.case_id}): {e}"
            )

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class AuditLog:
    """Fans audit events out to one or more sinks."""

    def __init__(self, sinks: Optional[Iterable[AuditSink]] = None):
        self.sinks: List[AuditSink] = list(sinks) if sinks is not None else [LoggingAuditSink()]

    def emit(
        self,
        event_type: AuditEventType,
        case_id: Optional[str] = None,
        hospital_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        """
        Record an event on every sink.

        Args:
            event_type: Type of event.
            case_id: Case the event concerns.
            hospital_id: Hospital involved, if any.
            metadata: Extra event details.

        Returns:
            The event that was emitted, or None if it could not be built.
        """
        try:
            event = AuditEvent(
                event_type=event_type,
                case_id=case_id,
                hospital_id=hospital_id,
                metadata=metadata or {},
            )
        except ValueError as e:
            logger.warning(f"Could not build audit event {event_type!r}: {e}")
            return None

        for sink in self.sinks:
            try:
                sink.write(event)
            except Exception as e:
                logger.warning(
                    f"Audit sink {type(sink).__name__} failed for "
                    f"{event.event_type.value}: {e}"
                )
        return event

    def close(self) -> None:
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()


def build_audit_log(settings) -> AuditLog:
    """
    Audit log for the configured destinations.

    Always logs; also posts to the webhook when `audit_webhook_url` is set.

    Args:
        settings: RoutingSettings.
    """
    sinks: List[AuditSink] = [LoggingAuditSink()]
    if settings.audit_webhook_url:
        sinks.append(
            WebhookAuditSink(
                settings.audit_webhook_url,
                timeout=settings.audit_webhook_timeout_seconds,
            )
        )
        logger.info(f"Audit events will also be posted to {settings.audit_webhook_url}")
    return AuditLog(sinks)
