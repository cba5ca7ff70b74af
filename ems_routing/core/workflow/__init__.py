"""
Dispatch workflow: notification, hospital responses, escalation, dispatcher
override and the handover tail of the case lifecycle.
"""

from ems_routing.core.workflow.audit import AuditLog, build_audit_log
from ems_routing.core.workflow.engine import ResponseEngine
from ems_routing.core.workflow.repository import (
    CaseRepository,
    InMemoryCaseRepository,
    SqliteCaseRepository,
    open_repository,
)
