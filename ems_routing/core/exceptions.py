"""
Exceptions raised by the response workflow.

Scoring never raises for bad hospital or case data; these exceptions are only
surfaced by workflow operations (dispatch, accept, reject, override, handover)
and always before anything is written.
"""


class DispatchError(Exception):
    """Base class for workflow failures surfaced to the caller."""


class CaseNotFoundError(DispatchError, LookupError):
    """The case id does not exist (or no longer exists)."""

    def __init__(self, case_id: str):
        super().__init__(f"Case not found: {case_id}")
        self.case_id = case_id


class HospitalNotFoundError(DispatchError, LookupError):
    """The hospital id is unknown for this case."""

    def __init__(self, hospital_id: str, detail: str = ""):
        message = f"Hospital not found: {hospital_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.hospital_id = hospital_id


class ConcurrencyConflictError(DispatchError):
    """Another actor already resolved the state this operation depends on."""


class InvalidTransitionError(DispatchError):
    """The operation is not allowed from the case's current status."""


class InvalidRejectionReasonError(DispatchError, ValueError):
    """A rejection was submitted without a recognised reason code."""
