"""
Capability normalizer.

Hospital and case records come from a document store that is written by many
hands: fields go missing, counts are published as bare numbers, as
{"available": n} objects or as strings, and a "liveOps" overlay carries
fresher operational telemetry than the profile it sits on. This module turns
those raw records into fully populated Hospital and EmergencyCase models so
the scorers never have to guard against missing data themselves.

Raw keys are read in the store's camelCase form; snake_case keys are accepted
as well.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ems_routing.core.models import (
    BedAvailability,
    BedCategory,
    CaseAcceptance,
    CaseStatus,
    ClinicalCapabilities,
    EmergencyCase,
    EmergencyReadiness,
    EmergencyType,
    Equipment,
    EscalationTrigger,
    Hospital,
    InfectionRisk,
    Location,
    NotificationRecord,
    NotificationResponse,
    ReadinessStatus,
    ServiceAvailability,
    SupportRequired,
    TraumaLevel,
)
from ems_routing.utils.timestamps import to_datetime

logger = logging.getLogger(__name__)

# Priority order when a count is published as an object
_COUNT_KEYS = ("available", "count", "total")

# Ambulance queue published by the overlay is clamped into this range
MAX_AMBULANCE_QUEUE = 50

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off", ""}

# raw bedAvailability key -> BedAvailability attribute
_BED_CATEGORIES = {
    "icu": "icu",
    "emergency": "emergency",
    "traumaBeds": "trauma_beds",
    "isolationBeds": "isolation_beds",
    "pediatricBeds": "pediatric_beds",
}

# liveOps.bedAvailability key -> BedAvailability attribute
_OVERLAY_BEDS = {
    "icuAvailable": "icu",
    "emergencyAvailable": "emergency",
    "traumaAvailable": "trauma_beds",
    "isolationAvailable": "isolation_beds",
}


def to_snake(name: str) -> str:
    """Convert a camelCase key to snake_case ('traumaSurgeon' -> 'trauma_surgeon')."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _get(raw: Any, key: str, default: Any = None) -> Any:
    """Read a camelCase key from a mapping, falling back to its snake_case form."""
    if not isinstance(raw, Mapping):
        return default
    if key in raw and raw[key] is not None:
        return raw[key]
    snake = to_snake(key)
    if snake in raw and raw[snake] is not None:
        return raw[snake]
    return default


def _section(raw: Any, key: str) -> Mapping:
    value = _get(raw, key)
    return value if isinstance(value, Mapping) else {}


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def coerce_text(value: Any) -> Optional[str]:
    """Scalar as a stripped string; None for missing, blank or structured values."""
    if value is None or isinstance(value, (Mapping, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_text_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [text for text in (coerce_text(item) for item in value) if text is not None]


def coerce_number(value: Any, fallback: float = 0) -> float:
    """
    Coerce a raw count into a non-negative finite number.

    Accepts a bare number, an object exposing 'available', 'count' or 'total'
    (first present key wins, in that order) or a numeric string. Anything else,
    including NaN, infinities, negatives and booleans, returns the fallback.

    Args:
        value: Raw value from a hospital or case record.
        fallback: Value returned when the input cannot be used.

    Returns:
        The coerced number or the fallback.
    """
    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, Mapping):
        for key in _COUNT_KEYS:
            if key in value and value[key] is not None:
                return coerce_number(value[key], fallback)
        return fallback

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        try:
            value = float(text)
        except ValueError:
            return fallback

    if not isinstance(value, (int, float)):
        return fallback

    number = float(value)
    if not math.isfinite(number) or number < 0:
        return fallback
    return number


def coerce_bool(value: Any, default: bool = False) -> bool:
    """Coerce flags published as booleans, numbers or strings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return default


def coerce_location(value: Any) -> Optional[Location]:
    """
    Read a location from the shapes seen in stored records.

    Accepts {latitude, longitude}, {lat, lng|lon}, {_latitude, _longitude},
    [lat, lon] pairs or an existing Location. Out-of-range or non-numeric
    coordinates yield None.
    """
    if value is None:
        return None
    if isinstance(value, Location):
        return value

    lat = lon = None
    if isinstance(value, Mapping):
        lat = _first_present(value.get("latitude"), value.get("lat"), value.get("_latitude"))
        lon = _first_present(
            value.get("longitude"),
            value.get("lng"),
            value.get("lon"),
            value.get("_longitude"),
        )
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        lat, lon = value

    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return None

    try:
        return Location(latitude=lat_f, longitude=lon_f)
    except ValidationError:
        logger.debug(f"Discarding out-of-range coordinates: {value!r}")
        return None


def _coerce_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


def _clamp_overlay(value: float, total: float) -> float:
    """Overlay counts never exceed a known published total."""
    if total > 0:
        return min(value, total)
    return value


# ---------------------------------------------------------------------------
# Hospitals
# ---------------------------------------------------------------------------


def _normalize_beds(raw_beds: Mapping) -> BedAvailability:
    categories: Dict[str, BedCategory] = {}
    for raw_key, attr in _BED_CATEGORIES.items():
        bucket = _get(raw_beds, raw_key)
        if isinstance(bucket, Mapping):
            categories[attr] = BedCategory(
                total=coerce_number(bucket.get("total")),
                available=coerce_number(
                    _first_present(bucket.get("available"), bucket.get("count"))
                ),
            )
        else:
            # A bare number is the available count
            categories[attr] = BedCategory(available=coerce_number(bucket))

    category_available = sum(c.available for c in categories.values())
    category_total = sum(c.total for c in categories.values())

    raw_available = _get(raw_beds, "available")
    available = (
        coerce_number(raw_available) if raw_available is not None else category_available
    )
    raw_total = _get(raw_beds, "total")
    total = coerce_number(raw_total) if raw_total is not None else category_total

    return BedAvailability(total=total, available=available, **categories)


def _normalize_equipment(raw_equipment: Mapping) -> Equipment:
    ventilators = _get(raw_equipment, "ventilators")
    if isinstance(ventilators, Mapping):
        ventilators_total = coerce_number(ventilators.get("total"))
        ventilators_available = coerce_number(
            _first_present(ventilators.get("available"), ventilators.get("count"))
        )
    else:
        # Bare count: all published ventilators are taken as available
        ventilators_total = coerce_number(ventilators)
        ventilators_available = ventilators_total

    return Equipment(
        ventilators_total=ventilators_total,
        ventilators_available=ventilators_available,
        defibrillators=coerce_number(_get(raw_equipment, "defibrillators")),
        portable_xray=coerce_number(_get(raw_equipment, "portableXRay")),
        dialysis_machines=coerce_number(
            _first_present(
                _get(raw_equipment, "dialysisMachines"), _get(raw_equipment, "dialysis")
            )
        ),
        ct_scanners=coerce_number(_get(raw_equipment, "ctScanners")),
    )


def _normalize_readiness(raw_readiness: Mapping) -> EmergencyReadiness:
    return EmergencyReadiness(
        status=_coerce_enum(
            ReadinessStatus, _get(raw_readiness, "status"), ReadinessStatus.ACCEPTING
        ),
        diversion_status=coerce_bool(_get(raw_readiness, "diversionStatus")),
        ambulance_queue=min(
            coerce_number(_get(raw_readiness, "ambulanceQueue")), MAX_AMBULANCE_QUEUE
        ),
    )


def apply_live_overlay(hospital: Hospital, live_ops: Mapping) -> Hospital:
    """
    Let live operational telemetry supersede the profile values field by field.

    Only fields present in the overlay are replaced; everything else keeps the
    normalized profile value.

    Args:
        hospital: Normalized hospital.
        live_ops: Raw 'liveOps' mapping.

    Returns:
        A new Hospital with the overlay applied.
    """
    if not isinstance(live_ops, Mapping) or not live_ops:
        return hospital

    beds = hospital.bed_availability.model_copy(deep=True)
    overlay_beds = _section(live_ops, "bedAvailability")
    for raw_key, attr in _OVERLAY_BEDS.items():
        raw_value = _get(overlay_beds, raw_key)
        if raw_value is None:
            continue
        bucket: BedCategory = getattr(beds, attr)
        bucket.available = _clamp_overlay(coerce_number(raw_value), bucket.total)

    equipment = hospital.equipment.model_copy()
    overlay_equipment = _section(live_ops, "equipmentAvailability")
    ventilators = _get(overlay_equipment, "ventilatorsAvailable")
    if ventilators is not None:
        equipment.ventilators_available = _clamp_overlay(
            coerce_number(ventilators), equipment.ventilators_total
        )
    defibrillators = _get(overlay_equipment, "defibrillatorsAvailable")
    if defibrillators is not None:
        equipment.defibrillators = coerce_number(defibrillators)

    readiness = hospital.emergency_readiness.model_copy()
    overlay_readiness = _section(live_ops, "emergencyReadiness")
    status = _get(overlay_readiness, "status")
    if status is not None:
        readiness.status = _coerce_enum(ReadinessStatus, status, ReadinessStatus.ACCEPTING)
    queue = _get(overlay_readiness, "ambulanceQueue")
    if queue is not None:
        readiness.ambulance_queue = min(coerce_number(queue), MAX_AMBULANCE_QUEUE)

    last_updated = hospital.capacity_last_updated
    overlay_updated = to_datetime(_get(live_ops, "lastUpdated"))
    if overlay_updated is not None and (last_updated is None or overlay_updated > last_updated):
        last_updated = overlay_updated

    return hospital.model_copy(
        update={
            "bed_availability": beds,
            "equipment": equipment,
            "emergency_readiness": readiness,
            "capacity_last_updated": last_updated,
        }
    )


def normalize_hospital(raw: Any) -> Hospital:
    """
    Build a fully populated Hospital from a raw, possibly partial record.

    Args:
        raw: Mapping as stored (camelCase), or an already normalized Hospital.

    Returns:
        Normalized Hospital with the live overlay applied.
    """
    if isinstance(raw, Hospital):
        return raw
    if not isinstance(raw, Mapping):
        raw = {}

    basic = _section(raw, "basicInfo")
    hospital_id = _first_present(
        _get(raw, "hospitalId"), _get(raw, "id"), _get(basic, "id")
    )
    if hospital_id is None or str(hospital_id).strip() == "":
        hospital_id = "unknown"
        logger.warning("Hospital record without an id; using 'unknown'")

    acceptance = _section(raw, "caseAcceptance")
    capabilities = _section(raw, "clinicalCapabilities")
    services = _section(raw, "serviceAvailability")

    specialists = {}
    for role, count in _section(raw, "specialists").items():
        specialists[to_snake(str(role))] = coerce_number(count)

    trauma_level = _first_present(_get(basic, "traumaLevel"), _get(raw, "traumaLevel"))

    try:
        hospital = Hospital(
            hospital_id=str(hospital_id),
            name=str(_first_present(_get(basic, "name"), _get(raw, "name"), "Unknown")),
            location=coerce_location(
                _first_present(_get(basic, "location"), _get(raw, "location"))
            ),
            address=coerce_text(_first_present(_get(basic, "address"), _get(raw, "address"))),
            phone=coerce_text(_first_present(_get(basic, "phone"), _get(raw, "phone"))),
            case_acceptance=CaseAcceptance(
                accepts_cardiac=coerce_bool(_get(acceptance, "acceptsCardiac")),
                accepts_trauma=coerce_bool(_get(acceptance, "acceptsTrauma")),
                accepts_burns=coerce_bool(_get(acceptance, "acceptsBurns")),
                accepts_infectious=coerce_bool(_get(acceptance, "acceptsInfectious")),
            ),
            emergency_readiness=_normalize_readiness(_section(raw, "emergencyReadiness")),
            bed_availability=_normalize_beds(_section(raw, "bedAvailability")),
            specialists=specialists,
            equipment=_normalize_equipment(_section(raw, "equipment")),
            clinical_capabilities=ClinicalCapabilities(
                stroke_center=coerce_bool(_get(capabilities, "strokeCenter")),
                emergency_surgery=coerce_bool(_get(capabilities, "emergencySurgery")),
                ct_scan_available=coerce_bool(_get(capabilities, "ctScanAvailable")),
                mri_available=coerce_bool(_get(capabilities, "mriAvailable")),
            ),
            service_availability=ServiceAvailability(
                emergency_24x7=coerce_bool(_get(services, "emergency24x7")),
                surgery_24x7=coerce_bool(_get(services, "surgery24x7")),
            ),
            trauma_level=_coerce_enum(TraumaLevel, trauma_level, TraumaLevel.NONE),
            capacity_last_updated=to_datetime(_get(raw, "capacityLastUpdated")),
        )
    except ValidationError as e:
        logger.warning(
            f"Hospital {hospital_id} failed validation, falling back to defaults: {e}"
        )
        hospital = Hospital(hospital_id=str(hospital_id))

    return apply_live_overlay(hospital, _section(raw, "liveOps"))


def normalize_hospitals(raw_hospitals: List[Any]) -> List[Hospital]:
    """Normalize a list of raw hospital records, preserving order."""
    return [normalize_hospital(raw) for raw in raw_hospitals or []]


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


def _normalize_notification(raw: Any) -> Optional[NotificationRecord]:
    if isinstance(raw, NotificationRecord):
        return raw
    hospital_id = _get(raw, "hospitalId")
    if not hospital_id:
        return None
    rank = _get(raw, "rank")
    score = _get(raw, "score")
    try:
        return NotificationRecord(
            hospital_id=str(hospital_id),
            hospital_name=str(_get(raw, "hospitalName", "Unknown")),
            notified_at=to_datetime(_get(raw, "notifiedAt")) or datetime.now().astimezone(),
            responded_at=to_datetime(_get(raw, "respondedAt")),
            response=_coerce_enum(NotificationResponse, _get(raw, "response"), None),
            reason=coerce_text(_get(raw, "reason")),
            score=coerce_number(score) if score is not None else None,
            rank=int(coerce_number(rank)) if rank is not None else None,
        )
    except ValidationError as e:
        logger.warning(f"Skipping unreadable notification for {hospital_id}: {e}")
        return None


def _coerce_acuity(value: Any) -> int:
    number = coerce_number(value, fallback=3)
    acuity = int(round(number))
    if acuity < 1 or acuity > 5:
        return 3
    return acuity


def normalize_case(raw: Any) -> EmergencyCase:
    """
    Build an EmergencyCase from a raw stored case.

    Missing acuity falls back to 3, unknown emergency types to 'other', and
    unusable coordinates to None (which scores as an unknown distance).

    Args:
        raw: Mapping as stored (camelCase), or an EmergencyCase.

    Returns:
        Normalized EmergencyCase.
    """
    if isinstance(raw, EmergencyCase):
        return raw
    if not isinstance(raw, Mapping):
        raw = {}

    context = _section(raw, "emergencyContext")
    triage = _section(raw, "aiTriage")
    support = _section(raw, "supportRequired")
    infection = _section(raw, "infectionRisk")

    case_id = str(_first_present(_get(raw, "caseId"), _get(raw, "id"), "")).strip() or "unknown"
    notifications = [
        record
        for record in (
            _normalize_notification(n) for n in (_get(raw, "hospitalNotifications") or [])
        )
        if record is not None
    ]

    fields: Dict[str, Any] = {
        "case_id": case_id,
        "acuity_level": _coerce_acuity(
            _first_present(_get(raw, "acuityLevel"), _get(triage, "acuityLevel"))
        ),
        "emergency_type": EmergencyType.parse(
            _first_present(_get(context, "emergencyType"), _get(raw, "emergencyType"))
        ),
        "pickup_location": coerce_location(_get(raw, "pickupLocation")),
        "incident_timestamp": to_datetime(
            _first_present(
                _get(context, "incidentTimestamp"), _get(raw, "incidentTimestamp")
            )
        ),
        "support_required": SupportRequired(
            ventilator=coerce_bool(_get(support, "ventilator")),
            defibrillator=coerce_bool(_get(support, "defibrillator")),
            oxygen=coerce_bool(_get(support, "oxygen")),
        ),
        "infection_risk": InfectionRisk(
            isolation_required=coerce_bool(_get(infection, "isolationRequired"))
        ),
        "status": _coerce_enum(CaseStatus, _get(raw, "status"), CaseStatus.CREATED),
        "hospital_notifications": notifications,
        "rejection_count": int(coerce_number(_get(raw, "rejectionCount"))),
        "awaiting_response_since": to_datetime(_get(raw, "awaitingResponseSince")),
        "accepted_hospital_id": coerce_text(_get(raw, "acceptedHospitalId")),
        "override_used": coerce_bool(_get(raw, "overrideUsed")),
        "override_hospital_id": coerce_text(_get(raw, "overrideHospitalId")),
        "escalation_reason": _coerce_enum(
            EscalationTrigger, _get(raw, "escalationReason"), None
        ),
        "patient": dict(_section(raw, "patient")),
        "vitals": dict(_section(raw, "vitals")),
        "clinical_flags": _coerce_text_list(_get(raw, "clinicalFlags")),
    }

    created_at = to_datetime(_get(raw, "createdAt"))
    if created_at is not None:
        fields["created_at"] = created_at

    try:
        return EmergencyCase(**fields)
    except ValidationError as e:
        logger.warning(f"Case {case_id} failed validation, falling back to defaults: {e}")
        return EmergencyCase(case_id=case_id)
