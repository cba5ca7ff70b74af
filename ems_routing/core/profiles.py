"""
Emergency profile catalog.

Each emergency type maps to the acceptance flag a hospital must carry, the
specialist roles that matter (with relative weights), the clinical capabilities
and equipment that earn or lose points, the bed categories that count, and an
optional trauma-level bonus table. The catalog is built once at import time and
is read-only afterwards.
"""

from types import MappingProxyType
from typing import Mapping, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ems_routing.core.models import EmergencyType, TraumaLevel


class EquipmentDelta(BaseModel):
    """Points added when equipment is present, or added (usually negative) when absent."""

    model_config = ConfigDict(frozen=True)

    present: float = 0
    absent: float = 0


class EmergencyProfile(BaseModel):
    """Scoring profile for one emergency type."""

    model_config = ConfigDict(frozen=True)

    case_acceptance: str = Field(
        ..., description="CaseAcceptance attribute the hospital must have set."
    )
    specialist_weights: Mapping[str, float] = Field(default_factory=dict)
    capability_scores: Mapping[str, float] = Field(default_factory=dict)
    equipment_scores: Mapping[str, EquipmentDelta] = Field(default_factory=dict)
    bed_types: Tuple[str, ...] = ("emergency",)
    critical_beds: Tuple[str, ...] = ()
    trauma_level_bonus: bool = False
    trauma_level_scores: Mapping[TraumaLevel, float] = Field(default_factory=dict)
    requires_isolation: bool = False

    @property
    def specialists(self) -> Tuple[str, ...]:
        return tuple(self.specialist_weights)


def _frozen(mapping):
    return MappingProxyType(dict(mapping))


EMERGENCY_PROFILES: Mapping[EmergencyType, EmergencyProfile] = MappingProxyType(
    {
        EmergencyType.CARDIAC: EmergencyProfile(
            case_acceptance="accepts_cardiac",
            specialist_weights=_frozen({"cardiologist": 1.5}),
            capability_scores=_frozen({"stroke_center": 20, "emergency_surgery": 15}),
            equipment_scores=_frozen(
                {"defibrillator": EquipmentDelta(present=25, absent=-40)}
            ),
            bed_types=("icu", "emergency"),
            critical_beds=("icu",),
        ),
        EmergencyType.TRAUMA: EmergencyProfile(
            case_acceptance="accepts_trauma",
            specialist_weights=_frozen({"trauma_surgeon": 2.0, "radiologist": 1.0}),
            capability_scores=_frozen({"emergency_surgery": 25, "ct_scan_available": 15}),
            equipment_scores=_frozen(
                {
                    "ventilator": EquipmentDelta(present=20, absent=-30),
                    "portable_xray": EquipmentDelta(present=10, absent=-10),
                }
            ),
            bed_types=("trauma_beds", "icu", "emergency"),
            critical_beds=("trauma_beds", "icu"),
            trauma_level_bonus=True,
            trauma_level_scores=_frozen(
                {
                    TraumaLevel.LEVEL_1: 30,
                    TraumaLevel.LEVEL_2: 18,
                    TraumaLevel.LEVEL_3: 8,
                    TraumaLevel.NONE: 0,
                }
            ),
        ),
        EmergencyType.BURN: EmergencyProfile(
            case_acceptance="accepts_burns",
            specialist_weights=_frozen({"burn_specialist": 2.5}),
            capability_scores=_frozen({"emergency_surgery": 20}),
            equipment_scores=_frozen(
                {"ventilator": EquipmentDelta(present=20, absent=-35)}
            ),
            bed_types=("icu", "isolation_beds", "emergency"),
            critical_beds=("isolation_beds",),
        ),
        EmergencyType.MEDICAL: EmergencyProfile(
            case_acceptance="accepts_cardiac",
            specialist_weights=_frozen({"pulmonologist": 1.2, "cardiologist": 1.0}),
            capability_scores=_frozen({"ct_scan_available": 15, "mri_available": 10}),
            equipment_scores=_frozen(
                {"ventilator": EquipmentDelta(present=15, absent=-20)}
            ),
            bed_types=("icu", "emergency"),
            critical_beds=("icu",),
        ),
        EmergencyType.ACCIDENT: EmergencyProfile(
            case_acceptance="accepts_trauma",
            specialist_weights=_frozen({"trauma_surgeon": 1.8, "radiologist": 1.0}),
            capability_scores=_frozen({"emergency_surgery": 22, "ct_scan_available": 12}),
            equipment_scores=_frozen(
                {
                    "portable_xray": EquipmentDelta(present=12, absent=-15),
                    "ventilator": EquipmentDelta(present=15, absent=-25),
                }
            ),
            bed_types=("trauma_beds", "emergency"),
            critical_beds=("trauma_beds",),
            trauma_level_bonus=True,
            trauma_level_scores=_frozen(
                {
                    TraumaLevel.LEVEL_1: 25,
                    TraumaLevel.LEVEL_2: 15,
                    TraumaLevel.LEVEL_3: 6,
                    TraumaLevel.NONE: 0,
                }
            ),
        ),
        EmergencyType.FIRE: EmergencyProfile(
            case_acceptance="accepts_burns",
            specialist_weights=_frozen({"burn_specialist": 2.0, "pulmonologist": 1.5}),
            capability_scores=_frozen({"emergency_surgery": 20}),
            equipment_scores=_frozen(
                {"ventilator": EquipmentDelta(present=25, absent=-40)}
            ),
            bed_types=("icu", "isolation_beds"),
            critical_beds=("icu",),
        ),
        EmergencyType.INFECTIOUS: EmergencyProfile(
            case_acceptance="accepts_infectious",
            specialist_weights=_frozen({"pulmonologist": 1.5}),
            equipment_scores=_frozen(
                {"ventilator": EquipmentDelta(present=20, absent=-30)}
            ),
            bed_types=("isolation_beds", "icu"),
            critical_beds=("isolation_beds",),
            requires_isolation=True,
        ),
        EmergencyType.OTHER: EmergencyProfile(
            case_acceptance="accepts_trauma",
            bed_types=("emergency",),
        ),
    }
)

# Used when a trauma-bonus profile does not carry its own table
DEFAULT_TRAUMA_LEVEL_SCORES: Mapping[TraumaLevel, float] = _frozen(
    {
        TraumaLevel.LEVEL_1: 25,
        TraumaLevel.LEVEL_2: 15,
        TraumaLevel.LEVEL_3: 8,
        TraumaLevel.NONE: 0,
    }
)


def get_profile(emergency_type) -> EmergencyProfile:
    """
    Look up the scoring profile for an emergency type.

    Args:
        emergency_type: EmergencyType or raw string (legacy aliases accepted).

    Returns:
        The matching profile, or the 'other' profile for unknown types.
    """
    resolved = EmergencyType.parse(emergency_type)
    return EMERGENCY_PROFILES.get(resolved, EMERGENCY_PROFILES[EmergencyType.OTHER])
