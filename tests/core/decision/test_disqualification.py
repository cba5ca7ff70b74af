"""
Tests for the hospital disqualification filter.
"""

import unittest

from ems_routing.core.decision.disqualification import check_disqualification
from ems_routing.core.models import EmergencyCase, EmergencyType, InfectionRisk
from ems_routing.core.normalizer import normalize_hospital
from ems_routing.core.profiles import get_profile


def make_hospital(**overrides):
    raw = {
        "id": "H1",
        "basicInfo": {"name": "Test Hospital"},
        "caseAcceptance": {"acceptsCardiac": True, "acceptsTrauma": True},
        "emergencyReadiness": {"status": "accepting"},
        "bedAvailability": {
            "available": 8,
            "icu": {"available": 2},
            "emergency": {"available": 4},
            "isolationBeds": {"available": 1},
        },
    }
    raw.update(overrides)
    return normalize_hospital(raw)


class TestCheckDisqualification(unittest.TestCase):

    def test_qualified_hospital(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.CARDIAC)
        reasons = check_disqualification(make_hospital(), case, get_profile("cardiac"))
        self.assertEqual(reasons, [])

    def test_case_acceptance_mismatch(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.BURN)
        reasons = check_disqualification(make_hospital(), case, get_profile("burn"))
        self.assertEqual(reasons, ["Does not accept burn cases"])

    def test_full_hospital(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.CARDIAC)
        hospital = make_hospital(emergencyReadiness={"status": "full"})
        reasons = check_disqualification(hospital, case, get_profile("cardiac"))
        self.assertEqual(reasons, ["Hospital is FULL"])

    def test_diverting_is_not_disqualifying(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.CARDIAC)
        hospital = make_hospital(emergencyReadiness={"status": "diverting"})
        self.assertEqual(check_disqualification(hospital, case, get_profile("cardiac")), [])

    def test_isolation_required_by_case(self):
        case = EmergencyCase(
            case_id="C1",
            emergency_type=EmergencyType.CARDIAC,
            infection_risk=InfectionRisk(isolation_required=True),
        )
        hospital = make_hospital(
            bedAvailability={"available": 5, "icu": {"available": 2}}
        )
        reasons = check_disqualification(hospital, case, get_profile("cardiac"))
        self.assertEqual(reasons, ["No isolation beds available (required)"])

    def test_isolation_required_by_profile(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.INFECTIOUS)
        hospital = make_hospital(
            caseAcceptance={"acceptsInfectious": True},
            bedAvailability={"available": 5},
        )
        reasons = check_disqualification(hospital, case, get_profile("infectious"))
        self.assertIn("No isolation beds available (required)", reasons)

    def test_critical_case_needs_icu(self):
        hospital = make_hospital(
            bedAvailability={"available": 5, "emergency": {"available": 5}}
        )
        critical = EmergencyCase(
            case_id="C1", emergency_type=EmergencyType.CARDIAC, acuity_level=4
        )
        moderate = EmergencyCase(
            case_id="C2", emergency_type=EmergencyType.CARDIAC, acuity_level=3
        )
        profile = get_profile("cardiac")
        self.assertEqual(
            check_disqualification(hospital, critical, profile),
            ["No ICU beds for critical case"],
        )
        self.assertEqual(check_disqualification(hospital, moderate, profile), [])

    def test_icu_rule_only_for_icu_critical_profiles(self):
        hospital = make_hospital(
            bedAvailability={"available": 5, "emergency": {"available": 5}}
        )
        case = EmergencyCase(
            case_id="C1", emergency_type=EmergencyType.ACCIDENT, acuity_level=5
        )
        self.assertEqual(check_disqualification(hospital, case, get_profile("accident")), [])

    def test_no_beds_at_all(self):
        case = EmergencyCase(case_id="C1", emergency_type=EmergencyType.TRAUMA)
        hospital = make_hospital(bedAvailability={})
        reasons = check_disqualification(hospital, case, get_profile("trauma"))
        self.assertEqual(reasons, ["No beds available"])

    def test_reasons_accumulate(self):
        case = EmergencyCase(
            case_id="C1", emergency_type=EmergencyType.INFECTIOUS, acuity_level=5
        )
        hospital = make_hospital(
            emergencyReadiness={"status": "full"}, bedAvailability={}
        )
        reasons = check_disqualification(hospital, case, get_profile("infectious"))
        self.assertEqual(
            reasons,
            [
                "Does not accept infectious cases",
                "Hospital is FULL",
                "No isolation beds available (required)",
                "No beds available",
            ],
        )


if __name__ == "__main__":
    unittest.main()
