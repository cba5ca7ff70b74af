#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Tests for the capability normalizer.

Raw hospital and case records are partial and inconsistently typed; these tests
check that every field the scorers read comes out populated and sane.
"""

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from ems_routing.core.models import (
    CaseStatus,
    EmergencyCase,
    EmergencyType,
    Hospital,
    ReadinessStatus,
    TraumaLevel,
)
from ems_routing.core.normalizer import (
    MAX_AMBULANCE_QUEUE,
    coerce_bool,
    coerce_location,
    coerce_number,
    coerce_text,
    normalize_case,
    normalize_hospital,
    to_snake,
)


class TestCoerceNumber(unittest.TestCase):
    """Test the single numeric coercion utility"""

    def test_bare_numbers(self):
        self.assertEqual(coerce_number(4), 4)
        self.assertEqual(coerce_number(2.5), 2.5)

    def test_object_key_priority(self):
        self.assertEqual(coerce_number({"available": 3, "count": 7, "total": 9}), 3)
        self.assertEqual(coerce_number({"count": 7, "total": 9}), 7)
        self.assertEqual(coerce_number({"total": 9}), 9)
        self.assertEqual(coerce_number({"available": "5"}), 5)

    def test_numeric_strings(self):
        self.assertEqual(coerce_number("12"), 12)
        self.assertEqual(coerce_number(" 3.5 "), 3.5)

    def test_unusable_values_fall_back(self):
        for value in (None, "abc", "", float("nan"), float("inf"), -2, True, [], {}):
            with self.subTest(value=value):
                self.assertEqual(coerce_number(value), 0)
        self.assertEqual(coerce_number("abc", fallback=7), 7)


class TestCoercionHelpers(unittest.TestCase):

    def test_coerce_bool(self):
        self.assertTrue(coerce_bool(True))
        self.assertTrue(coerce_bool("yes"))
        self.assertTrue(coerce_bool("TRUE"))
        self.assertTrue(coerce_bool(1))
        self.assertFalse(coerce_bool("no"))
        self.assertFalse(coerce_bool(0))
        self.assertFalse(coerce_bool(None))
        self.assertTrue(coerce_bool(None, default=True))
        self.assertFalse(coerce_bool("maybe"))

    def test_coerce_location_shapes(self):
        for raw in (
            {"latitude": 19.07, "longitude": 72.87},
            {"lat": 19.07, "lng": 72.87},
            {"_latitude": 19.07, "_longitude": 72.87},
            [19.07, 72.87],
            {"lat": "19.07", "lon": "72.87"},
        ):
            with self.subTest(raw=raw):
                location = coerce_location(raw)
                self.assertAlmostEqual(location.latitude, 19.07)
                self.assertAlmostEqual(location.longitude, 72.87)

    def test_coerce_location_invalid(self):
        self.assertIsNone(coerce_location(None))
        self.assertIsNone(coerce_location({"lat": 123, "lng": 10}))
        self.assertIsNone(coerce_location({"lat": "north", "lng": 10}))
        self.assertIsNone(coerce_location({"lat": 10}))

    def test_coerce_text(self):
        self.assertEqual(coerce_text(5551234), "5551234")
        self.assertEqual(coerce_text("  Ward 4 "), "Ward 4")
        self.assertIsNone(coerce_text("   "))
        self.assertIsNone(coerce_text(None))
        self.assertIsNone(coerce_text({"line1": "x"}))

    def test_to_snake(self):
        self.assertEqual(to_snake("traumaSurgeon"), "trauma_surgeon")
        self.assertEqual(to_snake("cardiologist"), "cardiologist")


class TestNormalizeHospital(unittest.TestCase):
    """Test normalization of raw hospital records"""

    def test_empty_record_gets_safe_defaults(self):
        hospital = normalize_hospital({"id": "H1"})

        self.assertIsInstance(hospital, Hospital)
        self.assertEqual(hospital.hospital_id, "H1")
        self.assertEqual(hospital.name, "Unknown")
        self.assertIsNone(hospital.location)
        self.assertEqual(hospital.bed_availability.available, 0)
        self.assertEqual(hospital.bed_availability.icu.available, 0)
        self.assertEqual(hospital.emergency_readiness.status, ReadinessStatus.ACCEPTING)
        self.assertFalse(hospital.case_acceptance.accepts_cardiac)
        self.assertEqual(hospital.trauma_level, TraumaLevel.NONE)
        self.assertIsNone(hospital.capacity_last_updated)

    def test_non_mapping_input(self):
        hospital = normalize_hospital(None)
        self.assertEqual(hospital.hospital_id, "unknown")

    def test_existing_hospital_passes_through(self):
        hospital = Hospital(hospital_id="H1")
        self.assertIs(normalize_hospital(hospital), hospital)

    def test_numeric_contact_fields(self):
        hospital = normalize_hospital(
            {"id": "H1", "basicInfo": {"phone": 5551234, "address": ["not", "text"]}}
        )
        self.assertEqual(hospital.phone, "5551234")
        self.assertIsNone(hospital.address)

    @patch("ems_routing.core.normalizer._normalize_beds", return_value="not beds")
    def test_invalid_record_falls_back_to_defaults(self, mock_beds):
        with self.assertLogs("ems_routing.core.normalizer", level="WARNING") as logs:
            hospital = normalize_hospital({"id": "H1", "basicInfo": {"name": "Broken"}})

        self.assertEqual(hospital.hospital_id, "H1")
        self.assertEqual(hospital.name, "Unknown")
        self.assertEqual(hospital.bed_availability.available, 0)
        self.assertIn("H1 failed validation", logs.output[0])

    def test_camel_case_record(self):
        raw = {
            "id": "H2",
            "basicInfo": {
                "name": "City General",
                "location": {"lat": 19.0, "lng": 72.8},
                "traumaLevel": "level_2",
            },
            "caseAcceptance": {"acceptsCardiac": "true", "acceptsTrauma": 1},
            "emergencyReadiness": {"status": "diverting", "ambulanceQueue": "2"},
            "bedAvailability": {
                "icu": {"total": 10, "available": 4},
                "emergency": 6,
                "traumaBeds": {"total": 5, "count": 2},
            },
            "specialists": {"traumaSurgeon": {"available": 2}, "cardiologist": "3"},
            "equipment": {
                "ventilators": {"total": 8, "available": 3},
                "defibrillators": 4,
                "portableXRay": 1,
            },
            "clinicalCapabilities": {"strokeCenter": True},
            "serviceAvailability": {"emergency24x7": True},
            "capacityLastUpdated": {"_seconds": 1792229400},
        }

        hospital = normalize_hospital(raw)

        self.assertEqual(hospital.name, "City General")
        self.assertEqual(hospital.location.latitude, 19.0)
        self.assertEqual(hospital.trauma_level, TraumaLevel.LEVEL_2)
        self.assertTrue(hospital.case_acceptance.accepts_cardiac)
        self.assertTrue(hospital.case_acceptance.accepts_trauma)
        self.assertEqual(hospital.emergency_readiness.status, ReadinessStatus.DIVERTING)
        self.assertEqual(hospital.emergency_readiness.ambulance_queue, 2)
        self.assertEqual(hospital.bed_availability.icu.available, 4)
        self.assertEqual(hospital.bed_availability.emergency.available, 6)
        self.assertEqual(hospital.bed_availability.trauma_beds.available, 2)
        self.assertEqual(hospital.specialists, {"trauma_surgeon": 2, "cardiologist": 3})
        self.assertEqual(hospital.equipment.ventilators_available, 3)
        self.assertEqual(hospital.equipment.portable_xray, 1)
        self.assertTrue(hospital.clinical_capabilities.stroke_center)
        self.assertTrue(hospital.service_availability.emergency_24x7)
        self.assertEqual(
            hospital.capacity_last_updated,
            datetime.fromtimestamp(1792229400, tz=timezone.utc),
        )

    def test_overall_availability_falls_back_to_category_sum(self):
        hospital = normalize_hospital(
            {
                "id": "H3",
                "bedAvailability": {
                    "icu": {"available": 2},
                    "emergency": {"available": 3},
                    "isolationBeds": {"available": 1},
                },
            }
        )
        self.assertEqual(hospital.bed_availability.available, 6)

    def test_explicit_zero_availability_is_kept(self):
        hospital = normalize_hospital(
            {"id": "H4", "bedAvailability": {"available": 0, "emergency": {"available": 3}}}
        )
        self.assertEqual(hospital.bed_availability.available, 0)
        self.assertEqual(hospital.bed_availability.emergency.available, 3)

    def test_unknown_readiness_falls_back_to_accepting(self):
        hospital = normalize_hospital(
            {"id": "H5", "emergencyReadiness": {"status": "on fire", "ambulanceQueue": 400}}
        )
        self.assertEqual(hospital.emergency_readiness.status, ReadinessStatus.ACCEPTING)
        self.assertEqual(hospital.emergency_readiness.ambulance_queue, MAX_AMBULANCE_QUEUE)

    def test_bare_ventilator_count(self):
        hospital = normalize_hospital({"id": "H6", "equipment": {"ventilators": 5}})
        self.assertEqual(hospital.equipment.ventilators_total, 5)
        self.assertEqual(hospital.equipment.ventilators_available, 5)


class TestLiveOverlay(unittest.TestCase):
    """Test that live operational telemetry supersedes the profile"""

    BASE = {
        "id": "H7",
        "bedAvailability": {
            "available": 10,
            "icu": {"total": 6, "available": 1},
            "emergency": {"total": 8, "available": 2},
            "isolationBeds": {"available": 3},
        },
        "equipment": {"ventilators": {"total": 4, "available": 1}, "defibrillators": 2},
        "emergencyReadiness": {"status": "accepting", "ambulanceQueue": 1},
        "capacityLastUpdated": "2026-10-17T06:00:00Z",
    }

    def _with_overlay(self, overlay):
        raw = dict(self.BASE)
        raw["liveOps"] = overlay
        return normalize_hospital(raw)

    def test_overlay_supersedes_field_by_field(self):
        hospital = self._with_overlay(
            {
                "bedAvailability": {"icuAvailable": 4},
                "equipmentAvailability": {"defibrillatorsAvailable": 0},
                "emergencyReadiness": {"status": "full"},
            }
        )
        self.assertEqual(hospital.bed_availability.icu.available, 4)
        # Fields absent from the overlay keep the profile value
        self.assertEqual(hospital.bed_availability.emergency.available, 2)
        self.assertEqual(hospital.bed_availability.isolation_beds.available, 3)
        self.assertEqual(hospital.equipment.defibrillators, 0)
        self.assertEqual(hospital.equipment.ventilators_available, 1)
        self.assertEqual(hospital.emergency_readiness.status, ReadinessStatus.FULL)
        self.assertEqual(hospital.emergency_readiness.ambulance_queue, 1)

    def test_overlay_clamped_to_published_total(self):
        hospital = self._with_overlay(
            {
                "bedAvailability": {"icuAvailable": 50, "emergencyAvailable": -3},
                "equipmentAvailability": {"ventilatorsAvailable": 9},
                "emergencyReadiness": {"ambulanceQueue": 99},
            }
        )
        self.assertEqual(hospital.bed_availability.icu.available, 6)
        self.assertEqual(hospital.bed_availability.emergency.available, 0)
        self.assertEqual(hospital.equipment.ventilators_available, 4)
        self.assertEqual(hospital.emergency_readiness.ambulance_queue, MAX_AMBULANCE_QUEUE)

    def test_newer_overlay_timestamp_wins(self):
        hospital = self._with_overlay({"lastUpdated": "2026-10-17T09:00:00Z"})
        self.assertEqual(
            hospital.capacity_last_updated,
            datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc),
        )

        hospital = self._with_overlay({"lastUpdated": "2026-10-16T09:00:00Z"})
        self.assertEqual(
            hospital.capacity_last_updated,
            datetime(2026, 10, 17, 6, 0, tzinfo=timezone.utc),
        )


class TestNormalizeCase(unittest.TestCase):
    """Test normalization of raw case records"""

    def test_camel_case_case(self):
        case = normalize_case(
            {
                "caseId": "C1",
                "aiTriage": {"acuityLevel": 2},
                "emergencyContext": {
                    "emergencyType": "industrial",
                    "incidentTimestamp": "2026-10-17T09:00:00Z",
                },
                "pickupLocation": {"lat": 19.0, "lng": 72.8},
                "supportRequired": {"ventilator": "yes"},
                "infectionRisk": {"isolationRequired": True},
                "status": "awaiting_response",
                "hospitalNotifications": [
                    {"hospitalId": "H1", "hospitalName": "A", "response": None, "rank": 1}
                ],
                "rejectionCount": "1",
            }
        )
        self.assertIsInstance(case, EmergencyCase)
        self.assertEqual(case.case_id, "C1")
        self.assertEqual(case.acuity_level, 2)
        self.assertEqual(case.emergency_type, EmergencyType.TRAUMA)
        self.assertTrue(case.support_required.ventilator)
        self.assertTrue(case.infection_risk.isolation_required)
        self.assertEqual(case.status, CaseStatus.AWAITING_RESPONSE)
        self.assertEqual(len(case.pending_notifications), 1)
        self.assertEqual(case.rejection_count, 1)

    def test_defaults_for_missing_fields(self):
        case = normalize_case({"id": "C2", "acuityLevel": 9, "emergencyType": "alien"})
        self.assertEqual(case.acuity_level, 3)
        self.assertEqual(case.emergency_type, EmergencyType.OTHER)
        self.assertIsNone(case.pickup_location)
        self.assertEqual(case.status, CaseStatus.CREATED)

    def test_existing_case_passes_through(self):
        case = EmergencyCase(case_id="C3")
        self.assertIs(normalize_case(case), case)

    def test_scalar_fields_become_text(self):
        case = normalize_case(
            {
                "caseId": 101,
                "acceptedHospitalId": 7,
                "overrideHospitalId": " ",
                "clinicalFlags": [1, "chest_pain", None, {"code": 3}],
                "hospitalNotifications": [{"hospitalId": "H1", "reason": 404}],
            }
        )
        self.assertEqual(case.case_id, "101")
        self.assertEqual(case.accepted_hospital_id, "7")
        self.assertIsNone(case.override_hospital_id)
        self.assertEqual(case.clinical_flags, ["1", "chest_pain"])
        self.assertEqual(case.hospital_notifications[0].reason, "404")

    def test_unusable_flags(self):
        self.assertEqual(normalize_case({"clinicalFlags": "sepsis"}).clinical_flags, [])

    def test_invalid_record_falls_back_to_defaults(self):
        with self.assertLogs("ems_routing.core.normalizer", level="WARNING") as logs:
            case = normalize_case(
                {"caseId": "C7", "acuityLevel": 1, "patient": {1: "unnamed"}}
            )
        self.assertEqual(case.case_id, "C7")
        self.assertEqual(case.acuity_level, 3)
        self.assertIn("C7 failed validation", logs.output[0])


if __name__ == "__main__":
    unittest.main()
