"""
Tests for the acuity-aware escalation rules.
"""

import unittest
from datetime import datetime, timedelta, timezone

from ems_routing.core.models import CaseStatus, EmergencyCase, EscalationTrigger
from ems_routing.core.workflow.escalation import (
    ESCALATION_THRESHOLDS,
    evaluate_escalation,
    get_escalation_threshold,
    get_timeout_remaining,
)

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def awaiting_case(acuity_level=3, rejections=0, waited_seconds=0, status=CaseStatus.AWAITING_RESPONSE):
    return EmergencyCase(
        case_id="C1",
        acuity_level=acuity_level,
        status=status,
        rejection_count=rejections,
        awaiting_response_since=NOW - timedelta(seconds=waited_seconds),
    )


class TestThresholds(unittest.TestCase):

    def test_table(self):
        expected = {1: (1, 60), 2: (2, 90), 3: (3, 120), 4: (3, 180), 5: (3, 180)}
        for acuity, (rejections, timeout) in expected.items():
            with self.subTest(acuity=acuity):
                threshold = get_escalation_threshold(acuity)
                self.assertEqual(threshold.max_rejections, rejections)
                self.assertEqual(threshold.timeout_seconds, timeout)

    def test_unknown_acuity_uses_level_3(self):
        self.assertEqual(get_escalation_threshold(None), ESCALATION_THRESHOLDS[3])
        self.assertEqual(get_escalation_threshold(9), ESCALATION_THRESHOLDS[3])


class TestEvaluateEscalation(unittest.TestCase):

    def test_below_thresholds(self):
        decision = evaluate_escalation(awaiting_case(rejections=2, waited_seconds=119), NOW)
        self.assertFalse(decision.should_escalate)
        self.assertIsNone(decision.reason)

    def test_rejections(self):
        decision = evaluate_escalation(awaiting_case(acuity_level=2, rejections=2), NOW)
        self.assertTrue(decision.should_escalate)
        self.assertEqual(decision.reason, EscalationTrigger.REJECTIONS)

    def test_timeout(self):
        decision = evaluate_escalation(awaiting_case(acuity_level=1, waited_seconds=60), NOW)
        self.assertEqual(decision.reason, EscalationTrigger.TIMEOUT)

    def test_both(self):
        decision = evaluate_escalation(
            awaiting_case(acuity_level=5, rejections=3, waited_seconds=200), NOW
        )
        self.assertEqual(decision.reason, EscalationTrigger.BOTH)

    def test_never_awaited_cannot_time_out(self):
        case = EmergencyCase(case_id="C1", status=CaseStatus.TRIAGED)
        self.assertFalse(evaluate_escalation(case, NOW).should_escalate)

    def test_settled_cases_never_escalate(self):
        for status in (
            CaseStatus.ACCEPTED,
            CaseStatus.ESCALATION_REQUIRED,
            CaseStatus.DISPATCHER_OVERRIDE,
            CaseStatus.COMPLETED,
        ):
            with self.subTest(status=status):
                case = awaiting_case(rejections=5, waited_seconds=999, status=status)
                self.assertFalse(evaluate_escalation(case, NOW).should_escalate)


class TestTimeoutRemaining(unittest.TestCase):

    def test_counts_down_and_floors_at_zero(self):
        self.assertEqual(get_timeout_remaining(awaiting_case(waited_seconds=20), NOW), 100)
        self.assertEqual(get_timeout_remaining(awaiting_case(waited_seconds=500), NOW), 0)

    def test_full_window_before_dispatch(self):
        case = EmergencyCase(case_id="C1", acuity_level=2)
        self.assertEqual(get_timeout_remaining(case, NOW), 90)


if __name__ == "__main__":
    unittest.main()
