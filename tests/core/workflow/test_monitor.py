"""
Tests for the background escalation monitor.
"""

import threading
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from ems_routing.config import RoutingSettings
from ems_routing.core.workflow.monitor import EscalationMonitor


def make_engine(**settings):
    engine = MagicMock()
    engine.settings = RoutingSettings(**settings)
    return engine


class TestEscalationMonitor(unittest.TestCase):

    def test_interval_defaults_to_settings(self):
        monitor = EscalationMonitor(make_engine(escalation_poll_seconds=7))
        self.assertEqual(monitor.interval_seconds, 7)
        self.assertEqual(EscalationMonitor(make_engine(), interval_seconds=1).interval_seconds, 1)

    def test_run_once_delegates_to_engine(self):
        engine = make_engine()
        engine.check_timeout_escalations.return_value = ["C1"]
        now = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)

        self.assertEqual(EscalationMonitor(engine).run_once(now), ["C1"])
        engine.check_timeout_escalations.assert_called_once_with(now)

    def test_run_once_swallows_scan_failures(self):
        engine = make_engine()
        engine.check_timeout_escalations.side_effect = RuntimeError("database locked")

        with self.assertLogs("ems_routing.core.workflow.monitor", level="ERROR"):
            self.assertEqual(EscalationMonitor(engine).run_once(), [])

    def test_start_and_stop(self):
        engine = make_engine()
        scanned = threading.Event()
        engine.check_timeout_escalations.side_effect = lambda now=None: scanned.set() or []

        monitor = EscalationMonitor(engine, interval_seconds=0.01)
        monitor.start()
        try:
            self.assertTrue(monitor.is_running)
            self.assertTrue(scanned.wait(timeout=5))
        finally:
            monitor.stop(timeout=5)

        self.assertFalse(monitor.is_running)
        self.assertGreaterEqual(engine.check_timeout_escalations.call_count, 1)

    def test_start_twice_keeps_one_thread(self):
        monitor = EscalationMonitor(make_engine(), interval_seconds=0.01)
        monitor.start()
        try:
            thread = monitor._thread
            monitor.start()
            self.assertIs(monitor._thread, thread)
        finally:
            monitor.stop(timeout=5)


if __name__ == "__main__":
    unittest.main()
