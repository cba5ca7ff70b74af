"""
Background timeout monitor.

Periodically scans cases awaiting a hospital response and escalates those
whose response window has expired. It funnels through
ResponseEngine.trigger_escalation, so it can run alongside accept and reject
handlers without double-escalating a case.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional

from ems_routing.core.workflow.engine import ResponseEngine

logger = logging.getLogger(__name__)


class EscalationMonitor:
    """
    Daemon thread running the timeout scan on a fixed interval.

    Args:
        engine: Response engine whose repository is scanned.
        interval_seconds: Seconds between scans; defaults to the engine settings.
    """

    def __init__(self, engine: ResponseEngine, interval_seconds: Optional[float] = None):
        self.engine = engine
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else engine.settings.escalation_poll_seconds
        )
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[datetime] = None) -> List[str]:
        """Run a single scan; scan failures are logged, not raised."""
        try:
            return self.engine.check_timeout_escalations(now)
        except Exception:
            logger.exception("Escalation scan failed")
            return []

    def _run(self) -> None:
        logger.info(f"Escalation monitor started (every {self.interval_seconds}s)")
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval_seconds)
        logger.info("Escalation monitor stopped")

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="escalation-monitor", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
