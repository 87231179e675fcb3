"""
Health monitoring for the supervised server/tunnel pair.
"""

import logging
import threading
import time
from typing import TYPE_CHECKING, Optional

import config

if TYPE_CHECKING:
    from services.SupervisorService import ServerSupervisor

log = logging.getLogger(__name__)


class HealthMonitor:
    """Periodically checks that both supervised processes are still alive."""

    def __init__(self, supervisor: 'ServerSupervisor', check_interval: Optional[float] = None):
        """
        Initialize health monitor.

        Args:
            supervisor: ServerSupervisor whose session is watched
            check_interval: Seconds between health checks
        """
        self.supervisor = supervisor
        self.check_interval = check_interval if check_interval is not None else config.HEALTH_CHECK_INTERVAL
        self.running = False
        self.thread = None
        self._wake = threading.Event()

    def start(self):
        """Start health monitoring in background thread."""
        if self.running:
            log.warning("Health monitor already running")
            return

        self.running = True
        self._wake.clear()
        self.thread = threading.Thread(target=self._check_loop, daemon=True)
        self.thread.start()
        log.info(f"Health monitor started (check interval: {self.check_interval}s)")

    def stop(self):
        """Stop health monitoring gracefully."""
        if not self.running:
            return

        self.running = False
        self._wake.set()

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=5)

        log.info("Health monitor stopped")

    def force_check(self) -> bool:
        """
        Trigger immediate health check.

        Returns:
            True if healthy (or idle), False if the session was torn down
        """
        return self.supervisor.check_processes()

    def _check_loop(self):
        while self.running:
            try:
                if not self.supervisor.check_processes():
                    log.warning("Supervised session ended unexpectedly")
            except Exception as e:
                log.error(f"Error in health monitor loop: {e}")
                time.sleep(1)

            self._wake.wait(self.check_interval)
