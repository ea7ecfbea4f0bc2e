"""
AgentApp — wires the collaborators together and hosts the scheduler.

Owns: credential store, HTTP session, remote client, token coordinator,
activity log, scheduler, liveness monitor. ``run()`` blocks the main
thread; all work happens on timer and monitor threads.
"""

import threading

from .activity_log import ActivityLogger, notify
from .api import AttendanceClient
from .config import log, safe_print, CREDENTIALS_DIR, ACTIVITY_DIR
from .constants import AGENT_VERSION
from .errors import AppError
from .http_client import create_session
from .monitor import LivenessMonitor
from .scheduler import BackendScheduler
from .state import WorkSchedule
from .storage import FileCredentialStore
from .token_manager import TokenRefreshCoordinator


class AgentApp:

    def __init__(self, config, store=None, client=None, activity=None, scheduler=None):
        self._config = config or {}
        self._stop_event = threading.Event()
        self._http = None

        if client is None:
            self._http = create_session()
            client = AttendanceClient(
                self._config.get("apiBaseUrl"),
                self._config.get("authBaseUrl"),
                self._config.get("clientId"),
                session=self._http,
            )

        self.store = store if store is not None else FileCredentialStore(CREDENTIALS_DIR)
        self.activity = activity if activity is not None else ActivityLogger(ACTIVITY_DIR)
        self.client = client
        self.tokens = TokenRefreshCoordinator(self.store, self.client, self.activity)
        self.scheduler = scheduler or BackendScheduler(self.tokens, self.activity)
        self.monitor = LivenessMonitor(self.scheduler.on_wake_gap)

    def load_schedule(self):
        """Schedule from config, or None when none is stored."""
        data = self._config.get("schedule")
        if not data:
            return None
        return WorkSchedule.from_dict(data)

    def startup(self):
        """Start the scheduler from the stored schedule and reconcile once."""
        schedule = self.load_schedule()
        if schedule is None:
            log.info("No schedule configured — automatic clock-in disabled")
            schedule = WorkSchedule()
        # Running even without auto clock-in, so adopted sessions still get a clock-out.
        self.scheduler.start(schedule)

        try:
            acted = self.scheduler.run_reconciliation_check()
            notify(self.activity, "log_app_startup", acted, acted)
            if acted:
                log.info("Startup reconciliation took action")
            else:
                log.info("Startup reconciliation: no action needed")
        except AppError as e:
            log.warning("Startup reconciliation failed: %s", e)
            notify(self.activity, "log_app_startup", True, False)

    def run(self):
        """Start everything and block until stop() or Ctrl+C."""
        log.info("AutoClock agent v%s starting", AGENT_VERSION)
        self.startup()
        self.monitor.start()
        safe_print("Service running.\n")

        try:
            while not self._stop_event.wait(1.0):
                pass
        finally:
            self.shutdown()

    def stop(self):
        self._stop_event.set()

    def shutdown(self):
        self.monitor.stop()
        self.scheduler.stop()
        if self._http is not None:
            try:
                self._http.close()
            except Exception as e:
                log.debug("HTTP session close failed: %s", e)
        log.info("AgentApp shut down.")

