"""
Startup / post-wake reconciliation.

Compares the scheduler's session with the server's attendance record after
any gap in execution (process start, system sleep) and repairs the
difference: adopts clock-ins made through other channels, performs overdue
clock-outs, mirrors completed days, and clocks in when nothing happened yet.
"""

from .activity_log import notify
from .config import log
from .errors import AppError
from .state import OperationKind
from .timeutil import parse_clock_in_timestamp


class ReconciliationCheck:

    def __init__(self, scheduler, tokens, activity=None):
        self._scheduler = scheduler
        self._tokens = tokens
        self._activity = activity

    def on_wake_gap(self, gap_seconds):
        """Entry point for the liveness monitor after a detected sleep."""
        log.warning("Detected potential system wake (gap of %.0f seconds) — reconciling", gap_seconds)
        notify(self._activity, "log_wake_detected", gap_seconds)
        return self.run()

    def run(self) -> bool:
        """
        Returns True when an action was taken (clock-in, clock-out, or an
        external session adopted). Remote errors from the action propagate.
        """
        acted = False
        try:
            acted = self._run()
        except AppError:
            self._scheduler.emit("auto_startup_completed", success=False)
            raise
        self._scheduler.emit("auto_startup_completed", success=acted)
        return acted

    def _run(self):
        scheduler = self._scheduler

        if not self._tokens.has_credentials():
            log.info("No access token available — skipping reconciliation")
            return False

        session = scheduler.get_state().current_session
        if session.clocked_in:
            log.info("Already clocked in — nothing to reconcile")
            return False

        now = scheduler.now()
        today = scheduler.local_date(now)
        if session.last_clock_in_time is not None:
            last_day = scheduler.local_date(session.last_clock_in_time)
            if last_day == today:
                log.info("Already clocked in today (%s) — nothing to reconcile", today)
                return False
            log.info("Last clock-in was on %s, today is %s", last_day, today)

        record = None
        try:
            record = self._tokens.get_today_attendance(today)
        except AppError as e:
            log.warning("Attendance check failed (%s) — attempting clock-in anyway", e)

        if record is not None:
            log.info("Attendance today: status=%r in=%s out=%s",
                     record.attendance_status, record.date_time_in, record.date_time_out)

            if record.is_rest_day:
                log.info("Rest day — no clock-in")
                return False
            if record.is_on_leave:
                log.info("On leave (%s) — no clock-in", record.leave_details or "no details")
                return False
            if record.is_completed:
                scheduler.record_completed_session(
                    parse_clock_in_timestamp(record.date_time_in),
                    parse_clock_in_timestamp(record.date_time_out),
                )
                return False
            if record.is_in_progress:
                external_in = parse_clock_in_timestamp(record.date_time_in)
                if external_in is not None:
                    return self._reconcile_external_session(external_in, now)
                log.warning("Unparseable clock-in time %r — treating as not started",
                            record.date_time_in)

        log.info("Conditions met — attempting auto clock-in")
        ok = scheduler.manual_clock_in(trigger="auto_startup")
        log.info("Auto clock-in %s", "succeeded" if ok else "failed")
        return ok

    def _reconcile_external_session(self, clock_in_time, now):
        scheduler = self._scheduler
        deadline = clock_in_time + scheduler.min_work_duration()

        if now >= deadline:
            log.info("External clock-in at %s is past its clock-out deadline %s — clocking out now",
                     clock_in_time.isoformat(), deadline.isoformat())
            return scheduler.manual_clock_out(bypass_minimum=True, trigger="auto_startup")

        if scheduler.has_pending(OperationKind.CLOCK_OUT):
            log.info("Clock-out already scheduled — nothing to do")
            return False

        op = scheduler.adopt_external_clock_in(clock_in_time)
        if op is None:
            log.info("External session adopted, clock-out not armed (scheduler stopped or already pending)")
        return True
