"""
BackendScheduler — owns the work-session state and the clock-in/out timers.

Cycle:  Idle → AwaitingClockIn → ClockedIn → AwaitingClockOut → Idle

Threads: each armed operation is a threading.Timer. Manual calls and the
reconciliation check run on the caller's thread. Every mutation of
SchedulerState happens under ``self._lock``; remote calls never hold it.

Timer bookkeeping: ``self._timers`` maps operation id → (kind, timer) for
timers that have NOT started executing. A firing timer claims its entry by
removing it under the lock, so cancelling later cannot interrupt it and
cancelling earlier guarantees it never runs. At most one entry per kind.
"""

import copy
import threading

from .activity_log import notify
from .config import log
from .constants import DEFAULT_MIN_WORK_MINUTES, MAX_OPERATION_HISTORY, MIN_TIMER_DELAY_SEC
from .errors import AppError, ValidationError
from .reconcile import ReconciliationCheck
from .state import (
    OperationKind, OperationStatus, ScheduledOperation, SchedulerState, WorkSchedule,
)
from .timeutil import local_now, next_clock_in_time, clamp_clock_out_delay, to_zone


class BackendScheduler:
    """
    Long-lived scheduler object. The host owns it and passes it around;
    there is no module-level instance.
    """

    def __init__(self, tokens, activity=None, now=None, timer_factory=None,
                 history_limit=MAX_OPERATION_HISTORY):
        self._tokens = tokens
        self._activity = activity
        self._now = now or local_now
        self._timer_factory = timer_factory or threading.Timer
        self._history_limit = history_limit

        self._lock = threading.RLock()
        self._state = SchedulerState()
        self._schedule = None
        self._timers = {}
        self._listeners = []

        self.reconciler = ReconciliationCheck(self, tokens, activity)

    # ─── Observers ───────────────────────────────────────────

    def add_listener(self, callback):
        """Register ``callback(event_name, data_dict)``."""
        self._listeners.append(callback)

    def emit(self, event, **data):
        for callback in list(self._listeners):
            try:
                callback(event, data)
            except Exception as e:
                log.warning("Scheduler listener failed on %s: %s", event, e)

    # ─── Read side ───────────────────────────────────────────

    def get_state(self) -> SchedulerState:
        """Consistent deep copy of the scheduler state."""
        with self._lock:
            return copy.deepcopy(self._state)

    @property
    def schedule(self):
        with self._lock:
            return self._schedule

    @property
    def tokens(self):
        return self._tokens

    def now(self):
        return self._now()

    def min_work_duration(self):
        with self._lock:
            schedule = self._schedule
        if schedule is None:
            return WorkSchedule(min_work_duration_minutes=DEFAULT_MIN_WORK_MINUTES).min_work_duration
        return schedule.min_work_duration

    def local_date(self, moment):
        """Calendar date of ``moment`` in the schedule's zone (system local if unset)."""
        schedule = self.schedule
        return to_zone(moment, schedule.tzinfo if schedule else None).date()

    def can_clock_out(self) -> bool:
        """Whether the minimum work duration has elapsed since clock-in."""
        with self._lock:
            clock_in = self._state.current_session.clock_in_time
            if not self._state.current_session.clocked_in or clock_in is None:
                return False
        return self._now() - clock_in >= self.min_work_duration()

    def has_pending(self, kind) -> bool:
        with self._lock:
            return any(k is kind for k, _ in self._timers.values())

    # ─── Lifecycle ───────────────────────────────────────────

    def start(self, schedule):
        """Replace the schedule, cancel everything armed, and re-arm from it."""
        if not isinstance(schedule, WorkSchedule):
            raise ValidationError("schedule", "expected a WorkSchedule")
        log.info("Starting scheduler: clock-in %s, min %d min, auto=%s, tz=%s",
                 schedule.clock_in_time, schedule.min_work_duration_minutes,
                 schedule.auto_enabled, schedule.timezone or "local")

        with self._lock:
            self._cancel_all_locked()
            self._schedule = schedule
            self._state.is_running = True
            self._state.last_error = None
            clocked_in = self._state.current_session.clocked_in
            if clocked_in:
                session = self._state.current_session
                session.expected_clock_out_time = session.clock_in_time + schedule.min_work_duration

        self.emit("scheduler_started")
        self.emit("schedule_updated", schedule=schedule.as_dict())
        notify(self._activity, "log_schedule_updated", schedule)

        # While clocked in, the next clock-in is armed by the clock-out.
        if clocked_in:
            self._schedule_clock_out()
        elif schedule.auto_enabled:
            self._schedule_next_clock_in()

    def stop(self):
        """Cancel every armed timer and clear operations. Safe to call repeatedly."""
        with self._lock:
            was_running = self._state.is_running
            self._cancel_all_locked()
            self._state.pending_operations.clear()
            self._state.is_running = False
        if was_running:
            log.info("Scheduler stopped")
        self.emit("scheduler_stopped")

    # ─── Manual operations ───────────────────────────────────

    def manual_clock_in(self, trigger="manual") -> bool:
        """Clock in now. Supersedes a pending automatic clock-in."""
        log.info("Manual clock-in requested (%s)", trigger)
        ok = self._tokens.clock_in(trigger=trigger)
        if not ok:
            log.warning("Manual clock-in: API returned false")
            return False

        now = self._now()
        with self._lock:
            self._state.current_session.begin(now, self.min_work_duration())
            self._cancel_kind_locked(OperationKind.CLOCK_IN)
            self._state.last_error = None

        self.emit("clock_in_succeeded", operation_id="manual", actual_time=now.isoformat())
        self._schedule_clock_out()
        return True

    def manual_clock_out(self, bypass_minimum=False, trigger="manual") -> bool:
        """Clock out now. Refused before the minimum duration unless bypassed."""
        log.info("Manual clock-out requested (bypass_minimum=%s, %s)", bypass_minimum, trigger)
        if not bypass_minimum and not self.can_clock_out():
            raise ValidationError("operation", "Cannot clock out before minimum work duration")

        ok = self._tokens.clock_out(trigger=trigger)
        if not ok:
            log.warning("Manual clock-out: API returned false")
            return False

        now = self._now()
        with self._lock:
            self._state.current_session.end(now)
            self._cancel_kind_locked(OperationKind.CLOCK_OUT)
            self._state.last_error = None

        self.emit("clock_out_succeeded", operation_id="manual", actual_time=now.isoformat())
        self._schedule_next_clock_in()
        return True

    # ─── Reconciliation hooks ────────────────────────────────

    def run_reconciliation_check(self) -> bool:
        return self.reconciler.run()

    def on_wake_gap(self, gap_seconds) -> bool:
        return self.reconciler.on_wake_gap(gap_seconds)

    def adopt_external_clock_in(self, clock_in_time):
        """
        Take over a session started outside the agent and arm its clock-out.
        Returns the armed operation, or None when a clock-out is already pending.
        """
        with self._lock:
            if any(k is OperationKind.CLOCK_OUT for k, _ in self._timers.values()):
                return None
            self._state.current_session.begin(clock_in_time, self.min_work_duration())
            self._cancel_kind_locked(OperationKind.CLOCK_IN)
        log.info("Adopted external clock-in at %s", clock_in_time.isoformat())
        return self._schedule_clock_out()

    def record_completed_session(self, clock_in_time, clock_out_time):
        """Mirror a session the server already shows as completed."""
        with self._lock:
            session = self._state.current_session
            session.end(clock_out_time)
            if clock_in_time is not None:
                session.last_clock_in_time = clock_in_time
        log.info("Remote session already completed (in=%s, out=%s)",
                 clock_in_time.isoformat() if clock_in_time else "?",
                 clock_out_time.isoformat() if clock_out_time else "?")

    # ─── Arming ──────────────────────────────────────────────

    def _schedule_next_clock_in(self):
        with self._lock:
            schedule = self._schedule
            if schedule is None or not schedule.auto_enabled or not self._state.is_running:
                return None
            if self._state.current_session.clocked_in:
                return None
            now = self._now()
            when = next_clock_in_time(schedule, now)
            delay = max((when - now).total_seconds(), MIN_TIMER_DELAY_SEC)
            op, armed = self._arm_locked(OperationKind.CLOCK_IN, when, delay)

        if armed:
            log.info("Clock-in scheduled for %s (in %.0fs) [%s]", when.isoformat(), delay, op.id)
            self.emit("clock_in_scheduled", operation_id=op.id, scheduled_time=when.isoformat())
        return op

    def _schedule_clock_out(self):
        with self._lock:
            session = self._state.current_session
            if not self._state.is_running or not session.clocked_in:
                return None
            when = session.expected_clock_out_time
            now = self._now()
            raw_delay = (when - now).total_seconds()
            delay = clamp_clock_out_delay(raw_delay)
            op, armed = self._arm_locked(OperationKind.CLOCK_OUT, when, delay)

        if armed:
            if delay != raw_delay:
                log.warning("Clock-out delay %.0fs clamped to %.0fs", raw_delay, delay)
            log.info("Clock-out scheduled for %s (in %.0fs) [%s]", when.isoformat(), delay, op.id)
            self.emit("clock_out_scheduled", operation_id=op.id, scheduled_time=when.isoformat())
        return op

    def _arm_locked(self, kind, when, delay):
        op_id = f"{kind.value}_{int(when.timestamp())}"
        if op_id in self._timers:
            return self._state.find(op_id), False

        self._cancel_kind_locked(kind)

        op = ScheduledOperation(id=op_id, kind=kind, scheduled_time=when)
        self._state.pending_operations.append(op)
        self._state.trim_history(self._history_limit)

        timer = self._timer_factory(delay, self._on_timer, args=(op_id, kind))
        timer.daemon = True
        self._timers[op_id] = (kind, timer)
        timer.start()
        return op, True

    # ─── Cancellation ────────────────────────────────────────

    def _cancel_kind_locked(self, kind):
        # Only unclaimed timers; an operation already executing records its own outcome.
        now = None
        for op_id, (k, timer) in list(self._timers.items()):
            if k is not kind:
                continue
            timer.cancel()
            del self._timers[op_id]
            op = self._state.find(op_id)
            if op is not None:
                now = now or self._now()
                op.resolve(OperationStatus.CANCELLED, at=now)

    def _cancel_all_locked(self):
        for kind in OperationKind:
            self._cancel_kind_locked(kind)

    # ─── Timer execution ─────────────────────────────────────

    def _claim_locked(self, operation_id):
        if self._timers.pop(operation_id, None) is None:
            return None
        op = self._state.find(operation_id)
        if op is None or op.status is not OperationStatus.PENDING:
            return None
        return op

    def _on_timer(self, operation_id, kind):
        try:
            if kind is OperationKind.CLOCK_IN:
                self.execute_clock_in(operation_id)
            else:
                self.execute_clock_out(operation_id)
        except Exception as e:
            log.error("Scheduled %s crashed: %s", operation_id, e, exc_info=True)
            with self._lock:
                op = self._state.find(operation_id)
                if op is not None:
                    op.resolve(OperationStatus.FAILED, at=self._now(), error=str(e))
                self._state.last_error = str(e)

    def execute_clock_in(self, operation_id):
        with self._lock:
            op = self._claim_locked(operation_id)
            if op is None:
                log.info("Clock-in %s no longer pending — skipped", operation_id)
                return False
            if self._state.current_session.clocked_in:
                op.resolve(OperationStatus.CANCELLED, at=self._now())
                log.info("Clock-in %s skipped — session already clocked in", operation_id)
                return False

        log.info("Executing automatic clock-in: %s", operation_id)
        ok, error = self._run_remote(self._tokens.clock_in, "Clock-in")

        now = self._now()
        with self._lock:
            op = self._state.find(operation_id)
            if op is not None:
                op.resolve(OperationStatus.COMPLETED if ok else OperationStatus.FAILED,
                           at=now, error=error)
            if ok:
                self._state.current_session.begin(now, self.min_work_duration())
                self._state.last_error = None
            else:
                self._state.last_error = error

        if ok:
            log.info("Automatic clock-in succeeded at %s", now.isoformat())
            self.emit("clock_in_succeeded", operation_id=operation_id, actual_time=now.isoformat())
            self._schedule_clock_out()
        else:
            log.error("Automatic clock-in failed: %s", error)
            self.emit("clock_in_failed", operation_id=operation_id, error=error)
        return ok

    def execute_clock_out(self, operation_id):
        with self._lock:
            op = self._claim_locked(operation_id)
            if op is None:
                log.info("Clock-out %s no longer pending — skipped", operation_id)
                return False
            session = self._state.current_session
            deadline = session.expected_clock_out_time
            now = self._now()
            if not session.clocked_in:
                op.resolve(OperationStatus.CANCELLED, at=now)
                log.info("Clock-out %s skipped — session not clocked in", operation_id)
                return False
            early = deadline is not None and now < deadline
            if early:
                op.resolve(OperationStatus.CANCELLED, at=now)

        if early:
            # Capped wait ran out before the deadline; wait again.
            log.info("Clock-out %s woke before %s — re-arming", operation_id, deadline.isoformat())
            self._schedule_clock_out()
            return False

        log.info("Executing automatic clock-out: %s", operation_id)
        ok, error = self._run_remote(self._tokens.clock_out, "Clock-out")

        now = self._now()
        with self._lock:
            op = self._state.find(operation_id)
            if op is not None:
                op.resolve(OperationStatus.COMPLETED if ok else OperationStatus.FAILED,
                           at=now, error=error)
            if ok:
                self._state.current_session.end(now)
                self._state.last_error = None
            else:
                # Session stays clocked in; a human must clock out.
                self._state.last_error = error

        if ok:
            log.info("Automatic clock-out succeeded at %s", now.isoformat())
            self.emit("clock_out_succeeded", operation_id=operation_id, actual_time=now.isoformat())
            self._schedule_next_clock_in()
        else:
            log.error("Automatic clock-out failed: %s — session left clocked in", error)
            self.emit("clock_out_failed", operation_id=operation_id, error=error)
        return ok

    @staticmethod
    def _run_remote(call, label):
        try:
            ok = call(trigger="scheduled")
        except AppError as e:
            return False, str(e)
        if not ok:
            return False, f"{label} API returned false"
        return True, None
