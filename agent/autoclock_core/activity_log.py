"""
Activity log — JSON-lines file per month recording clock operations,
token refreshes, attendance checks and wake detections for the user to
review.

Best-effort: the core calls it through notify(), which never lets a logging
failure reach scheduling logic.
"""

import json
import itertools
from datetime import datetime, timezone
from pathlib import Path

from .config import log
from .constants import CLOCK_IN_PATH, CLOCK_OUT_PATH, ATTENDANCE_PATH, TOKEN_PATH

ACTIONS = frozenset({
    "clock_in",
    "clock_out",
    "attendance_check",
    "token_refresh",
    "wake_detected",
    "schedule_updated",
    "app_startup",
    "error",
})

_seq = itertools.count()


def notify(logger, method, *args, **kwargs):
    """Call ``logger.<method>(...)`` if a logger is present; swallow its failures."""
    if logger is None:
        return
    try:
        getattr(logger, method)(*args, **kwargs)
    except Exception as e:
        log.warning("Activity log %s failed: %s", method, e)


class ActivityLogger:

    def __init__(self, directory):
        self._dir = Path(directory)

    def _file_for(self, moment):
        return self._dir / f"activity_{moment:%Y_%m}.jsonl"

    def log(self, action, status, details, duration=None, trigger_type=None,
            api_endpoint=None, error_code=None):
        if action not in ACTIONS:
            raise ValueError(f"unknown activity action {action!r}")
        now = datetime.now(timezone.utc)
        entry = {
            "id": f"log_{int(now.timestamp())}_{next(_seq):04d}",
            "timestamp": now.isoformat(),
            "action": action,
            "status": status,
            "details": details,
            "metadata": {
                "duration": duration,
                "triggerType": trigger_type,
                "apiEndpoint": api_endpoint,
                "errorCode": error_code,
            },
        }
        self._dir.mkdir(parents=True, exist_ok=True)
        with open(self._file_for(now), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
        return entry

    # ─── Convenience wrappers ────────────────────────────────

    def log_clock_in(self, success, trigger_type, duration_ms=None, error=None):
        details = (f"Clock-in completed successfully (trigger: {trigger_type})" if success
                   else f"Clock-in failed (trigger: {trigger_type}): {error or 'Unknown error'}")
        return self.log("clock_in", "success" if success else "failed", details,
                        duration=duration_ms, trigger_type=trigger_type,
                        api_endpoint=CLOCK_IN_PATH, error_code=error)

    def log_clock_out(self, success, trigger_type, duration_ms=None, error=None):
        details = (f"Clock-out completed successfully (trigger: {trigger_type})" if success
                   else f"Clock-out failed (trigger: {trigger_type}): {error or 'Unknown error'}")
        return self.log("clock_out", "success" if success else "failed", details,
                        duration=duration_ms, trigger_type=trigger_type,
                        api_endpoint=CLOCK_OUT_PATH, error_code=error)

    def log_attendance_check(self, success, duration_ms=None, error=None):
        details = ("Attendance status retrieved" if success
                   else f"Attendance check failed: {error or 'Unknown error'}")
        return self.log("attendance_check", "success" if success else "failed", details,
                        duration=duration_ms, api_endpoint=ATTENDANCE_PATH, error_code=error)

    def log_token_refresh(self, success, duration_ms=None, error=None):
        details = ("Tokens refreshed" if success
                   else f"Token refresh failed: {error or 'Unknown error'}")
        return self.log("token_refresh", "success" if success else "failed", details,
                        duration=duration_ms, api_endpoint=TOKEN_PATH, error_code=error)

    def log_wake_detected(self, gap_seconds):
        return self.log("wake_detected", "info",
                        f"System wake detected after {int(gap_seconds)} seconds of inactivity",
                        trigger_type="wake_detection")

    def log_schedule_updated(self, schedule):
        return self.log("schedule_updated", "info",
                        f"Schedule set: clock-in {schedule.clock_in_time}, "
                        f"min {schedule.min_work_duration_minutes} min, "
                        f"auto={'on' if schedule.auto_enabled else 'off'}")

    def log_app_startup(self, auto_clock_in_attempted, auto_clock_in_success=None):
        if not auto_clock_in_attempted:
            details, status = "App started, no startup action needed", "info"
        elif auto_clock_in_success:
            details, status = "App started, startup reconciliation acted", "success"
        else:
            details, status = "App started, startup reconciliation failed", "warning"
        return self.log("app_startup", status, details, trigger_type="startup")

    # ─── Reading ─────────────────────────────────────────────

    def _files(self):
        return sorted(self._dir.glob("activity_*.jsonl"), reverse=True)

    def recent(self, limit=50, action=None, status=None):
        """Newest entries first, across monthly files, optionally filtered."""
        if not self._dir.exists():
            return []
        entries = []
        for path in self._files():
            lines = path.read_text(encoding="utf-8").splitlines()
            for line in reversed(lines):
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if action is not None and entry.get("action") != action:
                    continue
                if status is not None and entry.get("status") != status:
                    continue
                entries.append(entry)
                if len(entries) >= limit:
                    return entries
        return entries

    def clear(self):
        """Delete every monthly file. Returns the number of entries removed."""
        if not self._dir.exists():
            return 0
        removed = 0
        for path in self._files():
            removed += sum(1 for line in path.read_text(encoding="utf-8").splitlines() if line.strip())
            path.unlink()
        log.info("Activity log cleared (%d entries)", removed)
        return removed
