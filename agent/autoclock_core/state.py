"""
Scheduler data model: WorkSchedule, SessionState, ScheduledOperation,
SchedulerState.

SchedulerState is the single source of truth the UI sees. The scheduler
mutates it under its lock and hands out deep copies.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .constants import DEFAULT_CLOCK_IN_TIME, DEFAULT_MIN_WORK_MINUTES
from .errors import ValidationError

_CLOCK_IN_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class OperationKind(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"


class OperationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.PENDING


def _iso(value):
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class WorkSchedule:
    auto_enabled: bool = False
    clock_in_time: str = DEFAULT_CLOCK_IN_TIME     # HH:MM, local wall clock
    timezone: str = ""                             # "" → system local zone
    min_work_duration_minutes: int = DEFAULT_MIN_WORK_MINUTES

    def __post_init__(self):
        if not isinstance(self.clock_in_time, str) or not _CLOCK_IN_RE.match(self.clock_in_time):
            raise ValidationError("clockInTime", f"invalid time {self.clock_in_time!r}, expected HH:MM")
        if (not isinstance(self.min_work_duration_minutes, int)
                or isinstance(self.min_work_duration_minutes, bool)
                or self.min_work_duration_minutes < 0):
            raise ValidationError(
                "minWorkDurationMinutes",
                f"must be a non-negative integer, got {self.min_work_duration_minutes!r}",
            )
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValidationError("timezone", f"unknown timezone {self.timezone!r}") from None

    @property
    def hour_minute(self):
        m = _CLOCK_IN_RE.match(self.clock_in_time)
        return int(m.group(1)), int(m.group(2))

    @property
    def tzinfo(self):
        """Configured zone, or None for the system local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None

    @property
    def min_work_duration(self) -> timedelta:
        return timedelta(minutes=self.min_work_duration_minutes)

    @classmethod
    def from_dict(cls, data):
        """Build from the camelCase form stored in config.json."""
        if not isinstance(data, dict):
            raise ValidationError("schedule", "schedule must be an object")
        minutes = data.get("minWorkDurationMinutes", DEFAULT_MIN_WORK_MINUTES)
        return cls(
            auto_enabled=bool(data.get("autoScheduleEnabled", data.get("autoEnabled", False))),
            clock_in_time=data.get("clockInTime", DEFAULT_CLOCK_IN_TIME),
            timezone=data.get("timezone") or "",
            min_work_duration_minutes=minutes,
        )

    def as_dict(self):
        return {
            "autoScheduleEnabled": self.auto_enabled,
            "clockInTime": self.clock_in_time,
            "timezone": self.timezone,
            "minWorkDurationMinutes": self.min_work_duration_minutes,
        }


@dataclass
class SessionState:
    clocked_in: bool = False
    clock_in_time: Optional[datetime] = None
    expected_clock_out_time: Optional[datetime] = None

    # ── History (kept after clock-out, outside the clocked-in invariant) ──
    last_clock_in_time: Optional[datetime] = None
    last_clock_out_time: Optional[datetime] = None

    def begin(self, clock_in_time, min_duration):
        self.clocked_in = True
        self.clock_in_time = clock_in_time
        self.expected_clock_out_time = clock_in_time + min_duration
        self.last_clock_in_time = clock_in_time

    def end(self, clock_out_time):
        self.clocked_in = False
        self.clock_in_time = None
        self.expected_clock_out_time = None
        self.last_clock_out_time = clock_out_time

    def as_dict(self):
        return {
            "clockedIn": self.clocked_in,
            "clockInTime": _iso(self.clock_in_time),
            "expectedClockOutTime": _iso(self.expected_clock_out_time),
            "lastClockInTime": _iso(self.last_clock_in_time),
            "lastClockOutTime": _iso(self.last_clock_out_time),
        }


@dataclass
class ScheduledOperation:
    id: str
    kind: OperationKind
    scheduled_time: datetime
    status: OperationStatus = OperationStatus.PENDING
    actual_time: Optional[datetime] = None
    error_message: Optional[str] = None

    def resolve(self, status, at=None, error=None):
        """Move to a terminal status. Terminal operations are never reopened."""
        if self.status.is_terminal:
            return False
        self.status = status
        self.actual_time = at
        self.error_message = error
        return True

    def as_dict(self):
        return {
            "id": self.id,
            "operationType": self.kind.value,
            "scheduledTime": _iso(self.scheduled_time),
            "status": self.status.value,
            "actualTime": _iso(self.actual_time),
            "errorMessage": self.error_message,
        }


@dataclass
class SchedulerState:
    is_running: bool = False
    current_session: SessionState = field(default_factory=SessionState)
    pending_operations: List[ScheduledOperation] = field(default_factory=list)
    last_error: Optional[str] = None

    def find(self, operation_id) -> Optional[ScheduledOperation]:
        # Newest first: an id can be reused after its earlier op was cancelled.
        for op in reversed(self.pending_operations):
            if op.id == operation_id:
                return op
        return None

    def pending_of(self, kind):
        return [op for op in self.pending_operations
                if op.kind is kind and op.status is OperationStatus.PENDING]

    def trim_history(self, limit):
        terminal = [op for op in self.pending_operations if op.status.is_terminal]
        excess = len(terminal) - limit
        if excess <= 0:
            return
        drop = {id(op) for op in terminal[:excess]}
        self.pending_operations = [op for op in self.pending_operations if id(op) not in drop]

    def as_dict(self):
        return {
            "isRunning": self.is_running,
            "currentSession": self.current_session.as_dict(),
            "pendingOperations": [op.as_dict() for op in self.pending_operations],
            "lastError": self.last_error,
        }
