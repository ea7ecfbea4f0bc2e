"""
Time helpers: next clock-in deadline, clock-out delay clamping, and the one
parser used for every remote clock-in timestamp.
"""

from datetime import datetime, timedelta, timezone

from .constants import MIN_TIMER_DELAY_SEC, MAX_REASONABLE_DELAY_SEC, CAPPED_DELAY_SEC
from .errors import SchedulingError


def local_now():
    """Current time as an aware datetime in the system local zone."""
    return datetime.now(timezone.utc).astimezone()


def to_zone(moment, tz=None):
    """Convert an aware datetime to ``tz`` (None → system local zone)."""
    return moment.astimezone(tz) if tz is not None else moment.astimezone()


def _localize(naive, tz):
    if tz is not None:
        return naive.replace(tzinfo=tz)
    # Naive astimezone() reads the value as system local time (DST-aware).
    return naive.astimezone()


def next_clock_in_time(schedule, now):
    """
    Today at ``schedule.clock_in_time`` in the schedule's zone, or the same
    wall-clock time tomorrow when that moment is not in the future.
    """
    tz = schedule.tzinfo
    hour, minute = schedule.hour_minute
    today = to_zone(now, tz).date()

    for offset in (0, 1, 2):
        day = today + timedelta(days=offset)
        try:
            candidate = _localize(datetime(day.year, day.month, day.day, hour, minute), tz)
        except (OverflowError, OSError) as e:
            raise SchedulingError(f"Cannot resolve {schedule.clock_in_time} on {day}: {e}") from e
        if candidate > now:
            return candidate

    raise SchedulingError(f"No future clock-in time found for {schedule.clock_in_time}")


def clamp_clock_out_delay(delay_sec):
    """
    Seconds to actually wait for a clock-out due in ``delay_sec``.
    Already due → one tick. Beyond a day → capped; reconciliation covers the rest.
    """
    if delay_sec <= 0:
        return MIN_TIMER_DELAY_SEC
    if delay_sec > MAX_REASONABLE_DELAY_SEC:
        return CAPPED_DELAY_SEC
    return max(delay_sec, MIN_TIMER_DELAY_SEC)


def parse_clock_in_timestamp(value):
    """
    Parse a remote clock-in timestamp into an aware datetime.

    Strings without an offset are read as system local time; UTC is used
    only when the value cannot be placed in the local zone at all.
    Returns None for empty or malformed input.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        return parsed
    try:
        return parsed.astimezone()
    except (OverflowError, OSError, ValueError):
        return parsed.replace(tzinfo=timezone.utc)
