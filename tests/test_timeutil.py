from datetime import datetime, timedelta, timezone

import pytest

from autoclock_core.state import WorkSchedule
from autoclock_core.timeutil import (
    clamp_clock_out_delay, next_clock_in_time, parse_clock_in_timestamp,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_next_clock_in_later_today():
    schedule = WorkSchedule(clock_in_time="09:00", timezone="UTC")
    assert next_clock_in_time(schedule, utc(2024, 3, 4, 8, 59)) == utc(2024, 3, 4, 9, 0)


@pytest.mark.parametrize("now", [utc(2024, 3, 4, 9, 0), utc(2024, 3, 4, 23, 59)])
def test_next_clock_in_rolls_to_tomorrow(now):
    schedule = WorkSchedule(clock_in_time="09:00", timezone="UTC")
    assert next_clock_in_time(schedule, now) == utc(2024, 3, 5, 9, 0)


def test_next_clock_in_crosses_month_end():
    schedule = WorkSchedule(clock_in_time="7:05", timezone="UTC")
    assert next_clock_in_time(schedule, utc(2024, 2, 29, 12, 0)) == utc(2024, 3, 1, 7, 5)


def test_next_clock_in_keeps_wall_clock_across_dst():
    schedule = WorkSchedule(clock_in_time="09:00", timezone="America/New_York")
    # 2024-03-10 is the spring-forward day in New York.
    result = next_clock_in_time(schedule, utc(2024, 3, 9, 20, 0))
    assert result == utc(2024, 3, 10, 13, 0)
    assert (result.hour, result.minute) == (9, 0)


def test_next_clock_in_is_always_in_the_future():
    schedule = WorkSchedule(clock_in_time="00:00", timezone="UTC")
    now = utc(2024, 3, 4, 0, 0)
    assert next_clock_in_time(schedule, now) - now == timedelta(days=1)


@pytest.mark.parametrize("delay, expected", [
    (-3600, 1),
    (0, 1),
    (0.2, 1),
    (90, 90),
    (24 * 3600, 24 * 3600),
    (24 * 3600 + 1, 12 * 3600),
])
def test_clamp_clock_out_delay(delay, expected):
    assert clamp_clock_out_delay(delay) == expected


def test_parse_timestamp_with_offset():
    parsed = parse_clock_in_timestamp("2024-03-04T09:00:00+08:00")
    assert parsed == utc(2024, 3, 4, 1, 0)


def test_parse_timestamp_with_z_suffix():
    assert parse_clock_in_timestamp("2024-03-04T09:00:00Z") == utc(2024, 3, 4, 9, 0)


def test_parse_naive_timestamp_is_local_time():
    parsed = parse_clock_in_timestamp("2024-03-04T09:00:00")
    assert parsed.tzinfo is not None
    assert parsed == datetime(2024, 3, 4, 9, 0).astimezone()


@pytest.mark.parametrize("value", [None, "", "   ", "yesterday", 12345])
def test_parse_rejects_bad_input(value):
    assert parse_clock_in_timestamp(value) is None
