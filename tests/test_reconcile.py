from datetime import date, datetime, timezone

import pytest

from autoclock_core.api import AttendanceRecord
from autoclock_core.constants import ACCESS_TOKEN_KEY
from autoclock_core.errors import RemoteError
from autoclock_core.state import OperationKind, WorkSchedule


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def record(status, time_in=None, time_out=None, **extra):
    return AttendanceRecord(work_date="2024-03-04", attendance_status=status,
                            date_time_in=time_in, date_time_out=time_out, **extra)


@pytest.fixture
def started(scheduler, schedule, clock):
    clock.set(utc(2024, 3, 4, 10, 0))
    scheduler.start(schedule)
    return scheduler


def test_no_credentials_means_no_action(started, store, client):
    store.delete(ACCESS_TOKEN_KEY)

    assert started.run_reconciliation_check() is False
    assert client.calls == []


def test_already_clocked_in_means_no_action(started, client):
    started.manual_clock_in()
    client.calls.clear()

    assert started.run_reconciliation_check() is False
    assert client.calls == []


def test_already_clocked_in_today_means_no_action(started, client, clock):
    started.manual_clock_in()
    clock.advance(hours=1)
    started.manual_clock_out(bypass_minimum=True)
    client.calls.clear()

    assert started.run_reconciliation_check() is False
    assert client.calls == []


def test_clock_in_yesterday_does_not_block(started, client, clock):
    started.manual_clock_in()
    started.manual_clock_out(bypass_minimum=True)
    clock.advance(days=1)
    client.attendance_results = [record("Not started")]

    assert started.run_reconciliation_check() is True
    assert started.get_state().current_session.clocked_in


@pytest.mark.parametrize("today", [
    record("Rest Day"),
    record("Not started", is_restday=True),
    record("On leave", leave_details="Vacation leave"),
])
def test_rest_day_and_leave_mean_no_action(started, client, today):
    client.attendance_results = [today]

    assert started.run_reconciliation_check() is False
    assert client.tokens_used("clock_in") == []


def test_completed_day_is_mirrored_without_clock_in(started, client):
    client.attendance_results = [
        record("Completed", "2024-03-04T01:00:00+00:00", "2024-03-04T09:00:00+00:00", is_complete=True),
    ]

    assert started.run_reconciliation_check() is False

    session = started.get_state().current_session
    assert not session.clocked_in
    assert session.last_clock_in_time == utc(2024, 3, 4, 1, 0)
    assert session.last_clock_out_time == utc(2024, 3, 4, 9, 0)
    assert client.tokens_used("clock_in") == []


def test_external_session_is_adopted_with_clock_out(started, client):
    client.attendance_results = [record("Started", "2024-03-04T09:30:00+00:00")]

    assert started.run_reconciliation_check() is True

    state = started.get_state()
    assert state.current_session.clocked_in
    assert state.current_session.clock_in_time == utc(2024, 3, 4, 9, 30)
    (op,) = state.pending_of(OperationKind.CLOCK_OUT)
    assert op.scheduled_time == utc(2024, 3, 4, 17, 30)
    assert client.tokens_used("clock_in") == []


def test_overdue_external_session_is_clocked_out_now(started, client, clock):
    clock.set(utc(2024, 3, 4, 19, 0))
    client.attendance_results = [record("Started", "2024-03-04T09:00:00+00:00")]

    assert started.run_reconciliation_check() is True

    assert len(client.tokens_used("clock_out")) == 1
    session = started.get_state().current_session
    assert not session.clocked_in
    assert session.last_clock_out_time == utc(2024, 3, 4, 19, 0)


def test_nothing_today_triggers_clock_in(started, client, clock):
    client.attendance_results = [None]

    assert started.run_reconciliation_check() is True

    session = started.get_state().current_session
    assert session.clocked_in
    assert session.clock_in_time == clock()
    assert len(started.get_state().pending_of(OperationKind.CLOCK_OUT)) == 1


def test_attendance_failure_still_attempts_clock_in(started, client):
    client.attendance_results = [RemoteError("Attendance check failed: HTTP 503", status_code=503)]

    assert started.run_reconciliation_check() is True
    assert len(client.tokens_used("clock_in")) == 1


def test_unparseable_clock_in_falls_through_to_clock_in(started, client):
    client.attendance_results = [record("Started", "not a timestamp")]

    assert started.run_reconciliation_check() is True
    assert len(client.tokens_used("clock_in")) == 1


def test_clock_in_failure_propagates(started, client, events):
    client.attendance_results = [None]
    client.clock_in_results = [RemoteError("Clock-in failed: HTTP 500", status_code=500)]

    with pytest.raises(RemoteError):
        started.run_reconciliation_check()
    assert ("auto_startup_completed", {"success": False}) in events


def test_completed_event_reports_action(started, client, events):
    client.attendance_results = [None]

    started.run_reconciliation_check()

    assert ("auto_startup_completed", {"success": True}) in events


def test_wake_gap_logs_and_reconciles(started, client, activity):
    client.attendance_results = [record("Rest Day")]

    assert started.on_wake_gap(3600) is False

    assert "log_wake_detected" in activity.names()
    assert client.tokens_used("attendance") == ["access-0"]


def test_reconcile_without_schedule_uses_default_duration(scheduler, client, clock):
    clock.set(utc(2024, 3, 4, 10, 0))
    client.attendance_results = [record("Started", "2024-03-04T02:00:00+00:00")]

    assert scheduler.run_reconciliation_check() is True

    session = scheduler.get_state().current_session
    assert session.expected_clock_out_time == utc(2024, 3, 4, 11, 0)
    # Scheduler not running: adopted but nothing armed.
    assert scheduler.get_state().pending_operations == []


def test_attendance_is_queried_for_schedule_date(scheduler, client, clock):
    # 12:00 UTC on the 4th is already the 5th in Kiritimati (UTC+14).
    clock.set(utc(2024, 3, 4, 12, 0))
    scheduler.start(WorkSchedule(auto_enabled=False, timezone="Pacific/Kiritimati"))
    client.attendance_results = [None]

    scheduler.run_reconciliation_check()

    assert client.attendance_days == [date(2024, 3, 5)]


def test_adopted_session_is_not_clocked_in_again(started, client, clock, timers):
    clock.set(utc(2024, 3, 4, 8, 0))
    started.start(WorkSchedule(auto_enabled=True, clock_in_time="09:00", timezone="UTC",
                               min_work_duration_minutes=480))
    client.attendance_results = [record("Started", "2024-03-04T07:45:00+00:00")]

    assert started.run_reconciliation_check() is True

    assert [t.args[1] for t in timers.live()] == [OperationKind.CLOCK_OUT]
    assert timers.last.interval == 7 * 3600 + 45 * 60
