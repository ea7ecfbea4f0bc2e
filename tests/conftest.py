from datetime import datetime, timedelta, timezone

import pytest

from autoclock_core.api import TokenPair
from autoclock_core.constants import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY
from autoclock_core.scheduler import BackendScheduler
from autoclock_core.state import WorkSchedule
from autoclock_core.token_manager import TokenRefreshCoordinator


class FakeClock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, moment):
        self.current = moment


class FakeTimer:
    def __init__(self, interval, function, args=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        return self.function(*self.args)


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    @property
    def last(self):
        return self.timers[-1]


class InMemoryCredentialStore:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.writes = []

    def get(self, key):
        return self.values.get(key)

    def put(self, key, value):
        self.writes.append((key, value))
        self.values[key] = value
        return True

    def delete(self, key):
        self.values.pop(key, None)
        return True

    def list_keys(self):
        return sorted(self.values)


class FakeAttendanceClient:
    """
    Scripted remote API. Each ``*_results`` list is consumed one entry per
    call; an exception instance is raised, anything else returned. When a
    list runs dry the method returns its default.
    """

    def __init__(self):
        self.clock_in_results = []
        self.clock_out_results = []
        self.attendance_results = []
        self.exchange_results = []
        self.calls = []
        self.attendance_days = []
        self.exchange_count = 0

    @staticmethod
    def _next(results, default):
        if not results:
            return default
        value = results.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def clock_in(self, token):
        self.calls.append(("clock_in", token))
        return self._next(self.clock_in_results, True)

    def clock_out(self, token):
        self.calls.append(("clock_out", token))
        return self._next(self.clock_out_results, True)

    def get_today_attendance(self, token, today=None):
        self.calls.append(("attendance", token))
        self.attendance_days.append(today)
        return self._next(self.attendance_results, None)

    def exchange_refresh_token(self, refresh_token):
        self.exchange_count += 1
        self.calls.append(("exchange", refresh_token))
        n = self.exchange_count
        return self._next(self.exchange_results, TokenPair(f"access-{n}", f"refresh-{n}"))

    def tokens_used(self, name):
        return [token for call, token in self.calls if call == name]


class RecordingActivity:
    def __init__(self):
        self.entries = []

    def __getattr__(self, name):
        if not name.startswith("log_"):
            raise AttributeError(name)

        def record(*args, **kwargs):
            self.entries.append((name, args, kwargs))
        return record

    def names(self):
        return [name for name, _, _ in self.entries]


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(utc(2024, 3, 4, 8, 0))


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def store():
    return InMemoryCredentialStore({ACCESS_TOKEN_KEY: "access-0", REFRESH_TOKEN_KEY: "refresh-0"})


@pytest.fixture
def client():
    return FakeAttendanceClient()


@pytest.fixture
def activity():
    return RecordingActivity()


@pytest.fixture
def tokens(store, client, activity):
    return TokenRefreshCoordinator(store, client, activity)


@pytest.fixture
def scheduler(tokens, activity, clock, timers):
    return BackendScheduler(tokens, activity, now=clock, timer_factory=timers)


@pytest.fixture
def schedule():
    return WorkSchedule(auto_enabled=True, clock_in_time="09:00", timezone="UTC",
                        min_work_duration_minutes=480)


@pytest.fixture
def events(scheduler):
    seen = []
    scheduler.add_listener(lambda event, data: seen.append((event, data)))
    return seen
