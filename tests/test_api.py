from datetime import date

import pytest
import requests

from autoclock_core.api import AttendanceClient, AttendanceRecord, TokenPair
from autoclock_core.errors import RemoteError, ValidationError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def _respond(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._respond("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)


def make_client(*responses):
    session = FakeSession(*responses)
    client = AttendanceClient("https://api.example.test/", "https://auth.example.test",
                              session=session)
    return client, session


def test_missing_base_url_is_rejected():
    with pytest.raises(ValidationError) as exc:
        AttendanceClient("", session=FakeSession())
    assert exc.value.field == "apiBaseUrl"


def test_clock_in_posts_with_bearer_token():
    client, session = make_client(FakeResponse(200))

    assert client.clock_in("tok") is True

    method, url, kwargs = session.requests[0]
    assert method == "POST"
    assert url == "https://api.example.test/dtr/attendance/login"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"


def test_clock_out_uses_logout_endpoint():
    client, session = make_client(FakeResponse(201))

    assert client.clock_out("tok") is True
    assert session.requests[0][1] == "https://api.example.test/dtr/attendance/logout"


def test_unauthorized_response_is_flagged_token_invalid():
    client, _ = make_client(FakeResponse(401, text="Unauthorized"))

    with pytest.raises(RemoteError) as exc:
        client.clock_in("old")
    assert exc.value.status_code == 401
    assert exc.value.token_invalid


def test_server_error_is_not_token_invalid():
    client, _ = make_client(FakeResponse(500, text="oops"))

    with pytest.raises(RemoteError) as exc:
        client.clock_out("tok")
    assert exc.value.status_code == 500
    assert not exc.value.token_invalid


def test_network_error_becomes_remote_error():
    client, _ = make_client(requests.ConnectionError("connection refused"))

    with pytest.raises(RemoteError, match="network error"):
        client.clock_in("tok")


def test_today_attendance_prefers_matching_work_date():
    payload = {"data": {"items": [
        {"work_date": "2024-03-03", "attendance_status": "Completed"},
        {"work_date": "2024-03-04T00:00:00", "attendance_status": "Started",
         "date_time_in": "2024-03-04T09:02:00+08:00"},
    ]}}
    client, session = make_client(FakeResponse(200, payload))

    rec = client.get_today_attendance("tok", today=date(2024, 3, 4))

    assert rec.attendance_status == "Started"
    assert rec.is_in_progress
    method, url, kwargs = session.requests[0]
    assert method == "GET"
    assert url == "https://api.example.test/dtr/attendance"
    assert kwargs["params"] == {"date_from": "2024-03-04", "date_to": "2024-03-04"}


def test_today_attendance_empty_is_none():
    client, _ = make_client(FakeResponse(200, {"data": {"items": []}}))
    assert client.get_today_attendance("tok", today=date(2024, 3, 4)) is None


def test_today_attendance_malformed_json():
    client, _ = make_client(FakeResponse(200, None))
    with pytest.raises(RemoteError, match="malformed"):
        client.get_today_attendance("tok", today=date(2024, 3, 4))


def test_exchange_refresh_token():
    client, session = make_client(FakeResponse(200, {"access_token": "a1", "refresh_token": "r1"}))

    assert client.exchange_refresh_token("r0") == TokenPair("a1", "r1")

    _, url, kwargs = session.requests[0]
    assert url == "https://auth.example.test/auth/v1/auth/protocol/openid-connect/token"
    assert kwargs["json"]["grant_type"] == "refresh_token"
    assert kwargs["json"]["refresh_token"] == "r0"
    assert "headers" not in kwargs


def test_exchange_missing_tokens_is_error():
    client, _ = make_client(FakeResponse(200, {"access_token": "a1"}))
    with pytest.raises(RemoteError, match="missing tokens"):
        client.exchange_refresh_token("r0")


@pytest.mark.parametrize("item, rest, leave, completed", [
    ({"attendance_status": "Rest Day"}, True, False, False),
    ({"attendance_status": "Not started", "is_restday": True}, True, False, False),
    ({"attendance_status": "On leave"}, False, True, False),
    ({"attendance_status": "completed"}, False, False, True),
])
def test_attendance_record_classification(item, rest, leave, completed):
    rec = AttendanceRecord.from_api(dict(item, work_date="2024-03-04"))
    assert (rec.is_rest_day, rec.is_on_leave, rec.is_completed) == (rest, leave, completed)


def test_started_with_time_out_is_not_in_progress():
    rec = AttendanceRecord.from_api({
        "work_date": "2024-03-04", "attendance_status": "Started",
        "date_time_in": "2024-03-04T09:00:00Z", "date_time_out": "2024-03-04T18:00:00Z",
    })
    assert not rec.is_in_progress


def test_today_attendance_ignores_rows_for_other_days():
    payload = {"data": {"items": [{"work_date": "2024-03-03", "attendance_status": "Completed"}]}}
    client, _ = make_client(FakeResponse(200, payload))

    assert client.get_today_attendance("tok", today=date(2024, 3, 4)) is None
