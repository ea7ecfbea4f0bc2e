"""
Remote attendance API — clock in, clock out, today's attendance, token exchange.

All calls are blocking, single attempt (no retry loop here). Failures raise
RemoteError; a 401 response is flagged ``token_invalid`` so the token
manager can refresh without sniffing message text.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

import requests

from .config import log
from .constants import (
    CLOCK_IN_PATH, CLOCK_OUT_PATH, ATTENDANCE_PATH, TOKEN_PATH, DEFAULT_CLIENT_ID,
    API_TIMEOUT_CLOCK, API_TIMEOUT_ATTENDANCE, API_TIMEOUT_TOKEN,
)
from .errors import RemoteError, ValidationError
from .http_client import create_session


class AttendanceStatus(str, Enum):
    COMPLETED = "Completed"
    REST_DAY = "Rest Day"
    ON_LEAVE = "On leave"
    STARTED = "Started"
    NOT_STARTED = "Not started"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AttendanceRecord:
    """One day of the remote attendance record."""

    work_date: str
    attendance_status: str
    date_time_in: Optional[str] = None
    date_time_out: Optional[str] = None
    is_restday: Optional[bool] = None
    leave_details: Optional[str] = None
    is_complete: bool = False

    @classmethod
    def from_api(cls, item):
        return cls(
            work_date=str(item.get("work_date") or ""),
            attendance_status=str(item.get("attendance_status") or ""),
            date_time_in=item.get("date_time_in"),
            date_time_out=item.get("date_time_out"),
            is_restday=item.get("is_restday"),
            leave_details=item.get("leave_details"),
            is_complete=bool(item.get("is_complete", False)),
        )

    def _status_is(self, status):
        return self.attendance_status.strip().lower() == status.value.lower()

    @property
    def is_rest_day(self) -> bool:
        return bool(self.is_restday) or self._status_is(AttendanceStatus.REST_DAY)

    @property
    def is_on_leave(self) -> bool:
        return self._status_is(AttendanceStatus.ON_LEAVE)

    @property
    def is_completed(self) -> bool:
        return self._status_is(AttendanceStatus.COMPLETED)

    @property
    def is_in_progress(self) -> bool:
        """Clocked in (by any channel) and not yet clocked out."""
        return (self._status_is(AttendanceStatus.STARTED)
                and bool(self.date_time_in)
                and not self.date_time_out)


def _raise_for_response(resp, operation):
    if 200 <= resp.status_code < 300:
        return
    body = (resp.text or "")[:200]
    raise RemoteError(
        f"{operation} failed: HTTP {resp.status_code} {body}".strip(),
        status_code=resp.status_code,
        token_invalid=resp.status_code == 401,
    )


class AttendanceClient:
    """Thin wrapper over the remote endpoints. Holds no credentials."""

    def __init__(self, api_base_url, auth_base_url=None, client_id=DEFAULT_CLIENT_ID, session=None):
        if not api_base_url:
            raise ValidationError("apiBaseUrl", "API base URL is not configured")
        self._api = api_base_url.rstrip("/")
        self._auth = (auth_base_url or api_base_url).rstrip("/")
        self._client_id = client_id or DEFAULT_CLIENT_ID
        if session is None:
            session = create_session()
        self._http = session

    @staticmethod
    def _auth_headers(token):
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _post_clock(self, path, token, operation):
        url = f"{self._api}{path}"
        try:
            resp = self._http.post(url, json={}, headers=self._auth_headers(token),
                                   timeout=API_TIMEOUT_CLOCK)
        except requests.RequestException as e:
            log.warning("%s network error: %s", operation, e)
            raise RemoteError(f"{operation} network error: {e}") from e
        _raise_for_response(resp, operation)
        log.info("%s OK (HTTP %d)", operation, resp.status_code)
        return True

    def clock_in(self, token):
        return self._post_clock(CLOCK_IN_PATH, token, "Clock-in")

    def clock_out(self, token):
        return self._post_clock(CLOCK_OUT_PATH, token, "Clock-out")

    def get_today_attendance(self, token, today=None):
        """AttendanceRecord whose work_date is ``today``, or None when there is none."""
        today = today or date.today()
        day = today.isoformat()
        url = f"{self._api}{ATTENDANCE_PATH}"
        try:
            resp = self._http.get(
                url,
                params={"date_from": day, "date_to": day},
                headers=self._auth_headers(token),
                timeout=API_TIMEOUT_ATTENDANCE,
            )
        except requests.RequestException as e:
            raise RemoteError(f"Attendance check network error: {e}") from e
        _raise_for_response(resp, "Attendance check")

        try:
            items = (resp.json().get("data") or {}).get("items") or []
        except (ValueError, AttributeError) as e:
            raise RemoteError(f"Attendance check returned malformed JSON: {e}") from e

        records = [AttendanceRecord.from_api(i) for i in items if isinstance(i, dict)]
        for record in records:
            if record.work_date.startswith(day):
                return record
        if records:
            log.warning("Attendance rows returned, none for %s", day)
        return None

    def exchange_refresh_token(self, refresh_token):
        url = f"{self._auth}{TOKEN_PATH}"
        payload = {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "refresh_token": refresh_token,
            "scope": "openid",
        }
        try:
            resp = self._http.post(url, json=payload, timeout=API_TIMEOUT_TOKEN)
        except requests.RequestException as e:
            raise RemoteError(f"Token exchange network error: {e}") from e
        _raise_for_response(resp, "Token exchange")

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteError(f"Token exchange returned malformed JSON: {e}") from e
        access, refresh = data.get("access_token"), data.get("refresh_token")
        if not access or not refresh:
            raise RemoteError("Token exchange response is missing tokens")
        return TokenPair(access_token=access, refresh_token=refresh)
