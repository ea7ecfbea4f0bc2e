"""
Token refresh coordinator — the only place authentication retry happens.

Every remote call goes through TokenRefreshCoordinator.call():
  1. read the stored access token (none → AuthenticationError, no call made)
  2. call once
  3. on a token error only: exchange the refresh token, overwrite both keys
  4. call exactly once more with the new token; its outcome is final
Any other failure, or a failed refresh, is final immediately.
"""

import threading
import time

from .activity_log import notify
from .config import log
from .constants import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_ERROR_MARKERS
from .errors import AuthenticationError, RemoteError


def is_token_error(error) -> bool:
    """True when a failure is due to an expired/invalid access token."""
    if isinstance(error, RemoteError) and error.token_invalid:
        return True
    text = str(error).lower()
    if any(marker in text for marker in TOKEN_ERROR_MARKERS):
        return True
    return "token" in text and "expired" in text


class TokenRefreshCoordinator:

    def __init__(self, store, client, activity=None):
        self._store = store
        self._client = client
        self._activity = activity
        self._refresh_lock = threading.Lock()

    def has_credentials(self) -> bool:
        return bool(self._store.get(ACCESS_TOKEN_KEY))

    def access_token(self):
        token = self._store.get(ACCESS_TOKEN_KEY)
        if not token:
            raise AuthenticationError("No access token found")
        return token

    def refresh(self, stale_token=None):
        """
        Exchange the stored refresh token and overwrite both stored tokens.
        When ``stale_token`` is given and another caller already replaced it
        while we waited for the lock, the current token is returned as-is.
        """
        with self._refresh_lock:
            if stale_token is not None:
                current = self._store.get(ACCESS_TOKEN_KEY)
                if current and current != stale_token:
                    log.info("Access token already refreshed by a concurrent call")
                    return current

            refresh_token = self._store.get(REFRESH_TOKEN_KEY)
            if not refresh_token:
                raise AuthenticationError("No refresh token found")

            started = time.monotonic()
            try:
                pair = self._client.exchange_refresh_token(refresh_token)
            except RemoteError as e:
                duration_ms = int((time.monotonic() - started) * 1000)
                log.error("Token refresh failed: %s", e)
                notify(self._activity, "log_token_refresh", False, duration_ms, str(e))
                raise AuthenticationError(f"Token refresh failed: {e}") from e

            # Fixed keys, overwritten in place.
            self._store.put(REFRESH_TOKEN_KEY, pair.refresh_token)
            self._store.put(ACCESS_TOKEN_KEY, pair.access_token)

            duration_ms = int((time.monotonic() - started) * 1000)
            log.info("Tokens refreshed and saved (%dms)", duration_ms)
            notify(self._activity, "log_token_refresh", True, duration_ms)
            return pair.access_token

    def call(self, op, name):
        """Run ``op(access_token)`` under the single refresh/retry policy."""
        token = self.access_token()

        try:
            result = op(token)
        except RemoteError as e:
            if not is_token_error(e):
                log.warning("%s failed with non-token error: %s", name, e)
                raise
            log.info("%s failed with token error (%s) — refreshing and retrying once", name, e)
            new_token = self.refresh(stale_token=token)
            try:
                result = op(new_token)
            except RemoteError as retry_error:
                log.warning("%s retry failed: %s", name, retry_error)
                raise
            log.info("%s retry succeeded", name)
            return result

        log.info("%s succeeded with saved token", name)
        return result

    # ─── Named wrappers (timed + activity-logged) ────────────

    def clock_in(self, trigger="scheduled"):
        return self._timed(self._client.clock_in, "clock_in", "log_clock_in", trigger)

    def clock_out(self, trigger="scheduled"):
        return self._timed(self._client.clock_out, "clock_out", "log_clock_out", trigger)

    def get_today_attendance(self, today=None):
        """Attendance row for ``today`` (a date; None → system local date)."""
        started = time.monotonic()
        try:
            record = self.call(lambda token: self._client.get_today_attendance(token, today),
                               "attendance_check")
        except Exception as e:
            notify(self._activity, "log_attendance_check", False, _elapsed_ms(started), str(e))
            raise
        notify(self._activity, "log_attendance_check", True, _elapsed_ms(started))
        return record

    def _timed(self, op, name, log_method, trigger):
        started = time.monotonic()
        try:
            ok = self.call(op, name)
        except Exception as e:
            notify(self._activity, log_method, False, trigger, _elapsed_ms(started), str(e))
            raise
        error = None if ok else "API returned false"
        notify(self._activity, log_method, bool(ok), trigger, _elapsed_ms(started), error)
        return ok


def _elapsed_ms(started):
    return int((time.monotonic() - started) * 1000)
