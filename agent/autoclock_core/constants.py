"""
Constants: version, storage keys, API paths, scheduling thresholds.
"""

AGENT_VERSION = "1.0.0"

# ─── Credential storage (fixed keys, overwritten on refresh) ─────
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"

# ─── Remote attendance API ───────────────────────────────────────
DEFAULT_CLIENT_ID = "EMAPTA-MYEMAPTAWEB"
CLOCK_IN_PATH = "/dtr/attendance/login"
CLOCK_OUT_PATH = "/dtr/attendance/logout"
ATTENDANCE_PATH = "/dtr/attendance"
TOKEN_PATH = "/auth/v1/auth/protocol/openid-connect/token"

API_TIMEOUT_CLOCK = 30         # Seconds per clock-in/out round trip
API_TIMEOUT_ATTENDANCE = 20
API_TIMEOUT_TOKEN = 20

# Lowercase markers that identify an expired/invalid access token in error text.
TOKEN_ERROR_MARKERS = (
    "401",
    "unauthorized",
    "invalid_token",
    "token_expired",
)

# ─── Scheduling ──────────────────────────────────────────────────
DEFAULT_MIN_WORK_MINUTES = 540      # 9 hours
DEFAULT_CLOCK_IN_TIME = "09:00"
MIN_TIMER_DELAY_SEC = 1             # "already due" fires within one tick
MAX_REASONABLE_DELAY_SEC = 24 * 3600
CAPPED_DELAY_SEC = 12 * 3600        # Wait used when a delay is beyond reason
MAX_OPERATION_HISTORY = 50          # Terminal operations kept for display

# ─── Liveness / wake detection ───────────────────────────────────
LIVENESS_PROBE_SEC = 300            # Probe every 5 minutes
WAKE_GAP_THRESHOLD_SEC = 600        # >10 min between probes → system slept

# ─── Auto-restart ────────────────────────────────────────────────
CRASH_WINDOW_SEC = 120
MAX_RAPID_CRASHES = 10
