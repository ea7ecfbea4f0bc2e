"""
Liveness monitor — wall-clock probe that detects system sleep.

A daemon thread wakes every ``interval`` seconds. If far more wall-clock
time passed than that (the machine was suspended), it reports the gap so
the scheduler can reconcile with the server.
"""

import threading
import time

from .config import log
from .constants import LIVENESS_PROBE_SEC, WAKE_GAP_THRESHOLD_SEC


class LivenessMonitor:

    def __init__(self, on_gap, interval=LIVENESS_PROBE_SEC, gap_threshold=WAKE_GAP_THRESHOLD_SEC,
                 clock=time.time):
        self._on_gap = on_gap
        self._interval = interval
        self._threshold = gap_threshold
        self._clock = clock
        self._last_probe = None
        self._stop = threading.Event()
        self._thread = None

    def check(self, now_ts=None):
        """
        One probe step. Returns the detected gap in seconds, or None.
        Errors from the gap handler are logged, never raised.
        """
        now_ts = self._clock() if now_ts is None else now_ts
        last, self._last_probe = self._last_probe, now_ts
        if last is None:
            return None

        gap = now_ts - last
        if gap <= self._threshold:
            return None

        try:
            self._on_gap(gap)
        except Exception as e:
            log.error("Wake-gap handling failed: %s", e, exc_info=True)
        return gap

    def _run(self):
        log.info("Liveness monitor started (probe=%ds, gap>%ds)", self._interval, self._threshold)
        self.check()
        while not self._stop.wait(self._interval):
            self.check()
        log.info("Liveness monitor stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._last_probe = None
        self._thread = threading.Thread(target=self._run, name="liveness-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
