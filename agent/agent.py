"""
AutoClock — Attendance Scheduling Agent
=======================================
Clocks in at the configured time, clocks out once the minimum work
duration has elapsed, and reconciles with the server after startup or
system sleep. Only clock-in/out requests and attendance lookups are sent.

Usage:
    python agent.py                          # run the agent
    python agent.py set-tokens --refresh-token <token>
    python agent.py schedule --time 09:00 --enable
    python agent.py status | clock-in | clock-out [--force] | check
"""

import sys

from autoclock_core.runner import main

if __name__ == "__main__":
    sys.exit(main())
