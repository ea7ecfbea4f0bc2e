"""
Entry point, command line, and auto-restart wrapper.
"""

import argparse
import dataclasses
import json
import sys
import time

from .constants import AGENT_VERSION, CRASH_WINDOW_SEC, MAX_RAPID_CRASHES
from .config import log, safe_print, setup_logging, load_config, save_config
from .errors import AppError, ValidationError
from .state import WorkSchedule
from .storage import save_initial_tokens
from .timeutil import parse_clock_in_timestamp
from .app import AgentApp


def _build_parser():
    parser = argparse.ArgumentParser(prog="autoclock", description="Automatic attendance clock-in/out agent")
    parser.add_argument("--version", action="version", version=f"%(prog)s {AGENT_VERSION}")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="run the agent (default)")

    tokens = sub.add_parser("set-tokens", help="store credentials")
    tokens.add_argument("--refresh-token", required=True)
    tokens.add_argument("--access-token", help="skip the initial token exchange")

    sched = sub.add_parser("schedule", help="update the work schedule")
    sched.add_argument("--time", dest="clock_in_time", help="clock-in time, HH:MM")
    sched.add_argument("--timezone")
    sched.add_argument("--min-minutes", type=int)
    toggle = sched.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true")
    toggle.add_argument("--disable", action="store_true")

    sub.add_parser("status", help="show today's remote attendance")
    sub.add_parser("clock-in", help="clock in now")
    out = sub.add_parser("clock-out", help="clock out now")
    out.add_argument("--force", action="store_true", help="ignore the minimum work duration")
    sub.add_parser("check", help="run the reconciliation check once")
    return parser


def _one_shot_app(config):
    """App for a single command: schedule loaded, nothing auto-armed."""
    app = AgentApp(config)
    schedule = app.load_schedule()
    app.scheduler.start(dataclasses.replace(schedule or WorkSchedule(), auto_enabled=False))
    return app


def _today(app):
    return app.scheduler.local_date(app.scheduler.now())


def cmd_set_tokens(config, args):
    app = AgentApp(config)
    try:
        access = args.access_token
        refresh = args.refresh_token
        if not access:
            pair = app.client.exchange_refresh_token(refresh)
            access, refresh = pair.access_token, pair.refresh_token
        save_initial_tokens(app.store, refresh, access)
    finally:
        app.shutdown()
    safe_print("Tokens saved.")
    return 0


def cmd_schedule(config, args):
    current = config.get("schedule") or {}
    schedule = WorkSchedule.from_dict(current) if current else WorkSchedule()
    changes = {}
    if args.clock_in_time:
        changes["clock_in_time"] = args.clock_in_time
    if args.timezone is not None:
        changes["timezone"] = args.timezone
    if args.min_minutes is not None:
        changes["min_work_duration_minutes"] = args.min_minutes
    if args.enable:
        changes["auto_enabled"] = True
    if args.disable:
        changes["auto_enabled"] = False
    schedule = dataclasses.replace(schedule, **changes)

    config = dict(config)
    config["schedule"] = schedule.as_dict()
    save_config(config)
    safe_print(json.dumps(schedule.as_dict(), indent=2))
    return 0


def cmd_status(config, args):
    app = _one_shot_app(config)
    try:
        record = app.tokens.get_today_attendance(_today(app))
    finally:
        app.shutdown()
    if record is None:
        safe_print("No attendance record for today.")
    else:
        safe_print(json.dumps(dataclasses.asdict(record), indent=2))
    return 0


def cmd_clock_in(config, args):
    app = _one_shot_app(config)
    try:
        ok = app.scheduler.manual_clock_in()
    finally:
        app.shutdown()
    safe_print("Clocked in." if ok else "Clock-in failed.")
    return 0 if ok else 1


def cmd_clock_out(config, args):
    app = _one_shot_app(config)
    try:
        # A fresh process knows nothing about the session; take it from the server.
        record = app.tokens.get_today_attendance(_today(app))
        if record is not None and record.is_in_progress:
            started = parse_clock_in_timestamp(record.date_time_in)
            if started is not None:
                app.scheduler.adopt_external_clock_in(started)
        ok = app.scheduler.manual_clock_out(bypass_minimum=args.force)
    finally:
        app.shutdown()
    safe_print("Clocked out." if ok else "Clock-out failed.")
    return 0 if ok else 1


def cmd_check(config, args):
    app = _one_shot_app(config)
    try:
        acted = app.scheduler.run_reconciliation_check()
    finally:
        app.shutdown()
    safe_print("Action taken." if acted else "No action needed.")
    return 0


def cmd_run(config, args):
    if not config.get("apiBaseUrl"):
        raise ValidationError("apiBaseUrl", "not configured; set it in config.json or AUTOCLOCK_API_URL")
    run_with_auto_restart(config)
    return 0


COMMANDS = {
    "run": cmd_run,
    "set-tokens": cmd_set_tokens,
    "schedule": cmd_schedule,
    "status": cmd_status,
    "clock-in": cmd_clock_in,
    "clock-out": cmd_clock_out,
    "check": cmd_check,
}


def main(argv=None):
    """Primary entry point. Returns a process exit code."""
    args = _build_parser().parse_args(argv)
    setup_logging()

    config = load_config() or {}
    command = args.command or "run"
    try:
        return COMMANDS[command](config, args)
    except AppError as e:
        log.error("%s failed: %s", command, e)
        safe_print(f"Error: {e}")
        return 1


def run_with_auto_restart(config):
    """
    Run the agent, restarting on crash. Never gives up.
    Crash counter resets if the agent ran for 2+ minutes (not a boot-loop).
    """
    crash_count = 0

    while True:
        start_time = time.time()
        try:
            AgentApp(config).run()
            break
        except KeyboardInterrupt:
            safe_print("\nAgent stopped by user.")
            break
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Agent crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > CRASH_WINDOW_SEC:
                crash_count = 0
            crash_count += 1

            if crash_count >= MAX_RAPID_CRASHES:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)


def cli():
    sys.exit(main())
