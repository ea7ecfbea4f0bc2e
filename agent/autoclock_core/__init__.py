"""
autoclock_core — Attendance Scheduling & Reconciliation Agent v1.0
==================================================================
Architecture: timer threads + liveness probe. Main thread only waits.

  constants.py     → Version, API paths, timeouts, delay limits
  errors.py        → AppError hierarchy
  config.py        → Paths, logging, config load/save, env overrides
  http_client.py   → HTTP session with retry/pooling + SSL bundle
  state.py         → WorkSchedule, SessionState, ScheduledOperation, SchedulerState
  timeutil.py      → Next clock-in, clock-out delay clamp, timestamp parsing
  storage.py       → FileCredentialStore (one file per key)
  activity_log.py  → ActivityLogger (monthly JSONL audit trail)
  api.py           → AttendanceClient (clock in/out, attendance, token exchange)
  token_manager.py → TokenRefreshCoordinator (call → refresh once → retry once)
  scheduler.py     → BackendScheduler (timers, session, operation history)
  reconcile.py     → ReconciliationCheck (startup / post-wake repair)
  monitor.py       → LivenessMonitor (sleep/wake gap detection)
  app.py           → AgentApp (wiring, blocking run loop)
  runner.py        → main() CLI + auto-restart wrapper
"""
