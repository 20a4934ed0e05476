"""WebSocket protocol constants: message types and error codes.

Pure data module -- no imports, no logic. Safe to import from any backend
module without risk of circular dependencies.
"""

# ── Client -> Server message types ────────────────────────────────────

MSG_START_SESSION = "start_session"
MSG_MESSAGE = "message"
MSG_RUN_CODE = "run_code"
MSG_SUBMIT = "submit"
MSG_REQUEST_HINT = "request_hint"
MSG_REQUEST_GUIDANCE = "request_guidance"
MSG_ANALYZE_COMPLEXITY = "analyze_complexity"
MSG_NEXT_PROBLEM = "next_problem"
MSG_COMPLETE_INTERVIEW = "complete_interview"
MSG_RESUME_SESSION = "resume_session"
MSG_END_SESSION = "end_session"

# ── Server -> Client message types ────────────────────────────────────

MSG_SESSION_STARTED = "session_started"
MSG_SESSION_RESUMED = "session_resumed"
MSG_ASSISTANT_MESSAGE = "assistant_message"
MSG_METRICS = "metrics"
MSG_PHASE_CHANGED = "phase_changed"
MSG_PROBLEM_CHANGED = "problem_changed"
MSG_INTERVIEW_COMPLETED = "interview_completed"
MSG_ERROR = "error"

# ── Error codes (machine-readable, included in MSG_ERROR messages) ────

ERR_NO_ACTIVE_SESSION = "NO_ACTIVE_SESSION"
ERR_PROBLEM_NOT_FOUND = "PROBLEM_NOT_FOUND"
ERR_SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
ERR_INVALID_REQUEST = "INVALID_REQUEST"
