"""Runtime settings, read once from the environment at import time."""

import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_cors_origins() -> list[str]:
    """Get CORS origins from environment variable or use default."""
    cors_origins_str = os.environ.get("CODESAGE_CORS_ORIGINS", "http://localhost:3000")
    origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]
    return origins if origins else ["http://localhost:3000"]


HOST = os.environ.get("CODESAGE_HOST", "localhost")
PORT = int(os.environ.get("CODESAGE_PORT", "8000"))
CORS_ORIGINS = _get_cors_origins()

# Demo mode skips the hosted model entirely and serves scripted replies.
DEMO_MODE = _env_flag("CODESAGE_DEMO_MODE")
MODEL = os.environ.get("CODESAGE_MODEL") or None
LLM_TIMEOUT = float(os.environ.get("CODESAGE_LLM_TIMEOUT", "60"))

SESSION_TTL_SECONDS = int(os.environ.get("CODESAGE_SESSION_TTL", str(5 * 60)))
MAX_SESSIONS = int(os.environ.get("CODESAGE_MAX_SESSIONS", "50"))
