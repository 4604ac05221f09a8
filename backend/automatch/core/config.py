# backend/automatch/core/config.py
"""
Central config & environment helpers.
- Loads env (.env) early
- Exposes the Gemini embedding key and DATABASE_URL resolution
- Holds DEFAULT_OPTIONS used by the matching run (batch sizes, thresholds, throttle, retry)
"""

from __future__ import annotations

import os
from typing import Dict, Any, Optional
from dotenv import load_dotenv

from .errors import ConfigurationError, InputValidationError

# Load .env once for the whole app
load_dotenv(override=False)

# --- API keys / store -------------------------------------------------------

def get_gemini_api_key() -> str:
    """
    Returns the Gemini API key used by the embedding provider.
    Raises ConfigurationError if missing (fatal for a matching run).
    """
    key = (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or os.getenv("GEMINI_APIKEY")
        or ""
    ).strip()

    if not key:
        raise ConfigurationError(
            "Missing Gemini key. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in your environment."
        )

    # Ensure downstream libs see the same key
    os.environ["GOOGLE_API_KEY"] = key
    os.environ["GEMINI_API_KEY"] = key
    # Avoid ADC confusion in server envs
    os.environ.pop("GOOGLE_APPLICATION_CREDENTIALS", None)

    return key


def get_database_url() -> str:
    """DATABASE_URL is required by the pipeline; there is no fail-open mode for writes."""
    url = (os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise ConfigurationError("Missing DATABASE_URL; the matching store is not configured.")
    return url


def db_echo() -> bool:
    return (os.getenv("DB_ECHO") or "false").lower() == "true"


def log_level() -> str:
    return (os.getenv("LOG_LEVEL") or "INFO").upper()


# --- Options (keep in sync with pipeline/orchestrator) -----------------------

DEFAULT_OPTIONS: Dict[str, Any] = {
    # embeddings
    "embedding_model": "models/text-embedding-004",
    "embedding_batch_size": 10,   # candidates per run; jobs get 2x
    "embed_workers": 4,

    # matching
    "similarity_threshold": 0.7,
    "jobs_per_run": 10,
    "candidates_per_job": 50,
    "eval_workers": 1,            # 1 = strictly sequential

    # auto-apply
    "submission_delay_seconds": 1.0,

    # run bookkeeping
    "max_errors_in_summary": 20,
    "retry_attempts": 3,
    "retry_base_delay_seconds": 5.0,
}

# Per-candidate preference defaults (used when a candidate has no row)
DEFAULT_PREFERENCE: Dict[str, Any] = {
    "auto_apply_enabled": True,
    "min_score_threshold": 70.0,
    "max_applications_per_day": 5,
}

_INT_OPTIONS = {
    "embedding_batch_size", "embed_workers", "jobs_per_run", "candidates_per_job",
    "eval_workers", "max_errors_in_summary", "retry_attempts",
}
_FLOAT_OPTIONS = {"similarity_threshold", "submission_delay_seconds", "retry_base_delay_seconds"}


def _check_option(key: str, value: Any) -> Any:
    if key in _INT_OPTIONS:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InputValidationError(f"Option '{key}' must be a non-negative integer, got {value!r}")
        if key in {"embed_workers", "eval_workers", "retry_attempts"} and value < 1:
            raise InputValidationError(f"Option '{key}' must be >= 1, got {value!r}")
    elif key in _FLOAT_OPTIONS:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise InputValidationError(f"Option '{key}' must be a non-negative number, got {value!r}")
        if key == "similarity_threshold" and value > 1:
            raise InputValidationError(f"Option 'similarity_threshold' must be within [0, 1], got {value!r}")
        value = float(value)
    return value


def merge_options(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Overlay user options on top of DEFAULT_OPTIONS (shallow). Unknown keys are rejected."""
    base = dict(DEFAULT_OPTIONS)
    if not user:
        return base
    for k, v in user.items():
        if v is None:
            continue
        if k not in DEFAULT_OPTIONS:
            raise InputValidationError(f"Unknown option '{k}'")
        base[k] = _check_option(k, v)
    return base


__all__ = [
    "get_gemini_api_key",
    "get_database_url",
    "db_echo",
    "log_level",
    "DEFAULT_OPTIONS",
    "DEFAULT_PREFERENCE",
    "merge_options",
]
