# backend/automatch/core/utils.py
"""
Generic helpers used across the pipeline.

Includes:
- token normalization for skills/categories and order-preserving dedupe
- content hashing for embedding source text
- UTC time math (naive UTC datetimes, as stored)
- string clipping for error summaries
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

# -------- Tokens -------------------------------------------------------------

def norm_token(s: Any) -> str:
    """Lowercase + collapse whitespace; used for skill/category comparison."""
    return " ".join(str(s or "").lower().split())


def norm_set(xs: Optional[Iterable[Any]]) -> set[str]:
    return {t for t in (norm_token(x) for x in (xs or [])) if t}


def uniq_preserve(xs: Optional[Iterable[Any]]) -> List[Any]:
    """Drop duplicates (case-insensitive for strings) while keeping first-seen order."""
    seen: set[str] = set()
    out: List[Any] = []
    for x in xs or []:
        k = json.dumps(x, sort_keys=True) if isinstance(x, (dict, list)) else norm_token(x)
        if k not in seen:
            seen.add(k)
            out.append(x)
    return out

# -------- Hashing ------------------------------------------------------------

def content_hash(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()

# -------- Time ---------------------------------------------------------------

def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_day_start(at: Optional[datetime] = None) -> datetime:
    """Midnight (UTC) of the calendar day containing `at` (naive UTC)."""
    at = at or now_utc()
    if at.tzinfo is not None:
        at = at.astimezone(timezone.utc).replace(tzinfo=None)
    return at.replace(hour=0, minute=0, second=0, microsecond=0)


def utc_day_end(at: Optional[datetime] = None) -> datetime:
    return utc_day_start(at) + timedelta(days=1)

# -------- Strings ------------------------------------------------------------

def clip(s: Optional[str], n: int = 300) -> str:
    if not s:
        return ""
    s = str(s)
    return s if len(s) <= n else s[: n - 3] + "..."


__all__ = [
    "norm_token", "norm_set", "uniq_preserve",
    "content_hash",
    "now_utc", "utc_day_start", "utc_day_end",
    "clip",
]
