# backend/automatch/pipeline/auto_apply.py
"""
Auto-apply decision and rate limiting.

Checks run in a fixed order and the first failing one names the skip reason:
    1) auto-apply enabled
    2) no existing application for the pair
    3) score >= candidate threshold
    4) applications today < daily cap

"Today" is the current UTC calendar day, always recounted from stored
ApplicationRecords so overlapping runs and restarts see the same number.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import DEFAULT_PREFERENCE
from ..core.errors import InputValidationError
from ..db import crud

logger = logging.getLogger(__name__)

REASON_DISABLED = "Auto-apply disabled"
REASON_ALREADY_APPLIED = "Already applied"
REASON_SUBMITTED = "Application submitted"


@dataclass(frozen=True)
class AutoApplyPolicy:
    auto_apply_enabled: bool = True
    min_score_threshold: float = 70.0
    max_applications_per_day: int = 5

    def __post_init__(self) -> None:
        if not isinstance(self.auto_apply_enabled, bool):
            raise InputValidationError(f"auto_apply_enabled must be a boolean, got {self.auto_apply_enabled!r}")
        t = self.min_score_threshold
        if isinstance(t, bool) or not isinstance(t, (int, float)) or not math.isfinite(t) or not 0 <= t <= 100:
            raise InputValidationError(f"min_score_threshold must be a number within [0, 100], got {t!r}")
        m = self.max_applications_per_day
        if isinstance(m, bool) or not isinstance(m, int) or m < 0:
            raise InputValidationError(f"max_applications_per_day must be an integer >= 0, got {m!r}")
        object.__setattr__(self, "min_score_threshold", float(t))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "AutoApplyPolicy":
        """Defaults filled in for missing keys; accepts ORM rows too."""
        if data is None:
            return cls(**DEFAULT_PREFERENCE)
        get = data.get if isinstance(data, Mapping) else (lambda k, d=None: getattr(data, k, d))
        values = {k: get(k, DEFAULT_PREFERENCE[k]) for k in DEFAULT_PREFERENCE}
        return cls(**{k: (DEFAULT_PREFERENCE[k] if v is None else v) for k, v in values.items()})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Decision:
    submit: bool
    reason: str


def _fmt(x: float) -> str:
    return f"{x:g}"


def check_policy(
    match_score: float,
    policy: AutoApplyPolicy,
    applications_today: int,
    already_applied: bool,
) -> Decision:
    """Pure decision over pre-fetched facts."""
    if not policy.auto_apply_enabled:
        return Decision(False, REASON_DISABLED)
    if already_applied:
        return Decision(False, REASON_ALREADY_APPLIED)
    if match_score < policy.min_score_threshold:
        return Decision(False, f"Score below threshold ({_fmt(match_score)} < {_fmt(policy.min_score_threshold)})")
    if applications_today >= policy.max_applications_per_day:
        return Decision(False, f"Daily limit reached ({applications_today}/{policy.max_applications_per_day})")
    return Decision(True, f"Score {_fmt(match_score)} meets threshold {_fmt(policy.min_score_threshold)}")


# ---------------- throttle ----------------

class SubmissionThrottle:
    """
    Minimum spacing between submissions within one run.
    Thread-safe; sleep and clock are injectable for tests.
    """

    def __init__(
        self,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def wait(self) -> float:
        """Block until the spacing has elapsed; returns the seconds slept."""
        with self._lock:
            slept = 0.0
            if self._last is not None and self.delay_seconds > 0:
                remaining = self.delay_seconds - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last = self._clock()
            return slept


# ---------------- gate ----------------

class AutoApplyGate:
    """Store-backed decision + submission for one session."""

    def __init__(self, session: Session, throttle: Optional[SubmissionThrottle] = None):
        self.session = session
        self.throttle = throttle

    def policy_for(self, candidate_id: str) -> AutoApplyPolicy:
        return AutoApplyPolicy.from_mapping(crud.get_preference(self.session, candidate_id))

    def applications_today(self, candidate_id: str, at: Optional[datetime] = None) -> int:
        return crud.count_applications_today(self.session, candidate_id, at)

    def decide(
        self,
        candidate_id: str,
        job_id: str,
        match_score: float,
        policy: Optional[AutoApplyPolicy] = None,
        applications_today: Optional[int] = None,
    ) -> Decision:
        policy = policy or self.policy_for(candidate_id)
        if not policy.auto_apply_enabled:
            return Decision(False, REASON_DISABLED)
        already = crud.has_application(self.session, candidate_id, job_id)
        if applications_today is None:
            applications_today = self.applications_today(candidate_id)
        return check_policy(match_score, policy, applications_today, already)

    def submit(
        self,
        candidate_id: str,
        job_id: str,
        match_score: float,
        reasons: Sequence[str],
    ) -> Decision:
        """Insert the application; a lost race on the unique pair reads as "Already applied"."""
        if self.throttle is not None:
            self.throttle.wait()
        inserted = crud.insert_application(
            self.session,
            candidate_id,
            job_id,
            match_score=match_score,
            match_reasons=reasons,
            auto_applied=True,
        )
        if not inserted:
            logger.info("Application for candidate %s / job %s already exists", candidate_id, job_id)
            return Decision(False, REASON_ALREADY_APPLIED)
        logger.info("Auto-applied candidate %s to job %s (score=%s)", candidate_id, job_id, match_score)
        return Decision(True, REASON_SUBMITTED)


__all__ = [
    "REASON_DISABLED",
    "REASON_ALREADY_APPLIED",
    "REASON_SUBMITTED",
    "AutoApplyPolicy",
    "Decision",
    "check_policy",
    "SubmissionThrottle",
    "AutoApplyGate",
]
