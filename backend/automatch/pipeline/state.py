# backend/automatch/pipeline/state.py
"""
Run state for one matching batch.

RunState accumulates counters, errors and per-pair observations while the
run is in flight (thread-safe: evaluation workers record into it).
RunSummary is the immutable result handed back to the CLI / API.
"""

from __future__ import annotations

import statistics
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.utils import clip, now_utc


def _skip_bucket(reason: str) -> str:
    r = reason.lower()
    if r.startswith("auto-apply disabled"):
        return "disabled"
    if r.startswith("already applied"):
        return "duplicate"
    if r.startswith("score below threshold"):
        return "below_threshold"
    if r.startswith("daily limit"):
        return "rate_limited"
    return "other"


def compute_metrics(
    scores: List[float],
    similarities: List[float],
    skip_reasons: Dict[str, int],
    duration_seconds: Optional[float] = None,
) -> Dict[str, Any]:
    def _avg(xs: List[float]) -> Optional[float]:
        return round(sum(xs) / len(xs), 4) if xs else None

    def _median(xs: List[float]) -> Optional[float]:
        return round(statistics.median(xs), 4) if xs else None

    return {
        "averageMatchScore": _avg(scores),
        "medianMatchScore": _median(scores),
        "averageEmbeddingSimilarity": _avg(similarities),
        "medianEmbeddingSimilarity": _median(similarities),
        "scoreAbove80Count": sum(1 for s in scores if s >= 80),
        "scoreAbove70Count": sum(1 for s in scores if s >= 70),
        "scoreAbove60Count": sum(1 for s in scores if s >= 60),
        "similarityAbove80Count": sum(1 for s in similarities if s >= 0.8),
        "similarityAbove70Count": sum(1 for s in similarities if s >= 0.7),
        "skipReasons": dict(skip_reasons),
        "durationSeconds": round(duration_seconds, 3) if duration_seconds is not None else None,
    }


@dataclass
class RunSummary:
    run_id: Optional[str]
    status: str
    attempt: int = 1
    candidates_evaluated: int = 0
    matches_found: int = 0
    applications_submitted: int = 0
    applications_skipped: int = 0
    jobs_processed: int = 0
    failures: int = 0
    embeddings_generated: int = 0
    errors: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "status": self.status,
            "attempt": self.attempt,
            "candidatesEvaluated": self.candidates_evaluated,
            "matchesFound": self.matches_found,
            "applicationsSubmitted": self.applications_submitted,
            "applicationsSkipped": self.applications_skipped,
            "jobsProcessed": self.jobs_processed,
            "failures": self.failures,
            "embeddingsGenerated": self.embeddings_generated,
            "errors": list(self.errors),
            "metrics": dict(self.metrics),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_record(cls, row: Any) -> "RunSummary":
        return cls(
            run_id=row.id,
            status=row.status,
            attempt=row.attempt,
            candidates_evaluated=row.total_candidates_evaluated,
            matches_found=row.total_matches_found,
            applications_submitted=row.total_applications_submitted,
            applications_skipped=row.total_applications_skipped,
            jobs_processed=row.jobs_processed,
            failures=row.failed_items,
            errors=list(row.error_summary or []),
            metrics=dict(row.metrics or {}),
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


class RunState:
    """Mutable accumulator; every mutator takes the lock."""

    def __init__(self, run_id: Optional[str] = None, attempt: int = 1, max_errors: int = 20):
        self.run_id = run_id
        self.attempt = attempt
        self.max_errors = max_errors
        self.started_at = now_utc()
        self.candidates_evaluated = 0
        self.matches_found = 0
        self.applications_submitted = 0
        self.applications_skipped = 0
        self.jobs_processed = 0
        self.failures = 0
        self.embeddings_generated = 0
        self.errors: List[str] = []
        self.scores: List[float] = []
        self.similarities: List[float] = []
        self.skip_reasons: Dict[str, int] = {}
        self._lock = threading.Lock()

    def record_error(self, message: str) -> None:
        with self._lock:
            self.failures += 1
            if len(self.errors) < self.max_errors:
                self.errors.append(clip(message))

    def record_evaluation(self, score: float, similarity: float, match_found: bool) -> None:
        with self._lock:
            self.candidates_evaluated += 1
            self.scores.append(score)
            self.similarities.append(similarity)
            if match_found:
                self.matches_found += 1

    def record_submitted(self) -> None:
        with self._lock:
            self.applications_submitted += 1

    def record_skipped(self, reason: str) -> None:
        with self._lock:
            self.applications_skipped += 1
            bucket = _skip_bucket(reason)
            self.skip_reasons[bucket] = self.skip_reasons.get(bucket, 0) + 1

    def record_job(self) -> None:
        with self._lock:
            self.jobs_processed += 1

    def metrics(self, completed_at: Optional[datetime] = None) -> Dict[str, Any]:
        duration = None
        if completed_at is not None:
            duration = (completed_at - self.started_at).total_seconds()
        with self._lock:
            return compute_metrics(list(self.scores), list(self.similarities), self.skip_reasons, duration)

    def summary(self, status: str, completed_at: Optional[datetime] = None) -> RunSummary:
        metrics = self.metrics(completed_at)
        with self._lock:
            return RunSummary(
                run_id=self.run_id,
                status=status,
                attempt=self.attempt,
                candidates_evaluated=self.candidates_evaluated,
                matches_found=self.matches_found,
                applications_submitted=self.applications_submitted,
                applications_skipped=self.applications_skipped,
                jobs_processed=self.jobs_processed,
                failures=self.failures,
                embeddings_generated=self.embeddings_generated,
                errors=list(self.errors),
                metrics=metrics,
                started_at=self.started_at,
                completed_at=completed_at,
            )


__all__ = ["compute_metrics", "RunSummary", "RunState"]
