# backend/automatch/db/crud.py
"""
CRUD helpers for the matching store.
Usage (with context manager):
    from .session import session_scope
    with session_scope() as s:
        job = create_job(s, title="Backend Engineer", requirements=[...])

Or with FastAPI dependency `get_session()` if you wire it in a router.

Upserts go through the dialect's INSERT .. ON CONFLICT so uniqueness is
decided by the store, never by a read-then-write in Python.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy import select, func, desc
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session

from ..core.utils import now_utc, utc_day_start, utc_day_end
from .models import (
    generate_uuid,
    CandidateProfile,
    JobPosting,
    AutoApplyPreference,
    ApplicationRecord,
    RunRecord,
)


# ----------------- Dialect-aware upserts -----------------

def _insert_for(session: Session, model: Type[Any]):
    # Core insert on the Table: value keys are column names, not attribute names
    table = model.__table__
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported for dialect '{name}'")


def upsert(
    session: Session,
    model: Type[Any],
    values: Dict[str, Any],
    conflict_cols: Sequence[str],
    update_cols: Optional[Iterable[str]] = None,
) -> CursorResult:
    """
    INSERT .. ON CONFLICT (conflict_cols) DO UPDATE SET update_cols.
    update_cols defaults to every key in `values` that is not a conflict column.
    """
    stmt = _insert_for(session, model).values(**values)
    cols = list(update_cols) if update_cols is not None else [k for k in values if k not in conflict_cols]
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_cols),
        set_={c: stmt.excluded[c] for c in cols},
    )
    return session.execute(stmt)


def insert_ignore(
    session: Session,
    model: Type[Any],
    values: Dict[str, Any],
    conflict_cols: Sequence[str],
) -> bool:
    """INSERT .. ON CONFLICT DO NOTHING. True when a row was actually written."""
    stmt = _insert_for(session, model).values(**values).on_conflict_do_nothing(
        index_elements=list(conflict_cols)
    )
    res = session.execute(stmt)
    return (res.rowcount or 0) > 0


# ----------------- Candidates / jobs -----------------

def create_candidate(session: Session, **fields: Any) -> CandidateProfile:
    row = CandidateProfile(**fields)
    session.add(row)
    session.flush()
    return row


def get_candidate(session: Session, candidate_id: str) -> Optional[CandidateProfile]:
    return session.get(CandidateProfile, candidate_id)


def create_job(session: Session, **fields: Any) -> JobPosting:
    row = JobPosting(**fields)
    session.add(row)
    session.flush()
    return row


def get_job(session: Session, job_id: str) -> Optional[JobPosting]:
    return session.get(JobPosting, job_id)


def list_open_jobs(session: Session, limit: int) -> List[JobPosting]:
    q = (
        select(JobPosting)
        .where(JobPosting.status == "open")
        .order_by(JobPosting.created_at, JobPosting.id)
        .limit(max(0, limit))
    )
    return list(session.execute(q).scalars().all())


# ----------------- Preferences -----------------

def get_preference(session: Session, candidate_id: str) -> Optional[AutoApplyPreference]:
    q = (
        select(AutoApplyPreference)
        .where(AutoApplyPreference.candidate_id == candidate_id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return session.execute(q).scalars().first()


def save_preference(session: Session, candidate_id: str, values: Dict[str, Any]) -> AutoApplyPreference:
    """
    Insert-or-update the candidate's preference row. `values` must already be validated
    (see pipeline.auto_apply.AutoApplyPolicy).
    """
    payload = {
        "candidate_id": candidate_id,
        "auto_apply_enabled": values["auto_apply_enabled"],
        "min_score_threshold": values["min_score_threshold"],
        "max_applications_per_day": values["max_applications_per_day"],
        "updated_at": now_utc(),
    }
    upsert(session, AutoApplyPreference, payload, conflict_cols=["candidate_id"])
    q = (
        select(AutoApplyPreference)
        .where(AutoApplyPreference.candidate_id == candidate_id)
        .execution_options(populate_existing=True)
    )
    return session.execute(q).scalars().one()


# ----------------- Applications -----------------

def has_application(session: Session, candidate_id: str, job_id: str) -> bool:
    q = (
        select(ApplicationRecord.id)
        .where(ApplicationRecord.candidate_id == candidate_id, ApplicationRecord.job_posting_id == job_id)
        .limit(1)
    )
    return session.execute(q).first() is not None


def count_applications_today(session: Session, candidate_id: str, at: Optional[datetime] = None) -> int:
    """Auto-applied records created within the current UTC calendar day (recomputed every call)."""
    start, end = utc_day_start(at), utc_day_end(at)
    q = select(func.count(ApplicationRecord.id)).where(
        ApplicationRecord.candidate_id == candidate_id,
        ApplicationRecord.auto_applied.is_(True),
        ApplicationRecord.created_at >= start,
        ApplicationRecord.created_at < end,
    )
    return int(session.execute(q).scalar_one())


def insert_application(
    session: Session,
    candidate_id: str,
    job_id: str,
    *,
    match_score: Optional[float],
    match_reasons: Sequence[str],
    auto_applied: bool = True,
    hiring_status: str = "potential_fit",
    created_at: Optional[datetime] = None,
) -> bool:
    """False when the (candidate, job) pair already had an application."""
    values = {
        "id": generate_uuid(),
        "candidate_id": candidate_id,
        "job_posting_id": job_id,
        "auto_applied": auto_applied,
        "match_score": match_score,
        "match_reasons": list(match_reasons),
        "hiring_status": hiring_status,
        "created_at": created_at or now_utc(),
    }
    return insert_ignore(session, ApplicationRecord, values, conflict_cols=["candidate_id", "job_posting_id"])


# ----------------- Runs -----------------

def create_run(session: Session, attempt: int = 1) -> RunRecord:
    row = RunRecord(status="in_progress", attempt=attempt, started_at=now_utc())
    session.add(row)
    session.flush()
    return row


def get_run(session: Session, run_id: str) -> Optional[RunRecord]:
    return session.get(RunRecord, run_id)


def list_recent_runs(session: Session, limit: int = 20) -> List[RunRecord]:
    q = select(RunRecord).order_by(desc(RunRecord.started_at)).limit(max(1, min(limit, 200)))
    return list(session.execute(q).scalars().all())


__all__ = [
    "upsert",
    "insert_ignore",
    "create_candidate",
    "get_candidate",
    "create_job",
    "get_job",
    "list_open_jobs",
    "get_preference",
    "save_preference",
    "has_application",
    "count_applications_today",
    "insert_application",
    "create_run",
    "get_run",
    "list_recent_runs",
]
