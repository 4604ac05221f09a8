# backend/automatch/db/models.py
"""
SQLAlchemy ORM models for the matching store.

Uniqueness that the pipeline relies on lives here, not in application code:
- one embedding per candidate / per job posting
- one EvaluationRecord per (candidate, job)
- one ApplicationRecord per (candidate, job)
- one AutoApplyPreference per candidate
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.utils import now_utc
from .session import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------- entities

class CandidateProfile(Base):
    __tablename__ = "candidate_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    skills: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    # [{title, company, start_year, end_year, is_current}]
    work_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # [{institution, degree, field_of_study, graduation_year}]
    education: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    interests: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    preferred_categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    preferred_job_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # failed embedding attempts since the last change; queues order on this
    embedding_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedding_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)

    def __repr__(self) -> str:
        return f"<CandidateProfile id={self.id} name={self.name!r}>"


class JobPosting(Base):
    __tablename__ = "job_postings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # [{name, priority}] with priority in must_have | nice_to_have | preferable
    requirements: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    job_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open", index=True)
    embedding_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedding_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)

    def __repr__(self) -> str:
        return f"<JobPosting id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------- vectors

class CandidateEmbedding(Base):
    __tablename__ = "candidate_embeddings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidate_profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    vector: Mapped[List[float]] = mapped_column(JSON, nullable=False)
    dimensions: Mapped[int] = mapped_column(Integer, nullable=False)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # denormalized snapshot: skills, location, experience_years
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)


class JobEmbedding(Base):
    __tablename__ = "job_posting_embeddings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_posting_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_postings.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    vector: Mapped[List[float]] = mapped_column(JSON, nullable=False)
    dimensions: Mapped[int] = mapped_column(Integer, nullable=False)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # denormalized snapshot: title, categories, skills, location
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)


# ---------------------------------------------------------------- ledger

class EvaluationRecord(Base):
    __tablename__ = "candidate_job_evaluations"
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_posting_id", name="uq_evaluation_pair"),
        Index("ix_evaluations_job", "job_posting_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidate_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_posting_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False
    )
    evaluated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)
    match_found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    embedding_similarity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<EvaluationRecord candidate={self.candidate_id} job={self.job_posting_id} "
            f"match={self.match_found} score={self.match_score}>"
        )


class CandidateProfileUpdate(Base):
    """Journal of material profile changes (each one invalidated the candidate's evaluations)."""
    __tablename__ = "candidate_profile_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidate_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    fields_changed: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    previous_value: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    new_value: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    evaluations_cleared: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)


# ---------------------------------------------------------------- auto-apply

class AutoApplyPreference(Base):
    __tablename__ = "candidate_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidate_profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    auto_apply_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    min_score_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=70.0)
    max_applications_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)


class ApplicationRecord(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_posting_id", name="uq_application_pair"),
        Index("ix_applications_candidate_created", "candidate_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    candidate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("candidate_profiles.id", ondelete="CASCADE"), nullable=False
    )
    job_posting_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False
    )
    auto_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    match_reasons: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    hiring_status: Mapped[str] = mapped_column(String(32), nullable=False, default="potential_fit")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)

    def __repr__(self) -> str:
        return f"<ApplicationRecord candidate={self.candidate_id} job={self.job_posting_id} auto={self.auto_applied}>"


# ---------------------------------------------------------------- runs

class RunRecord(Base):
    __tablename__ = "auto_application_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="in_progress", index=True)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    total_candidates_evaluated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_matches_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_applications_submitted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_applications_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    jobs_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_summary: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    metrics: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<RunRecord id={self.id} status={self.status}>"


__all__ = [
    "generate_uuid",
    "CandidateProfile",
    "JobPosting",
    "CandidateEmbedding",
    "JobEmbedding",
    "EvaluationRecord",
    "CandidateProfileUpdate",
    "AutoApplyPreference",
    "ApplicationRecord",
    "RunRecord",
]
