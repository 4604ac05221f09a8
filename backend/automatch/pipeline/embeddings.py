# backend/automatch/pipeline/embeddings.py
"""
Embedding generation for profiles and postings.
- Builds the source text for a candidate / job (pipe-joined sections)
- ensure_*_embedding(): return the stored vector, generating it on a miss
- generate_missing_embeddings(): batch stage of a run; provider calls on a
  small thread pool, store writes on the calling session
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.embeddings import Embedder
from ..core.errors import ConfigurationError, InputValidationError, ItemProcessingError
from ..core.profiles import CandidateProfileData, JobPostingData, REQUIREMENT_PRIORITIES
from ..core.utils import content_hash, clip, now_utc, uniq_preserve
from ..db.models import CandidateProfile, JobPosting, CandidateEmbedding, JobEmbedding
from .index import SimilarityIndex

logger = logging.getLogger(__name__)


# ------------ Source text ------------

def candidate_embedding_text(c: CandidateProfileData) -> str:
    parts: List[str] = []
    if c.name:
        parts.append(c.name)
    if c.bio:
        parts.append(c.bio)
    if c.skills:
        parts.append(f"Skills: {', '.join(c.skills)}")
    for w in c.work_history:
        if w.title or w.company:
            parts.append(f"{w.title} at {w.company}".strip())
    for e in c.education:
        if e.degree or e.institution:
            parts.append(f"{e.degree} in {e.field_of_study} from {e.institution}".strip())
    if c.interests:
        parts.append(f"Interests: {', '.join(c.interests)}")
    if c.preferred_categories:
        parts.append(f"Preferred roles: {', '.join(c.preferred_categories)}")
    return " | ".join(p for p in parts if p)


def job_embedding_text(j: JobPostingData) -> str:
    parts: List[str] = []
    for s in (j.title, j.company_name, j.description):
        if s:
            parts.append(s)
    skills = [r.name for r in j.requirements if r.name]
    if skills:
        parts.append(f"Required skills: {', '.join(skills)}")
    if j.categories:
        parts.append(f"Categories: {', '.join(j.categories)}")
    for s in (j.job_type, j.location):
        if s:
            parts.append(s)
    return " | ".join(p for p in parts if p)


def candidate_metadata(c: CandidateProfileData) -> Dict[str, Any]:
    return {
        "skills": uniq_preserve(c.skills),
        "location": c.location or None,
        "experience_years": c.experience_years,
    }


def job_metadata(j: JobPostingData) -> Dict[str, Any]:
    skills: List[str] = []
    for p in REQUIREMENT_PRIORITIES:
        skills.extend(j.skills_for(p))
    return {
        "title": j.title,
        "categories": uniq_preserve(j.categories),
        "skills": uniq_preserve(skills),
        "location": j.location or None,
    }


# ------------ Single items ------------

def _prepare_candidate(row: CandidateProfile) -> Tuple[str, str, Dict[str, Any]]:
    try:
        data = CandidateProfileData.from_row(row)
        text = candidate_embedding_text(data)
        meta = candidate_metadata(data)
    except (ConfigurationError, ItemProcessingError):
        raise
    except Exception as e:
        raise ItemProcessingError(f"Unreadable candidate profile: {e}", entity_id=row.id, stage="embed") from e
    if not text:
        raise ItemProcessingError("Candidate profile is incomplete for embedding generation",
                                  entity_id=data.id, stage="embed")
    return data.id, text, meta


def _prepare_job(row: JobPosting) -> Tuple[str, str, Dict[str, Any]]:
    try:
        data = JobPostingData.from_row(row)
        text = job_embedding_text(data)
        meta = job_metadata(data)
    except (ConfigurationError, ItemProcessingError):
        raise
    except Exception as e:
        raise ItemProcessingError(f"Unreadable job posting: {e}", entity_id=row.id, stage="embed") from e
    if not text:
        raise ItemProcessingError("Job posting has no text to embed", entity_id=data.id, stage="embed")
    return data.id, text, meta


def ensure_candidate_embedding(session: Session, candidate: CandidateProfile, embedder: Embedder) -> List[float]:
    index = SimilarityIndex(session)
    vec = index.get_vector("candidate", candidate.id)
    if vec is not None:
        return vec
    cid, text, meta = _prepare_candidate(candidate)
    vec = embedder.embed(text)
    index.upsert_embedding("candidate", cid, vec, meta, content_hash=content_hash(text))
    logger.info("Embedding generated for candidate %s (dims=%d)", cid, len(vec))
    return vec


def ensure_job_embedding(session: Session, job: JobPosting, embedder: Embedder) -> List[float]:
    index = SimilarityIndex(session)
    vec = index.get_vector("job", job.id)
    if vec is not None:
        return vec
    jid, text, meta = _prepare_job(job)
    vec = embedder.embed(text)
    index.upsert_embedding("job", jid, vec, meta, content_hash=content_hash(text))
    logger.info("Embedding generated for job %s (dims=%d)", jid, len(vec))
    return vec


# ------------ Batch stage ------------

@dataclass
class BatchResult:
    generated: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "BatchResult") -> "BatchResult":
        self.generated += other.generated
        self.failed += other.failed
        self.errors.extend(other.errors)
        return self


def candidates_missing_embeddings(session: Session, limit: int) -> List[CandidateProfile]:
    """Profiles without a vector; ones that keep failing go to the back of the queue."""
    q = (
        select(CandidateProfile)
        .outerjoin(CandidateEmbedding, CandidateEmbedding.candidate_id == CandidateProfile.id)
        .where(CandidateEmbedding.id.is_(None))
        .order_by(CandidateProfile.embedding_failures, CandidateProfile.created_at, CandidateProfile.id)
        .limit(max(0, limit))
    )
    return list(session.execute(q).scalars().all())


def jobs_missing_embeddings(session: Session, limit: int) -> List[JobPosting]:
    q = (
        select(JobPosting)
        .outerjoin(JobEmbedding, JobEmbedding.job_posting_id == JobPosting.id)
        .where(JobEmbedding.id.is_(None), JobPosting.status == "open")
        .order_by(JobPosting.embedding_failures, JobPosting.created_at, JobPosting.id)
        .limit(max(0, limit))
    )
    return list(session.execute(q).scalars().all())


def _embed_all(
    kind: str,
    items: List[Tuple[str, str, Dict[str, Any]]],
    embedder: Embedder,
    workers: int,
) -> Tuple[Dict[str, List[float]], Dict[str, str]]:
    """Run provider calls on a bounded pool. Returns (vectors, errors) keyed by entity id."""
    vectors: Dict[str, List[float]] = {}
    errors: Dict[str, str] = {}
    if not items:
        return vectors, errors

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(items)))) as executor:
        futures = {executor.submit(embedder.embed, text): eid for eid, text, _ in items}
        for future in as_completed(futures):
            eid = futures[future]
            try:
                vectors[eid] = future.result()
            except ConfigurationError:
                raise
            except Exception as e:
                errors[eid] = str(e)
                logger.warning("Embedding failed for %s %s: %s", kind, eid, e)
    return vectors, errors


def _note_attempt(row: Any, ok: bool) -> None:
    row.embedding_attempted_at = now_utc()
    row.embedding_failures = 0 if ok else (row.embedding_failures or 0) + 1


def _generate(
    session: Session,
    kind: str,
    rows: List[Any],
    prepare,
    embedder: Embedder,
    workers: int,
) -> BatchResult:
    result = BatchResult()
    by_id = {row.id: row for row in rows}
    items: List[Tuple[str, str, Dict[str, Any]]] = []
    for row in rows:
        try:
            items.append(prepare(row))
        except ItemProcessingError as e:
            _note_attempt(row, ok=False)
            result.failed += 1
            result.errors.append(str(e))
            logger.warning("%s", e)

    vectors, errors = _embed_all(kind, items, embedder, workers)

    index = SimilarityIndex(session)
    for eid, text, meta in items:
        if eid in errors:
            _note_attempt(by_id[eid], ok=False)
            result.failed += 1
            result.errors.append(str(ItemProcessingError(clip(errors[eid]), entity_id=eid, stage="embed")))
            continue
        try:
            index.upsert_embedding(kind, eid, vectors[eid], meta, content_hash=content_hash(text))
        except InputValidationError as e:
            _note_attempt(by_id[eid], ok=False)
            result.failed += 1
            result.errors.append(str(ItemProcessingError(str(e), entity_id=eid, stage="embed")))
            continue
        _note_attempt(by_id[eid], ok=True)
        result.generated += 1
    session.commit()
    return result


def generate_missing_embeddings(
    session: Session,
    embedder: Embedder,
    batch_size: int = 10,
    workers: int = 4,
) -> BatchResult:
    """
    Embed up to `batch_size` candidates and `2 * batch_size` open jobs that have no vector yet.
    Per-item failures are collected; a ConfigurationError from the provider propagates.
    """
    candidates = candidates_missing_embeddings(session, batch_size)
    jobs = jobs_missing_embeddings(session, batch_size * 2)
    logger.info("Embedding stage: %d candidates, %d jobs without vectors", len(candidates), len(jobs))

    result = _generate(session, "candidate", candidates, _prepare_candidate, embedder, workers)
    result.merge(_generate(session, "job", jobs, _prepare_job, embedder, workers))
    logger.info("Embedding stage done: generated=%d failed=%d", result.generated, result.failed)
    return result


__all__ = [
    "candidate_embedding_text",
    "job_embedding_text",
    "candidate_metadata",
    "job_metadata",
    "ensure_candidate_embedding",
    "ensure_job_embedding",
    "BatchResult",
    "candidates_missing_embeddings",
    "jobs_missing_embeddings",
    "generate_missing_embeddings",
]
