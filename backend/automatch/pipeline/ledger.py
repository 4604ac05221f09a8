# backend/automatch/pipeline/ledger.py
"""
Evaluation ledger: which (candidate, job) pairs have already been scored.

A pair with no EvaluationRecord needs evaluation; that is the only state
signal. Invalidation is a bulk delete so the next run re-scores the pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, delete, func, and_, case
from sqlalchemy.orm import Session

from ..core.utils import now_utc
from ..db.crud import upsert
from ..db.models import CandidateEmbedding, CandidateProfile, EvaluationRecord

logger = logging.getLogger(__name__)


@dataclass
class LedgerStats:
    total_evaluations: int = 0
    total_matches: int = 0
    average_score: Optional[float] = None
    candidates_with_matches: int = 0
    jobs_with_evaluations: int = 0

    def to_dict(self) -> dict:
        return {
            "totalEvaluations": self.total_evaluations,
            "totalMatches": self.total_matches,
            "averageScore": self.average_score,
            "candidatesWithMatches": self.candidates_with_matches,
            "jobsWithEvaluations": self.jobs_with_evaluations,
        }


class EvaluationLedger:
    def __init__(self, session: Session):
        self.session = session

    def needs_evaluation(self, job_id: str, limit: int, embedded_only: bool = False) -> List[str]:
        """
        Candidate ids with no record for `job_id` (anti-join), oldest profiles first.
        `embedded_only` keeps candidates without a vector from taking up the batch.
        """
        if limit <= 0:
            return []
        q = select(CandidateProfile.id)
        if embedded_only:
            q = q.join(CandidateEmbedding, CandidateEmbedding.candidate_id == CandidateProfile.id)
        q = (
            q
            .outerjoin(
                EvaluationRecord,
                and_(
                    EvaluationRecord.candidate_id == CandidateProfile.id,
                    EvaluationRecord.job_posting_id == job_id,
                ),
            )
            .where(EvaluationRecord.id.is_(None))
            .order_by(CandidateProfile.created_at, CandidateProfile.id)
            .limit(limit)
        )
        return [r[0] for r in self.session.execute(q).all()]

    def mark_evaluated(
        self,
        candidate_id: str,
        job_id: str,
        match_found: bool,
        score: Optional[float] = None,
        similarity: Optional[float] = None,
    ) -> None:
        """Insert-or-overwrite the pair's record; a repeat call replaces fields and timestamp."""
        values = {
            "candidate_id": candidate_id,
            "job_posting_id": job_id,
            "match_found": bool(match_found),
            "match_score": score,
            "embedding_similarity": similarity,
            "evaluated_at": now_utc(),
        }
        upsert(self.session, EvaluationRecord, values, conflict_cols=["candidate_id", "job_posting_id"])

    def get(self, candidate_id: str, job_id: str) -> Optional[EvaluationRecord]:
        q = (
            select(EvaluationRecord)
            .where(EvaluationRecord.candidate_id == candidate_id, EvaluationRecord.job_posting_id == job_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(q).scalars().first()

    def invalidate_candidate(self, candidate_id: str) -> int:
        res = self.session.execute(delete(EvaluationRecord).where(EvaluationRecord.candidate_id == candidate_id))
        n = int(res.rowcount or 0)
        logger.info("Cleared %d evaluation(s) for candidate %s", n, candidate_id)
        return n

    def invalidate_job(self, job_id: str) -> int:
        res = self.session.execute(delete(EvaluationRecord).where(EvaluationRecord.job_posting_id == job_id))
        n = int(res.rowcount or 0)
        logger.info("Cleared %d evaluation(s) for job %s", n, job_id)
        return n

    def stats(self) -> LedgerStats:
        total, matches, avg = self.session.execute(
            select(
                func.count(EvaluationRecord.id),
                func.sum(case((EvaluationRecord.match_found.is_(True), 1), else_=0)),
                func.avg(EvaluationRecord.match_score),
            )
        ).one()
        cands = self.session.execute(
            select(func.count(func.distinct(EvaluationRecord.candidate_id))).where(
                EvaluationRecord.match_found.is_(True)
            )
        ).scalar_one()
        jobs = self.session.execute(
            select(func.count(func.distinct(EvaluationRecord.job_posting_id)))
        ).scalar_one()
        return LedgerStats(
            total_evaluations=int(total or 0),
            total_matches=int(matches or 0),
            average_score=round(float(avg), 2) if avg is not None else None,
            candidates_with_matches=int(cands or 0),
            jobs_with_evaluations=int(jobs or 0),
        )


__all__ = ["LedgerStats", "EvaluationLedger"]
