# backend/automatch/pipeline/index.py
"""
Vector store over candidate / job embeddings.

Vectors live in JSON columns and similarity is computed in Python with
cosine_sim. Search filters first, then ranks, then truncates to `limit`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from ..core.embeddings import cosine_sim
from ..core.errors import InputValidationError
from ..core.utils import now_utc, norm_set, norm_token
from ..db.crud import upsert
from ..db.models import CandidateEmbedding, JobEmbedding, JobPosting

logger = logging.getLogger(__name__)

# kind -> (model, entity id column)
_KINDS = {
    "candidate": (CandidateEmbedding, "candidate_id"),
    "job": (JobEmbedding, "job_posting_id"),
}


def _resolve(kind: str):
    try:
        return _KINDS[kind]
    except KeyError:
        raise InputValidationError(f"Unknown embedding kind '{kind}'") from None


def validate_vector(vector: Sequence[float]) -> List[float]:
    if not vector:
        raise InputValidationError("Embedding vector is empty")
    out: List[float] = []
    for x in vector:
        if isinstance(x, bool) or not isinstance(x, (int, float)) or not math.isfinite(x):
            raise InputValidationError(f"Embedding vector holds a non-finite or non-numeric value: {x!r}")
        out.append(float(x))
    return out


@dataclass
class SearchFilters:
    """Metadata filters; every set field must pass."""
    min_experience_years: Optional[float] = None
    max_experience_years: Optional[float] = None
    required_skills: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)

    def matches(self, meta: Dict[str, Any]) -> bool:
        years = meta.get("experience_years")
        if self.min_experience_years is not None:
            if years is None or float(years) < self.min_experience_years:
                return False
        if self.max_experience_years is not None:
            if years is None or float(years) > self.max_experience_years:
                return False
        if self.required_skills:
            have = norm_set(meta.get("skills"))
            if not norm_set(self.required_skills) <= have:
                return False
        if self.locations:
            loc = norm_token(meta.get("location"))
            if not loc or not any(norm_token(l) in loc for l in self.locations if norm_token(l)):
                return False
        return True


@dataclass
class SearchHit:
    entity_id: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class SimilarityIndex:
    """Read/write access to stored vectors, bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    # ---- writes ----

    def upsert_embedding(
        self,
        kind: str,
        entity_id: str,
        vector: Sequence[float],
        metadata: Optional[Dict[str, Any]] = None,
        content_hash: Optional[str] = None,
    ) -> None:
        """Replace any prior vector for the entity (one row per entity, enforced by the store)."""
        model, id_col = _resolve(kind)
        vec = validate_vector(vector)
        values = {
            id_col: entity_id,
            "vector": vec,
            "dimensions": len(vec),
            "content_hash": content_hash,
            "metadata": dict(metadata or {}),
            "updated_at": now_utc(),
        }
        upsert(self.session, model, values, conflict_cols=[id_col])

    def delete_embedding(self, kind: str, entity_id: str) -> int:
        model, id_col = _resolve(kind)
        res = self.session.execute(delete(model).where(getattr(model, id_col) == entity_id))
        return int(res.rowcount or 0)

    # ---- reads ----

    def get_vector(self, kind: str, entity_id: str) -> Optional[List[float]]:
        model, id_col = _resolve(kind)
        q = select(model.vector).where(getattr(model, id_col) == entity_id).limit(1)
        row = self.session.execute(q).first()
        return list(row[0]) if row is not None else None

    def get_metadata(self, kind: str, entity_id: str) -> Optional[Dict[str, Any]]:
        model, id_col = _resolve(kind)
        q = select(model.meta).where(getattr(model, id_col) == entity_id).limit(1)
        row = self.session.execute(q).first()
        return dict(row[0] or {}) if row is not None else None

    @staticmethod
    def similarity(a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_sim(a, b)

    def search_candidates(
        self,
        query_vector: Sequence[float],
        min_similarity: float = 0.7,
        limit: int = 10,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchHit]:
        q = select(CandidateEmbedding.candidate_id, CandidateEmbedding.vector, CandidateEmbedding.meta)
        return self._rank(q, CandidateEmbedding, query_vector, min_similarity, limit, filters)

    def search_jobs(
        self,
        query_vector: Sequence[float],
        min_similarity: float = 0.7,
        limit: int = 10,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchHit]:
        q = (
            select(JobEmbedding.job_posting_id, JobEmbedding.vector, JobEmbedding.meta)
            .join(JobPosting, JobPosting.id == JobEmbedding.job_posting_id)
            .where(JobPosting.status == "open")
        )
        return self._rank(q, JobEmbedding, query_vector, min_similarity, limit, filters)

    def _rank(self, q, model, query_vector, min_similarity, limit, filters) -> List[SearchHit]:
        qv = validate_vector(query_vector)
        if limit <= 0:
            return []
        # vectors from another model/dimension are not comparable
        q = q.where(model.dimensions == len(qv))

        hits: List[SearchHit] = []
        for entity_id, vec, meta in self.session.execute(q).all():
            meta = dict(meta or {})
            if filters is not None and not filters.matches(meta):
                continue
            sim = cosine_sim(qv, vec)
            if sim > min_similarity:
                hits.append(SearchHit(entity_id=entity_id, similarity=sim, metadata=meta))

        hits.sort(key=lambda h: (-h.similarity, h.entity_id))
        return hits[:limit]


__all__ = ["SearchFilters", "SearchHit", "SimilarityIndex", "validate_vector"]
