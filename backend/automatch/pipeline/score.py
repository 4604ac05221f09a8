# backend/automatch/pipeline/score.py
"""
Hybrid match scoring.

Entry:
    score_match(candidate, job, embedding_similarity) -> MatchResult

score = 0.6 * (similarity * 100) + 0.4 * rule_score, clamped to [0, 100].
The rule score uses proportional adjustments on a 0-100 scale (see RULE_WEIGHTS).
Pure: no I/O, no clock.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List

from ..core.errors import InputValidationError
from ..core.profiles import CandidateProfileData, JobPostingData
from ..core.utils import norm_set, norm_token, uniq_preserve

SIMILARITY_WEIGHT = 0.6
RULE_WEIGHT = 0.4

RULE_WEIGHTS: Dict[str, float] = {
    "baseline": 70.0,
    "must_have_penalty": 40.0,   # scaled by missing / required
    "nice_to_have_bonus": 5.0,   # per match
    "preferable_bonus": 2.0,     # per match
    "skill_bonus_cap": 20.0,     # nice_to_have + preferable together
    "category_bonus": 5.0,       # per overlapping category
    "category_bonus_cap": 10.0,
    "no_experience_penalty": 15.0,
    "no_education_penalty": 10.0,
}


@dataclass
class MatchResult:
    score: float
    reasons: List[str] = field(default_factory=list)
    rule_score: float = 0.0
    similarity: float = 0.0

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "reasons": list(self.reasons),
            "rule_score": self.rule_score,
            "similarity": self.similarity,
        }


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _fmt(x: float) -> str:
    return f"{x:g}"


def _matched(wanted: List[str], have: set[str]) -> List[str]:
    return [s for s in uniq_preserve(wanted) if norm_token(s) in have]


def rule_score(candidate: CandidateProfileData, job: JobPostingData) -> tuple[float, List[str]]:
    w = RULE_WEIGHTS
    reasons: List[str] = []
    score = w["baseline"]
    have = norm_set(candidate.skills)

    # 1) must-have coverage
    required = uniq_preserve(job.skills_for("must_have"))
    if required:
        missing = [s for s in required if norm_token(s) not in have]
        if missing:
            penalty = w["must_have_penalty"] * len(missing) / len(required)
            score -= penalty
            reasons.append(
                f"Missing {len(missing)} of {len(required)} required skills: {', '.join(missing)} "
                f"(-{_fmt(round(penalty, 2))})"
            )
        else:
            reasons.append(f"All required skills present ({len(required)}/{len(required)})")

    # 2) nice-to-have + preferable, sharing one cap
    bonus = 0.0
    for skill in _matched(job.skills_for("nice_to_have"), have):
        bonus += w["nice_to_have_bonus"]
        reasons.append(f"Nice-to-have skill matched: {skill} (+{_fmt(w['nice_to_have_bonus'])})")
    for skill in _matched(job.skills_for("preferable"), have):
        bonus += w["preferable_bonus"]
        reasons.append(f"Preferable skill matched: {skill} (+{_fmt(w['preferable_bonus'])})")
    score += min(bonus, w["skill_bonus_cap"])

    # 3) experience / education presence
    if candidate.work_history:
        years = candidate.experience_years
        reasons.append(f"Experience: {len(candidate.work_history)} position(s), ~{_fmt(round(years, 1))} years")
    else:
        score -= w["no_experience_penalty"]
        reasons.append(f"No work experience listed (-{_fmt(w['no_experience_penalty'])})")

    if candidate.education:
        reasons.append(f"Education listed ({len(candidate.education)})")
    else:
        score -= w["no_education_penalty"]
        reasons.append(f"No education listed (-{_fmt(w['no_education_penalty'])})")

    # 4) category overlap
    cand_cats = norm_set(candidate.preferred_categories)
    overlap = [c for c in uniq_preserve(job.categories) if norm_token(c) in cand_cats]
    if overlap:
        cat_bonus = min(w["category_bonus"] * len(overlap), w["category_bonus_cap"])
        score += cat_bonus
        reasons.append(f"{len(overlap)} category match(es): {', '.join(overlap)} (+{_fmt(cat_bonus)})")

    return _clamp(score, 0.0, 100.0), reasons


def score_match(
    candidate: CandidateProfileData,
    job: JobPostingData,
    embedding_similarity: float,
) -> MatchResult:
    """
    Combined 0-100 score plus human-readable reasons (never empty).
    Similarity outside [0, 1] is clamped; NaN/inf is rejected.
    """
    try:
        sim = float(embedding_similarity)
    except (TypeError, ValueError):
        raise InputValidationError(f"Embedding similarity must be a number, got {embedding_similarity!r}") from None
    if not math.isfinite(sim):
        raise InputValidationError(f"Embedding similarity must be finite, got {embedding_similarity!r}")
    sim = _clamp(sim, 0.0, 1.0)

    rules, reasons = rule_score(candidate, job)
    combined = SIMILARITY_WEIGHT * (sim * 100.0) + RULE_WEIGHT * rules
    reasons.append(f"Semantic match: {round(sim * 100)}%")

    return MatchResult(
        score=round(_clamp(combined, 0.0, 100.0), 2),
        reasons=[r for r in reasons if r],
        rule_score=round(rules, 2),
        similarity=sim,
    )


__all__ = ["SIMILARITY_WEIGHT", "RULE_WEIGHT", "RULE_WEIGHTS", "MatchResult", "rule_score", "score_match"]
