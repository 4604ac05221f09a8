# backend/automatch/pipeline/profiles.py
"""
Profile / posting maintenance with cache invalidation.

A material candidate change clears every EvaluationRecord for that candidate,
drops its embedding (and its failed-attempt count) and journals the change, all
in the caller's transaction.
Job requirement/category changes clear the job's evaluations; any text change
drops the job embedding. Closing a job removes its embedding.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from sqlalchemy.orm import Session

from ..core.errors import InputValidationError
from ..core.profiles import Requirement
from ..db import crud
from ..db.models import CandidateProfile, CandidateProfileUpdate, JobPosting
from .index import SimilarityIndex
from .ledger import EvaluationLedger

logger = logging.getLogger(__name__)

CANDIDATE_FIELDS = (
    "name", "bio", "skills", "work_history", "education", "interests",
    "preferred_categories", "preferred_job_types", "location",
)
# changes to these re-open every pair for the candidate
CANDIDATE_MATERIAL_FIELDS = (
    "skills", "work_history", "education", "interests", "preferred_categories", "location", "bio",
)

JOB_FIELDS = ("title", "company_name", "description", "requirements", "categories", "job_type", "location")
JOB_SCORING_FIELDS = ("requirements", "categories")
JOB_TEXT_FIELDS = ("title", "company_name", "description", "requirements", "categories", "job_type", "location")


def _diff(row: Any, changes: Mapping[str, Any], allowed: Tuple[str, ...]) -> Dict[str, Tuple[Any, Any]]:
    unknown = [k for k in changes if k not in allowed]
    if unknown:
        raise InputValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    out: Dict[str, Tuple[Any, Any]] = {}
    for k, new in changes.items():
        old = getattr(row, k)
        if old != new:
            out[k] = (old, new)
    return out


def _check_requirements(reqs: Any) -> List[Dict[str, Any]]:
    if not isinstance(reqs, list):
        raise InputValidationError("requirements must be a list of {name, priority}")
    return [Requirement.from_dict(r).to_dict() if isinstance(r, dict) else Requirement(str(r)).to_dict()
            for r in reqs]


def update_candidate_profile(session: Session, candidate_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Apply `changes` to the candidate. Returns
    {"changed": [...], "material": bool, "evaluations_cleared": int}.
    """
    row = crud.get_candidate(session, candidate_id)
    if row is None:
        raise InputValidationError(f"Unknown candidate '{candidate_id}'")

    diff = _diff(row, changes, CANDIDATE_FIELDS)
    for k, (_, new) in diff.items():
        setattr(row, k, new)

    material = [k for k in diff if k in CANDIDATE_MATERIAL_FIELDS]
    cleared = 0
    if material:
        cleared = EvaluationLedger(session).invalidate_candidate(candidate_id)
        SimilarityIndex(session).delete_embedding("candidate", candidate_id)
        row.embedding_failures = 0
        session.add(CandidateProfileUpdate(
            candidate_id=candidate_id,
            fields_changed=material,
            previous_value={k: diff[k][0] for k in material},
            new_value={k: diff[k][1] for k in material},
            evaluations_cleared=cleared,
        ))
        logger.info("Candidate %s changed %s; %d evaluation(s) cleared", candidate_id, material, cleared)
    session.flush()
    return {"changed": list(diff), "material": bool(material), "evaluations_cleared": cleared}


def update_job_posting(session: Session, job_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
    row = crud.get_job(session, job_id)
    if row is None:
        raise InputValidationError(f"Unknown job posting '{job_id}'")

    changes = dict(changes)
    if "requirements" in changes:
        changes["requirements"] = _check_requirements(changes["requirements"])

    diff = _diff(row, changes, JOB_FIELDS)
    for k, (_, new) in diff.items():
        setattr(row, k, new)

    cleared = 0
    if any(k in JOB_SCORING_FIELDS for k in diff):
        cleared = EvaluationLedger(session).invalidate_job(job_id)
    if any(k in JOB_TEXT_FIELDS for k in diff):
        SimilarityIndex(session).delete_embedding("job", job_id)
        row.embedding_failures = 0
    session.flush()
    return {"changed": list(diff), "evaluations_cleared": cleared}


def close_job(session: Session, job_id: str) -> JobPosting:
    row = crud.get_job(session, job_id)
    if row is None:
        raise InputValidationError(f"Unknown job posting '{job_id}'")
    row.status = "closed"
    SimilarityIndex(session).delete_embedding("job", job_id)
    session.flush()
    logger.info("Job %s closed", job_id)
    return row


def create_candidate_profile(session: Session, **fields: Any) -> CandidateProfile:
    unknown = [k for k in fields if k not in CANDIDATE_FIELDS and k != "id"]
    if unknown:
        raise InputValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    return crud.create_candidate(session, **fields)


def create_job_posting(session: Session, **fields: Any) -> JobPosting:
    unknown = [k for k in fields if k not in JOB_FIELDS and k not in ("id", "status")]
    if unknown:
        raise InputValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    if "requirements" in fields:
        fields["requirements"] = _check_requirements(fields["requirements"])
    return crud.create_job(session, **fields)


__all__ = [
    "CANDIDATE_MATERIAL_FIELDS",
    "update_candidate_profile",
    "update_job_posting",
    "close_job",
    "create_candidate_profile",
    "create_job_posting",
]
