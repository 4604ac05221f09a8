# backend/automatch/core/profiles.py
"""
In-memory views of candidate profiles and job postings.

The scoring engine and embedding-text builders work on these plain
dataclasses so they stay pure; `from_row` converts ORM rows (or dicts).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import InputValidationError
from .utils import now_utc

REQUIREMENT_PRIORITIES = ("must_have", "nice_to_have", "preferable")


def _get(src: Any, key: str, default: Any = None) -> Any:
    if isinstance(src, dict):
        return src.get(key, default)
    return getattr(src, key, default)


def _year(v: Any) -> Optional[int]:
    """Stored years may be ints, numeric strings or ""; anything unparseable is None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if math.isfinite(v) else None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


def _flag(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes")
    return bool(v)


@dataclass
class WorkEntry:
    """One position in a candidate's work history."""
    title: str = ""
    company: str = ""
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    is_current: bool = False

    @property
    def years(self) -> float:
        if self.start_year is None:
            return 0.0
        end = now_utc().year if (self.is_current or self.end_year is None) else self.end_year
        return float(max(0, end - self.start_year))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WorkEntry":
        return cls(
            title=str(d.get("title") or d.get("position") or ""),
            company=str(d.get("company") or ""),
            start_year=_year(d.get("start_year")),
            end_year=_year(d.get("end_year")),
            is_current=_flag(d.get("is_current", d.get("is_present", False))),
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "company": self.company,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "is_current": self.is_current,
        }


@dataclass
class EducationEntry:
    institution: str = ""
    degree: str = ""
    field_of_study: str = ""
    graduation_year: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EducationEntry":
        return cls(
            institution=str(d.get("institution") or d.get("school") or ""),
            degree=str(d.get("degree") or ""),
            field_of_study=str(d.get("field_of_study") or d.get("field") or ""),
            graduation_year=_year(d.get("graduation_year")),
        )

    def to_dict(self) -> dict:
        return {
            "institution": self.institution,
            "degree": self.degree,
            "field_of_study": self.field_of_study,
            "graduation_year": self.graduation_year,
        }


@dataclass
class Requirement:
    """A job requirement tagged must_have / nice_to_have / preferable."""
    name: str
    priority: str = "must_have"

    def __post_init__(self) -> None:
        if self.priority not in REQUIREMENT_PRIORITIES:
            raise InputValidationError(
                f"Unknown requirement priority '{self.priority}' (expected one of {', '.join(REQUIREMENT_PRIORITIES)})"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Requirement":
        return cls(name=str(d.get("name") or ""), priority=str(d.get("priority") or "must_have"))

    def to_dict(self) -> dict:
        return {"name": self.name, "priority": self.priority}


@dataclass
class CandidateProfileData:
    """Identity-independent candidate attributes used for matching."""
    id: str = ""
    name: str = ""
    bio: str = ""
    skills: List[str] = field(default_factory=list)
    work_history: List[WorkEntry] = field(default_factory=list)
    education: List[EducationEntry] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)
    preferred_categories: List[str] = field(default_factory=list)
    preferred_job_types: List[str] = field(default_factory=list)
    location: str = ""

    @property
    def experience_years(self) -> float:
        return sum(w.years for w in self.work_history)

    @classmethod
    def from_row(cls, row: Any) -> "CandidateProfileData":
        return cls(
            id=str(_get(row, "id") or ""),
            name=_get(row, "name") or "",
            bio=_get(row, "bio") or "",
            skills=list(_get(row, "skills") or []),
            work_history=[
                w if isinstance(w, WorkEntry) else WorkEntry.from_dict(w)
                for w in (_get(row, "work_history") or [])
            ],
            education=[
                e if isinstance(e, EducationEntry) else EducationEntry.from_dict(e)
                for e in (_get(row, "education") or [])
            ],
            interests=list(_get(row, "interests") or []),
            preferred_categories=list(_get(row, "preferred_categories") or []),
            preferred_job_types=list(_get(row, "preferred_job_types") or []),
            location=_get(row, "location") or "",
        )


@dataclass
class JobPostingData:
    id: str = ""
    title: str = ""
    company_name: str = ""
    description: str = ""
    requirements: List[Requirement] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    job_type: str = ""
    location: str = ""
    status: str = "open"

    def skills_for(self, priority: str) -> List[str]:
        return [r.name for r in self.requirements if r.priority == priority and r.name.strip()]

    @classmethod
    def from_row(cls, row: Any) -> "JobPostingData":
        return cls(
            id=str(_get(row, "id") or ""),
            title=_get(row, "title") or "",
            company_name=_get(row, "company_name") or "",
            description=_get(row, "description") or "",
            requirements=[
                r if isinstance(r, Requirement) else Requirement.from_dict(r)
                for r in (_get(row, "requirements") or [])
            ],
            categories=list(_get(row, "categories") or []),
            job_type=_get(row, "job_type") or "",
            location=_get(row, "location") or "",
            status=_get(row, "status") or "open",
        )


__all__ = [
    "REQUIREMENT_PRIORITIES",
    "WorkEntry",
    "EducationEntry",
    "Requirement",
    "CandidateProfileData",
    "JobPostingData",
]
