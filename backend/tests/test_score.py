import itertools
import math

import pytest

from automatch.core.errors import InputValidationError
from automatch.core.profiles import CandidateProfileData, JobPostingData, Requirement
from automatch.pipeline.score import score_match

from conftest import EDUCATION, EXPERIENCE


def _job(must=(), nice=(), pref=(), categories=()):
    reqs = [Requirement(n, "must_have") for n in must]
    reqs += [Requirement(n, "nice_to_have") for n in nice]
    reqs += [Requirement(n, "preferable") for n in pref]
    return JobPostingData(id="job-1", title="Full-stack Engineer", requirements=reqs, categories=list(categories))


def _candidate(skills, experience=False, education=False, categories=()):
    return CandidateProfileData.from_row({
        "id": "cand-1",
        "skills": list(skills),
        "work_history": EXPERIENCE if experience else [],
        "education": EDUCATION if education else [],
        "preferred_categories": list(categories),
    })


FULLSTACK = _job(must=["TypeScript", "React", "Node.js"])


def test_scenario_all_required_skills_high_similarity():
    c = _candidate(["TypeScript", "React", "Node.js", "PostgreSQL", "AWS"])
    result = score_match(c, FULLSTACK, 0.9)

    assert result.score >= 70
    assert result.score == pytest.approx(72.0)
    assert "All required skills present (3/3)" in result.reasons
    assert "Semantic match: 90%" in result.reasons


def test_scenario_missing_skills_low_similarity_scores_lower():
    strong = score_match(_candidate(["TypeScript", "React", "Node.js", "PostgreSQL", "AWS"]), FULLSTACK, 0.9)
    weak = score_match(_candidate(["HTML", "CSS"]), FULLSTACK, 0.3)

    assert weak.score < strong.score
    assert weak.score == pytest.approx(20.0)
    assert any(r.startswith("Missing") for r in weak.reasons)
    assert "No work experience listed (-15)" in weak.reasons
    assert "No education listed (-10)" in weak.reasons


@pytest.mark.parametrize(
    "skills,experience,education,sim",
    list(itertools.product(
        [[], ["TypeScript"], ["TypeScript", "React", "Node.js", "GraphQL", "Docker", "Go"]],
        [False, True],
        [False, True],
        [-1.0, 0.0, 0.42, 1.0, 3.5],
    )),
)
def test_score_is_bounded_with_non_empty_reasons(skills, experience, education, sim):
    job = _job(must=["TypeScript", "React", "Node.js"], nice=["GraphQL", "Docker"], pref=["Go"],
               categories=["Engineering", "Web"])
    c = _candidate(skills, experience, education, categories=["engineering", "web", "data"])
    result = score_match(c, job, sim)

    assert 0 <= result.score <= 100
    assert result.reasons
    assert all(isinstance(r, str) and r for r in result.reasons)


@pytest.mark.parametrize("sim", [0.0, 0.35, 0.7, 1.0])
@pytest.mark.parametrize("experience,education", [(False, False), (True, True), (True, False)])
@pytest.mark.parametrize("missing", [["React"], ["React", "Node.js"], ["TypeScript", "React", "Node.js"]])
def test_missing_must_have_always_scores_lower(sim, experience, education, missing):
    full = ["TypeScript", "React", "Node.js", "GraphQL"]
    partial = [s for s in full if s not in missing]
    job = _job(must=["TypeScript", "React", "Node.js"], nice=["GraphQL"], categories=["web"])

    with_all = score_match(_candidate(full, experience, education, ["web"]), job, sim)
    without = score_match(_candidate(partial, experience, education, ["web"]), job, sim)

    assert without.score < with_all.score
    assert any(r.startswith("Missing") for r in without.reasons)


def test_must_have_penalty_is_proportional():
    job = _job(must=["A", "B", "C", "D"])
    one_missing = score_match(_candidate(["A", "B", "C"], True, True), job, 0.5)
    two_missing = score_match(_candidate(["A", "B"], True, True), job, 0.5)
    # 40 * 1/4 = 10 rule points, weighted 0.4 -> 4 score points per missing skill
    assert one_missing.rule_score == pytest.approx(60.0)
    assert two_missing.rule_score == pytest.approx(50.0)
    assert one_missing.score - two_missing.score == pytest.approx(4.0)


def test_skill_matching_is_case_insensitive():
    result = score_match(_candidate(["typescript", " REACT ", "node.js"]), FULLSTACK, 0.5)
    assert "All required skills present (3/3)" in result.reasons


def test_bonus_reasons_and_caps():
    job = _job(nice=["A", "B", "C", "D", "E"], pref=["F", "G"], categories=["x", "y", "z"])
    c = _candidate(["a", "b", "c", "d", "e", "f", "g"], True, True, categories=["X", "Y", "Z"])
    result = score_match(c, job, 0.0)

    assert "Nice-to-have skill matched: A (+5)" in result.reasons
    assert "Preferable skill matched: G (+2)" in result.reasons
    assert "3 category match(es): x, y, z (+10)" in result.reasons
    # 70 + min(29, 20) + min(15, 10) = 100
    assert result.rule_score == pytest.approx(100.0)
    assert result.score == pytest.approx(40.0)


def test_experience_and_education_presence_are_informational():
    with_both = score_match(_candidate([], True, True), _job(), 0.0)
    assert with_both.rule_score == pytest.approx(70.0)
    assert not any("(-" in r for r in with_both.reasons)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf, "high", None])
def test_non_finite_similarity_is_rejected(bad):
    with pytest.raises(InputValidationError):
        score_match(_candidate([]), FULLSTACK, bad)


def test_similarity_is_clamped():
    c = _candidate(["TypeScript", "React", "Node.js"], True, True)
    assert score_match(c, FULLSTACK, 1.7).score == score_match(c, FULLSTACK, 1.0).score
    assert score_match(c, FULLSTACK, -0.4).score == score_match(c, FULLSTACK, 0.0).score


def test_unknown_requirement_priority_is_rejected():
    with pytest.raises(InputValidationError):
        Requirement("Python", "critical")


def test_string_years_and_is_present_from_stored_profiles():
    c = CandidateProfileData.from_row({
        "id": "cand-2",
        "skills": ["React"],
        "work_history": [
            {"position": "Frontend Dev", "company": "Acme", "start_year": "2019", "end_year": "", "is_present": True},
            {"title": "Intern", "company": "Beta", "start_year": "2017", "end_year": "2018"},
            {"title": "Volunteer", "start_year": "n/a", "end_year": None},
        ],
        "education": [{"institution": "State University", "graduation_year": ""}],
    })
    current, intern, volunteer = c.work_history
    assert current.start_year == 2019 and current.end_year is None and current.is_current is True
    assert (intern.start_year, intern.end_year, intern.is_current) == (2017, 2018, False)
    assert volunteer.years == 0.0
    assert c.education[0].graduation_year is None
    assert c.experience_years == current.years + 1.0

    result = score_match(c, _job(must=["React"]), 0.8)
    assert any(r.startswith("Experience: 3 position(s)") for r in result.reasons)
