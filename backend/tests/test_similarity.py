import math

import pytest

from automatch.core.embeddings import cosine_sim
from automatch.core.errors import InputValidationError
from automatch.pipeline.index import SearchFilters, SimilarityIndex

from conftest import add_candidate, add_job, set_vector


@pytest.mark.parametrize("v", [[1.0, 0.0, 0.0], [0.6, 0.8], [0.5, 0.5, 0.5, 0.5]])
def test_cosine_of_unit_vector_with_itself_is_one(v):
    assert cosine_sim(v, v) == pytest.approx(1.0)


@pytest.mark.parametrize("a,b", [([0, 0, 0], [1, 2, 3]), ([1, 2, 3], [0, 0, 0]), ([0.0], [0.0])])
def test_cosine_with_zero_magnitude_is_zero(a, b):
    assert cosine_sim(a, b) == 0.0


def test_cosine_rejects_mismatched_lengths():
    with pytest.raises(InputValidationError):
        cosine_sim([1.0, 0.0], [1.0, 0.0, 0.0])


def test_cosine_orthogonal_and_opposite():
    assert cosine_sim([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_sim([1, 0], [-1, 0]) == pytest.approx(-1.0)


def test_upsert_replaces_prior_vector(session):
    c = add_candidate(session)
    index = SimilarityIndex(session)
    index.upsert_embedding("candidate", c.id, [1.0, 0.0], {"skills": ["python"]})
    index.upsert_embedding("candidate", c.id, [0.0, 1.0], {"skills": ["go"]})
    session.commit()

    assert index.get_vector("candidate", c.id) == [0.0, 1.0]
    assert index.get_metadata("candidate", c.id) == {"skills": ["go"]}


@pytest.mark.parametrize("bad", [[], [1.0, math.nan], [math.inf], ["x", 1.0]])
def test_upsert_rejects_invalid_vectors(session, bad):
    c = add_candidate(session)
    with pytest.raises(InputValidationError):
        SimilarityIndex(session).upsert_embedding("candidate", c.id, bad)


def test_search_candidates_ranked_strict_threshold_and_limit(session):
    a = add_candidate(session, name="A")
    b = add_candidate(session, name="B")
    c = add_candidate(session, name="C")
    d = add_candidate(session, name="D")
    set_vector(session, "candidate", a.id, [1.0, 0.0])
    set_vector(session, "candidate", b.id, [0.8, 0.6])       # 0.8
    set_vector(session, "candidate", c.id, [0.6, 0.8])       # 0.6
    set_vector(session, "candidate", d.id, [0.0, 1.0])       # 0.0
    session.commit()

    index = SimilarityIndex(session)
    hits = index.search_candidates([1.0, 0.0], min_similarity=0.5, limit=10)
    assert [h.entity_id for h in hits] == [a.id, b.id, c.id]
    assert hits[0].similarity == pytest.approx(1.0)

    # strictly greater than the threshold: an exact 1.0 match is excluded at 1.0
    assert index.search_candidates([1.0, 0.0], min_similarity=1.0, limit=10) == []

    hits = index.search_candidates([1.0, 0.0], min_similarity=0.0, limit=2)
    assert [h.entity_id for h in hits] == [a.id, b.id]


def test_search_filters_apply_before_truncation(session):
    top = add_candidate(session, name="Top")
    junior = add_candidate(session, name="Junior")
    set_vector(session, "candidate", top.id, [1.0, 0.0],
               {"skills": ["Go"], "location": "Berlin, Germany", "experience_years": 1})
    set_vector(session, "candidate", junior.id, [0.9, 0.1],
               {"skills": ["Python", "SQL"], "location": "Berlin, Germany", "experience_years": 3})
    session.commit()

    filters = SearchFilters(required_skills=["python"], locations=["berlin"], min_experience_years=2)
    hits = SimilarityIndex(session).search_candidates([1.0, 0.0], min_similarity=0.1, limit=1, filters=filters)
    assert [h.entity_id for h in hits] == [junior.id]


def test_search_filters_experience_range_and_location():
    f = SearchFilters(min_experience_years=2, max_experience_years=5, locations=["remote"])
    assert f.matches({"experience_years": 3, "location": "Remote (EU)"})
    assert not f.matches({"experience_years": 6, "location": "Remote"})
    assert not f.matches({"experience_years": 3, "location": "Paris"})
    assert not f.matches({"location": "Remote"})


def test_search_jobs_only_open_postings(session):
    open_job = add_job(session, title="Open")
    closed_job = add_job(session, title="Closed", status="closed")
    set_vector(session, "job", open_job.id, [1.0, 0.0])
    set_vector(session, "job", closed_job.id, [1.0, 0.0])
    session.commit()

    hits = SimilarityIndex(session).search_jobs([1.0, 0.0], min_similarity=0.5, limit=10)
    assert [h.entity_id for h in hits] == [open_job.id]


def test_search_skips_vectors_of_other_dimensions(session):
    a = add_candidate(session)
    b = add_candidate(session)
    set_vector(session, "candidate", a.id, [1.0, 0.0])
    set_vector(session, "candidate", b.id, [1.0, 0.0, 0.0])
    session.commit()

    hits = SimilarityIndex(session).search_candidates([1.0, 0.0], min_similarity=0.5, limit=10)
    assert [h.entity_id for h in hits] == [a.id]


def test_delete_embedding(session):
    j = add_job(session)
    set_vector(session, "job", j.id, [1.0])
    index = SimilarityIndex(session)
    assert index.delete_embedding("job", j.id) == 1
    assert index.get_vector("job", j.id) is None
    assert index.delete_embedding("job", j.id) == 0
