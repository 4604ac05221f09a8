from sqlalchemy import func, select

from automatch.db.models import EvaluationRecord
from automatch.pipeline.ledger import EvaluationLedger

from conftest import add_candidate, add_job, set_vector


def _count(session, **where):
    q = select(func.count(EvaluationRecord.id))
    for k, v in where.items():
        q = q.where(getattr(EvaluationRecord, k) == v)
    return session.execute(q).scalar_one()


def test_mark_evaluated_twice_keeps_one_record_with_latest_values(session):
    c = add_candidate(session)
    j = add_job(session)
    ledger = EvaluationLedger(session)

    ledger.mark_evaluated(c.id, j.id, match_found=False, score=41.5, similarity=0.3)
    session.commit()
    first = ledger.get(c.id, j.id)
    first_at = first.evaluated_at

    ledger.mark_evaluated(c.id, j.id, match_found=True, score=88.0, similarity=0.91)
    session.commit()

    assert _count(session, candidate_id=c.id, job_posting_id=j.id) == 1
    rec = ledger.get(c.id, j.id)
    assert rec.match_found is True
    assert rec.match_score == 88.0
    assert rec.embedding_similarity == 0.91
    assert rec.evaluated_at >= first_at


def test_mark_evaluated_without_score(session):
    c = add_candidate(session)
    j = add_job(session)
    ledger = EvaluationLedger(session)
    ledger.mark_evaluated(c.id, j.id, match_found=False)
    rec = ledger.get(c.id, j.id)
    assert rec.match_score is None
    assert rec.embedding_similarity is None


def test_needs_evaluation_is_an_anti_join_bounded_by_limit(session):
    j = add_job(session)
    other = add_job(session, title="Other")
    cands = [add_candidate(session, name=f"c{i}") for i in range(4)]
    ledger = EvaluationLedger(session)
    ledger.mark_evaluated(cands[0].id, j.id, match_found=True, score=80.0, similarity=0.8)
    ledger.mark_evaluated(cands[1].id, other.id, match_found=False)
    session.commit()

    pending = ledger.needs_evaluation(j.id, limit=10)
    assert set(pending) == {cands[1].id, cands[2].id, cands[3].id}
    assert len(ledger.needs_evaluation(j.id, limit=2)) == 2
    assert ledger.needs_evaluation(j.id, limit=0) == []


def test_needs_evaluation_can_skip_candidates_without_vectors(session):
    j = add_job(session)
    unembedded = [add_candidate(session, name=f"u{i}") for i in range(3)]
    embedded = add_candidate(session, name="e")
    set_vector(session, "candidate", embedded.id, [1.0, 0.0])
    session.commit()

    ledger = EvaluationLedger(session)
    assert ledger.needs_evaluation(j.id, limit=1, embedded_only=True) == [embedded.id]
    assert len(ledger.needs_evaluation(j.id, limit=10)) == len(unembedded) + 1


def test_invalidate_candidate_removes_every_record_for_that_candidate(session):
    c = add_candidate(session)
    keep = add_candidate(session)
    jobs = [add_job(session, title=f"job {i}") for i in range(5)]
    ledger = EvaluationLedger(session)
    for j in jobs:
        ledger.mark_evaluated(c.id, j.id, match_found=True, score=75.0, similarity=0.8)
        ledger.mark_evaluated(keep.id, j.id, match_found=False)
    session.commit()

    assert ledger.invalidate_candidate(c.id) == 5
    session.commit()
    assert _count(session, candidate_id=c.id) == 0
    assert _count(session, candidate_id=keep.id) == 5
    assert set(ledger.needs_evaluation(jobs[0].id, limit=10)) == {c.id}


def test_invalidate_job(session):
    j = add_job(session)
    cands = [add_candidate(session) for _ in range(3)]
    ledger = EvaluationLedger(session)
    for c in cands:
        ledger.mark_evaluated(c.id, j.id, match_found=False)
    assert ledger.invalidate_job(j.id) == 3
    assert _count(session, job_posting_id=j.id) == 0


def test_stats(session):
    a, b = add_candidate(session), add_candidate(session)
    j1, j2 = add_job(session), add_job(session)
    ledger = EvaluationLedger(session)
    ledger.mark_evaluated(a.id, j1.id, True, 80.0, 0.8)
    ledger.mark_evaluated(a.id, j2.id, True, 90.0, 0.9)
    ledger.mark_evaluated(b.id, j1.id, False, 40.0, 0.2)
    session.commit()

    stats = ledger.stats()
    assert stats.total_evaluations == 3
    assert stats.total_matches == 2
    assert stats.average_score == 70.0
    assert stats.candidates_with_matches == 1
    assert stats.jobs_with_evaluations == 2
    assert stats.to_dict()["totalMatches"] == 2


def test_stats_on_empty_ledger(session):
    stats = EvaluationLedger(session).stats()
    assert stats.total_evaluations == 0
    assert stats.average_score is None
