# backend/automatch/pipeline/orchestrator.py
"""
Glue for one matching run.

Stages:
  1) embeddings.generate_missing_embeddings  → vectors for new candidates / open jobs
  2) per open job: ledger.needs_evaluation → score.score_match → ledger upsert
     → auto_apply decision → optional application write
  3) RunRecord completion (counts, first N errors, metrics)

Public entry:
  run_matching(options=None) -> RunSummary
  run_with_retry(options=None, max_attempts=None, base_delay_seconds=None) -> RunSummary

Each (candidate, job) pair commits on its own session; one failed pair is
rolled back and recorded without stopping the run. Any error outside the pair loop
(ConfigurationError, a store error, anything unexpected) marks the run failed;
the RunRecord is finalised either way.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import merge_options
from ..core.embeddings import Embedder, cosine_sim, get_embedder
from ..core.errors import ConfigurationError, InputValidationError, ItemProcessingError
from ..core.profiles import CandidateProfileData, JobPostingData
from ..core.utils import now_utc
from ..db import crud
from ..db.models import RunRecord
from ..db.session import get_session_factory, session_scope
from .auto_apply import AutoApplyGate, SubmissionThrottle
from .embeddings import generate_missing_embeddings
from .index import SimilarityIndex
from .ledger import EvaluationLedger
from .score import score_match
from .state import RunState, RunSummary

logger = logging.getLogger(__name__)


# ---------------- per pair ----------------

def _evaluate_pair(
    factory: sessionmaker[Session],
    job: JobPostingData,
    job_vector: List[float],
    candidate_id: str,
    opts: Dict[str, Any],
    state: RunState,
    throttle: SubmissionThrottle,
) -> None:
    session = factory()
    try:
        cvec = SimilarityIndex(session).get_vector("candidate", candidate_id)
        if cvec is None:
            # no ledger write: the pair stays pending until the vector exists
            logger.debug("Candidate %s has no embedding yet; pair with job %s deferred", candidate_id, job.id)
            return

        row = crud.get_candidate(session, candidate_id)
        if row is None:
            raise ItemProcessingError("Candidate not found", entity_id=candidate_id, stage="match")
        candidate = CandidateProfileData.from_row(row)

        sim = cosine_sim(cvec, job_vector)
        result = score_match(candidate, job, sim)
        match_found = sim >= opts["similarity_threshold"]
        EvaluationLedger(session).mark_evaluated(
            candidate_id, job.id, match_found, score=result.score, similarity=sim
        )

        decision = None
        if match_found:
            gate = AutoApplyGate(session, throttle)
            decision = gate.decide(candidate_id, job.id, result.score)
            if decision.submit:
                decision = gate.submit(candidate_id, job.id, result.score, result.reasons)
        session.commit()
    except ConfigurationError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        err = e if isinstance(e, ItemProcessingError) else ItemProcessingError(
            str(e), entity_id=f"{candidate_id}/{job.id}", stage="evaluate"
        )
        logger.warning("Pair skipped: %s", err)
        state.record_error(str(err))
        return
    finally:
        session.close()

    state.record_evaluation(result.score, sim, match_found)
    if decision is not None:
        if decision.submit:
            state.record_submitted()
        else:
            state.record_skipped(decision.reason)
    logger.debug("Evaluated %s vs %s: score=%s sim=%.3f match=%s", candidate_id, job.id, result.score, sim, match_found)


# ---------------- per job ----------------

def _process_job(
    factory: sessionmaker[Session],
    job_id: str,
    opts: Dict[str, Any],
    state: RunState,
    throttle: SubmissionThrottle,
) -> None:
    with factory() as session:
        job_vector = SimilarityIndex(session).get_vector("job", job_id)
        if job_vector is None:
            err = ItemProcessingError("Job has no embedding", entity_id=job_id, stage="match")
            logger.warning("Job skipped: %s", err)
            state.record_error(str(err))
            return
        job = JobPostingData.from_row(crud.get_job(session, job_id))
        candidate_ids = EvaluationLedger(session).needs_evaluation(
            job_id, opts["candidates_per_job"], embedded_only=True
        )

    logger.info("Job %s (%s): %d candidate(s) to evaluate", job_id, job.title, len(candidate_ids))
    workers = opts["eval_workers"]
    if workers <= 1 or len(candidate_ids) <= 1:
        for cid in candidate_ids:
            _evaluate_pair(factory, job, job_vector, cid, opts, state, throttle)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_evaluate_pair, factory, job, job_vector, cid, opts, state, throttle)
                for cid in candidate_ids
            ]
            for future in as_completed(futures):
                future.result()
    state.record_job()


# ---------------- run ----------------

def _complete_run(session: Session, summary: RunSummary) -> None:
    row = session.get(RunRecord, summary.run_id)
    if row is None:
        return
    row.status = summary.status
    row.total_candidates_evaluated = summary.candidates_evaluated
    row.total_matches_found = summary.matches_found
    row.total_applications_submitted = summary.applications_submitted
    row.total_applications_skipped = summary.applications_skipped
    row.jobs_processed = summary.jobs_processed
    row.failed_items = summary.failures
    row.error_summary = list(summary.errors)
    row.metrics = dict(summary.metrics)
    row.completed_at = summary.completed_at


def run_matching(
    options: Optional[Dict[str, Any]] = None,
    *,
    session_factory: Optional[sessionmaker[Session]] = None,
    embedder: Optional[Embedder] = None,
    sleep: Callable[[float], None] = time.sleep,
    attempt: int = 1,
) -> RunSummary:
    """
    One bounded matching run. Always returns a summary; status is "failed"
    when the run aborted on a configuration or store error.
    """
    opts = merge_options(options)

    try:
        factory = session_factory or get_session_factory()
        with session_scope(factory) as s:
            run_id = crud.create_run(s, attempt=attempt).id
    except (ConfigurationError, SQLAlchemyError) as e:
        logger.error("Run could not start: %s", e)
        return RunSummary(run_id=None, status="failed", attempt=attempt, failures=1,
                          errors=[f"Fatal: {e}"], started_at=now_utc(), completed_at=now_utc())

    state = RunState(run_id=run_id, attempt=attempt, max_errors=opts["max_errors_in_summary"])
    throttle = SubmissionThrottle(opts["submission_delay_seconds"], sleep=sleep)
    status = "completed"
    logger.info("Run %s started (attempt %d)", run_id, attempt)

    try:
        embedder = embedder or get_embedder(opts["embedding_model"])
        check = getattr(embedder, "check", None)
        if callable(check):
            check()

        with factory() as session:
            batch = generate_missing_embeddings(
                session, embedder, batch_size=opts["embedding_batch_size"], workers=opts["embed_workers"]
            )
            job_ids = [j.id for j in crud.list_open_jobs(session, opts["jobs_per_run"])]
        state.embeddings_generated = batch.generated
        for msg in batch.errors:
            state.record_error(msg)

        for job_id in job_ids:
            _process_job(factory, job_id, opts, state, throttle)
    except (ConfigurationError, SQLAlchemyError) as e:
        status = "failed"
        logger.error("Run %s aborted: %s", run_id, e)
        state.record_error(f"Fatal: {e}")
    except Exception as e:
        status = "failed"
        logger.exception("Run %s aborted by an unexpected error", run_id)
        state.record_error(f"Fatal: {type(e).__name__}: {e}")

    summary = state.summary(status, completed_at=now_utc())
    try:
        with session_scope(factory) as s:
            _complete_run(s, summary)
    except SQLAlchemyError as e:
        logger.error("Run %s could not be finalized: %s", run_id, e)
        summary.status = "failed"
        summary.errors.append(f"Fatal: {e}")

    logger.info(
        "Run %s %s: jobs=%d evaluated=%d matches=%d submitted=%d skipped=%d failures=%d",
        run_id, summary.status, summary.jobs_processed, summary.candidates_evaluated,
        summary.matches_found, summary.applications_submitted, summary.applications_skipped,
        summary.failures,
    )
    return summary


def run_with_retry(
    options: Optional[Dict[str, Any]] = None,
    max_attempts: Optional[int] = None,
    base_delay_seconds: Optional[float] = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    **run_kwargs: Any,
) -> RunSummary:
    """
    Re-run only failed runs, waiting base * 2^(attempt-1) between attempts.
    Returns the last attempted summary.
    """
    opts = merge_options(options)
    attempts = opts["retry_attempts"] if max_attempts is None else max_attempts
    base = opts["retry_base_delay_seconds"] if base_delay_seconds is None else base_delay_seconds
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
        raise InputValidationError(f"max_attempts must be an integer >= 1, got {attempts!r}")
    if base < 0:
        raise InputValidationError(f"base_delay_seconds must be >= 0, got {base!r}")

    attempt = 1
    summary = run_matching(options, attempt=attempt, **run_kwargs)
    while summary.failed and attempt < attempts:
        delay = base * (2 ** (attempt - 1))
        logger.warning("Run attempt %d failed; retrying in %.1fs", attempt, delay)
        sleep(delay)
        attempt += 1
        summary = run_matching(options, attempt=attempt, **run_kwargs)
    return summary


__all__ = ["run_matching", "run_with_retry"]
