# backend/tests/conftest.py
from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

import pytest

from automatch.db import crud
from automatch.db.session import ensure_tables, make_engine, make_session_factory
from automatch.pipeline.index import SimilarityIndex


class FakeEmbedder:
    """
    Deterministic embedder: the first key found in the text picks the vector.
    Texts containing a key listed in `fail_on` raise RuntimeError.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Sequence[float] = (0.0, 0.0, 1.0),
        fail_on: Sequence[str] = (),
    ):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.fail_on = list(fail_on)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls.append(text)
        for key in self.fail_on:
            if key in text:
                raise RuntimeError(f"provider rejected text containing {key!r}")
        for key, vec in self.vectors.items():
            if key in text:
                return list(vec)
        return list(self.default)


@pytest.fixture
def engine():
    eng = make_engine("sqlite:///:memory:", echo=False)
    ensure_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(factory):
    s = factory()
    yield s
    s.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


# ---- builders ----

EXPERIENCE = [{"title": "Engineer", "company": "Acme", "start_year": 2018, "end_year": 2022}]
EDUCATION = [{"institution": "State University", "degree": "BSc", "field_of_study": "Computer Science"}]


def add_candidate(session, **fields):
    fields.setdefault("name", "Test Candidate")
    fields.setdefault("skills", [])
    return crud.create_candidate(session, **fields)


def add_job(session, **fields):
    fields.setdefault("title", "Software Engineer")
    fields.setdefault("requirements", [])
    return crud.create_job(session, **fields)


def must_have(*names):
    return [{"name": n, "priority": "must_have"} for n in names]


def set_vector(session, kind, entity_id, vector, metadata=None):
    SimilarityIndex(session).upsert_embedding(kind, entity_id, vector, metadata or {})
