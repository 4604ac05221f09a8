import pytest
from fastapi.testclient import TestClient

from automatch import main

from conftest import EDUCATION, EXPERIENCE, FakeEmbedder, add_candidate, add_job, must_have, set_vector


@pytest.fixture
def client(factory):
    main.app.dependency_overrides[main.get_factory] = lambda: factory
    main.app.dependency_overrides[main.get_embedder_override] = lambda: FakeEmbedder()
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def candidate(session):
    c = add_candidate(session, name="Ada", skills=["Python"])
    session.commit()
    return c


def test_health(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_preferences_default_then_update(client, candidate):
    url = f"/api/v1/candidates/{candidate.id}/preferences"
    r = client.get(url)
    assert r.status_code == 200
    assert r.json() == {
        "candidateId": candidate.id,
        "autoApplyEnabled": True,
        "minScoreThreshold": 70.0,
        "maxApplicationsPerDay": 5,
    }

    r = client.put(url, json={"minScoreThreshold": 85, "maxApplicationsPerDay": 2})
    assert r.status_code == 200
    assert r.json()["minScoreThreshold"] == 85.0
    assert r.json()["autoApplyEnabled"] is True

    r = client.put(url, json={"autoApplyEnabled": False})
    body = client.get(url).json()
    assert body["autoApplyEnabled"] is False
    assert body["maxApplicationsPerDay"] == 2


@pytest.mark.parametrize("payload", [
    {"minScoreThreshold": 150},
    {"minScoreThreshold": -5},
    {"maxApplicationsPerDay": -1},
])
def test_invalid_preferences_are_rejected(client, candidate, payload):
    r = client.put(f"/api/v1/candidates/{candidate.id}/preferences", json=payload)
    assert r.status_code == 400


@pytest.mark.parametrize("payload", [
    {"minScoreThreshold": True},
    {"minScoreThreshold": "85"},
    {"maxApplicationsPerDay": "3"},
    {"autoApplyEnabled": "yes"},
])
def test_wrongly_typed_preferences_are_not_coerced(client, candidate, payload):
    url = f"/api/v1/candidates/{candidate.id}/preferences"
    r = client.put(url, json=payload)
    assert r.status_code == 422
    assert client.get(url).json()["minScoreThreshold"] == 70.0


def test_fractional_threshold_is_accepted(client, candidate):
    r = client.put(f"/api/v1/candidates/{candidate.id}/preferences", json={"minScoreThreshold": 72.5})
    assert r.status_code == 200
    assert r.json()["minScoreThreshold"] == 72.5


def test_preferences_for_unknown_candidate(client):
    assert client.get("/api/v1/candidates/nope/preferences").status_code == 404


def test_trigger_run_and_fetch_it(client, session):
    job = add_job(session, title="Backend Engineer", requirements=must_have("Python"))
    c = add_candidate(session, name="Ada", skills=["Python"], work_history=EXPERIENCE, education=EDUCATION)
    set_vector(session, "job", job.id, [1.0, 0.0])
    set_vector(session, "candidate", c.id, [1.0, 0.0])
    session.commit()

    r = client.post("/api/v1/runs", json={"jobs": 5, "candidatesPerJob": 10})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "completed"
    assert body["matchesFound"] == 1
    assert body["applicationsSubmitted"] == 1
    assert body["jobsProcessed"] == 1
    assert body["errors"] == []

    r = client.get(f"/api/v1/runs/{body['runId']}")
    assert r.status_code == 200
    assert r.json()["applicationsSubmitted"] == 1

    stats = client.get("/api/v1/evaluations/stats").json()
    assert stats["totalEvaluations"] == 1
    assert stats["totalMatches"] == 1


def test_trigger_run_with_bad_option(client):
    r = client.post("/api/v1/runs", json={"jobs": -1})
    assert r.status_code == 400


def test_unknown_run_is_404(client):
    assert client.get("/api/v1/runs/does-not-exist").status_code == 404
