import inspect
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAIService, FakeNewsClient
from exam_prep.core.config import config
from exam_prep.core.exceptions import StorageError, UpstreamRateLimited, UpstreamPaymentRequired
from exam_prep.main import app
from exam_prep.services import session_service
from exam_prep.services.generation_service import GenerationService, get_generation_service

USER = {"X-User-Id": "user-1"}
OTHER = {"X-User-Id": "user-2"}
ADMIN = {"X-User-Id": "admin-1"}

QUESTION = {
    "question_text": "Which river is called the Sorrow of Bihar?",
    "option_a": "Kosi",
    "option_b": "Gandak",
    "option_c": "Son",
    "option_d": "Ganga",
    "correct_answer": "a",
    "explanation": "The **Kosi** changes course frequently."
}


@pytest.fixture
def ai():
    return FakeAIService()


@pytest.fixture
def client(db_manager, ai, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_USER_IDS", ["admin-1"])
    monkeypatch.setattr(session_service, "_session_engine", None)
    app.dependency_overrides[get_generation_service] = lambda: GenerationService(
        db_manager, ai, FakeNewsClient()
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def start(client, source_id, kind="test", headers=USER):
    response = client.post("/api/sessions", json={"source_id": source_id, "kind": kind}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestSessionRoutes:
    def test_requires_user_header(self, client, seed_test):
        response = client.post("/api/sessions", json={"source_id": seed_test(), "kind": "test"})

        assert response.status_code == 403
        assert response.json()["type"] == "forbidden_error"

    def test_full_flow(self, client, seed_test):
        view = start(client, seed_test(("a", "b", "c")))
        attempt_id = view["attempt_id"]
        question_ids = [entry["question_id"] for entry in view["palette"]]

        assert view["state"] == "in_progress"
        assert view["total_questions"] == 3
        assert "correct_answer" not in view["current_question"]

        for question_id, option in zip(question_ids, ["a", "b", "d"]):
            response = client.put(f"/api/sessions/{attempt_id}/answers",
                                  json={"question_id": question_id, "option": option}, headers=USER)
            assert response.status_code == 200

        marked = client.post(f"/api/sessions/{attempt_id}/marks/{question_ids[2]}", headers=USER)
        assert marked.json() == {"question_id": question_ids[2], "marked": True}

        moved = client.post(f"/api/sessions/{attempt_id}/navigate", json={"index": 10}, headers=USER)
        assert moved.json()["current_index"] == 2
        assert moved.json()["palette"][2]["status"] == "answered-marked"

        submitted = client.post(f"/api/sessions/{attempt_id}/submit", headers=USER)
        assert submitted.status_code == 200
        assert submitted.json()["score"] == 67

        result = client.get(f"/api/results/{attempt_id}", headers=USER)
        assert result.status_code == 200
        assert result.json()["correct_answers"] == 2
        assert result.json()["rank"] == 1

        pdf = client.get(f"/api/results/{attempt_id}/pdf", headers=USER)
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"

        history = client.get("/api/history", headers=USER)
        assert history.json()["count"] == 1

    def test_other_user_cannot_read_result(self, client, seed_test):
        attempt_id = start(client, seed_test())["attempt_id"]
        client.post(f"/api/sessions/{attempt_id}/submit", headers=USER)

        assert client.get(f"/api/results/{attempt_id}", headers=OTHER).status_code == 403
        assert client.get(f"/api/sessions/{attempt_id}", headers=OTHER).status_code == 403

    def test_unknown_ids(self, client):
        assert client.get("/api/results/missing", headers=USER).status_code == 404
        response = client.post("/api/sessions", json={"source_id": "missing", "kind": "paper"}, headers=USER)
        assert response.status_code == 404

    def test_empty_question_set(self, client, db_manager):
        test = db_manager.create_test_with_questions({"title": "Empty", "duration_minutes": 5}, [])

        response = client.post("/api/sessions", json={"source_id": test["id"], "kind": "test"}, headers=USER)

        assert response.status_code == 422
        assert response.json()["type"] == "empty_question_set"

    def test_validation_errors(self, client, seed_test):
        view = start(client, seed_test())
        question_id = view["palette"][0]["question_id"]

        bad_option = client.put(f"/api/sessions/{view['attempt_id']}/answers",
                                json={"question_id": question_id, "option": "e"}, headers=USER)
        bad_kind = client.post("/api/sessions", json={"source_id": "x", "kind": "quiz"}, headers=USER)

        assert bad_option.status_code == 400
        assert bad_kind.status_code == 400

    def test_submit_failure_is_retryable(self, client, seed_test, db_manager, monkeypatch):
        attempt_id = start(client, seed_test())["attempt_id"]

        def failing_finalize(attempt_id, rows, stats):
            raise StorageError("primary stepped down")

        monkeypatch.setattr(db_manager, "finalize_attempt", failing_finalize)
        response = client.post(f"/api/sessions/{attempt_id}/submit", headers=USER)

        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert client.get(f"/api/sessions/{attempt_id}", headers=USER).json()["state"] == "submit_failed"


class TestFunctionRoutes:
    def test_blocking_routes_run_in_threadpool(self):
        blocking = {"/api/functions/fetch-news", "/api/functions/generate-test", "/api/results/{attempt_id}/pdf"}
        endpoints = [route.endpoint for route in app.routes if getattr(route, "path", None) in blocking]

        assert len(endpoints) == 3
        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)

    def test_generate_test_requires_admin(self, client):
        response = client.post("/api/functions/generate-test", json={"subject": "Polity"}, headers=USER)
        assert response.status_code == 403

    def test_generate_test(self, client, ai):
        ai.responses.append(json.dumps([QUESTION]))

        response = client.post("/api/functions/generate-test", headers=ADMIN, json={
            "subject": "Geography", "difficulty": "Easy", "questionsCount": 1,
            "examType": "SSC", "language": "english"
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["questionsCount"] == 1

        tests = client.get("/api/tests").json()
        assert tests["tests"][0]["id"] == body["testId"]
        assert tests["tests"][0]["duration_minutes"] == 2

    @pytest.mark.parametrize("error, status", [
        (UpstreamRateLimited(), 429),
        (UpstreamPaymentRequired(), 402),
    ])
    def test_upstream_errors_are_distinct(self, client, ai, error, status):
        ai.error = error

        response = client.post("/api/functions/generate-test", headers=ADMIN,
                               json={"subject": "Polity", "questionsCount": 5})

        assert response.status_code == status
        assert response.json()["message"] == error.message

    def test_generation_failure(self, client, ai):
        ai.responses.append("not json at all")

        response = client.post("/api/functions/generate-test", headers=ADMIN,
                               json={"subject": "Polity", "questionsCount": 5})

        assert response.status_code == 502
        assert response.json()["type"] == "generation_failed"

    def test_fetch_news_without_key(self, client, no_env_keys):
        response = client.post("/api/functions/fetch-news", json={"language": "english"}, headers=ADMIN)

        assert response.status_code == 500
        assert response.json()["type"] == "config_error"

    def test_fetch_news(self, client, ai, db_manager):
        db_manager.set_setting(config.NEWS_API_KEY_SETTING, "news-key")
        ai.responses.append(json.dumps([{"title": "New Governor appointed", "description": "d"}]))

        response = client.post("/api/functions/fetch-news", json={"language": "hindi"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["articlesCount"] == 1
        assert response.json()["source"] == "fallback"


class TestAdminRoutes:
    def test_import_paper(self, client):
        csv_text = "q,a,b,c,d,correct,explanation\nCapital of Assam?,Dispur,Guwahati,Shillong,Tezpur,a,\n"

        response = client.post(
            "/api/admin/papers/import",
            params={"exam_type": "APSC", "paper_name": "APSC Prelims 2018", "year": 2018},
            content=csv_text.encode("utf-8"),
            headers=dict(ADMIN, **{"Content-Type": "text/csv"})
        )

        assert response.status_code == 200
        assert response.json()["questionsCount"] == 1
        papers = client.get("/api/papers", params={"exam_type": "APSC"}).json()
        assert papers["count"] == 1
        assert papers["papers"][0]["name"] == "APSC Prelims 2018"

    def test_import_rejects_bad_row(self, client):
        response = client.post(
            "/api/admin/papers/import",
            params={"exam_type": "APSC", "paper_name": "Broken", "year": 2018},
            content=b"q,a,b,c,d,correct\nQ?,1,2,3,4,z\n",
            headers=ADMIN
        )

        assert response.status_code == 400
        assert "Line 2" in response.json()["message"]

    def test_set_provider_key(self, client, db_manager):
        response = client.put("/api/admin/settings/LLM_API_KEY", json={"value": "gsk-123"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["configured"] is True
        assert db_manager.get_setting("LLM_API_KEY") == "gsk-123"

    def test_settings_require_admin(self, client):
        response = client.put("/api/admin/settings/LLM_API_KEY", json={"value": "x"}, headers=USER)
        assert response.status_code == 403


class TestServiceRoutes:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "healthy"

    def test_info(self, client):
        assert client.get("/info").json()["name"] == config.API_TITLE
