import pytest
from fastapi.testclient import TestClient

from flashquest import main
from flashquest.config import settings
from flashquest.redis_session import SessionStore


@pytest.fixture
def client(fake_redis, deck_manager, monkeypatch):
    monkeypatch.setattr(settings, "COUNTDOWN_INTERVAL", 0)
    main.app.dependency_overrides[main.get_store] = lambda: SessionStore(fake_redis)
    main.app.dependency_overrides[main.get_deck_manager] = lambda: deck_manager
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def started(client):
    response = client.post("/api/session", json={"deck_indices": [0]})
    assert response.status_code == 200
    client.post("/api/settings", json={"shuffle": False})
    return client


def current_answer(client, deck_manager):
    index = client.get("/api/question").json()["index"]
    questions, _ = deck_manager.combine([0])
    return questions[index].accepted_answers[-1]


def test_list_decks(client):
    response = client.get("/api/decks")
    assert [d["name"] for d in response.json()] == ["animals", "numbers"]


def test_requests_without_session_are_rejected(client):
    assert client.get("/api/question").status_code == 401
    assert client.post("/api/answer", json={"answer": "dog"}).status_code == 401


def test_start_session_sets_cookie(client, fake_redis):
    response = client.post("/api/session", json={"deck_indices": [0, 1]})
    assert settings.SESSION_COOKIE_NAME in response.cookies
    assert len(fake_redis.data) == 1
    assert response.json()["question"]["text"]


def test_unknown_deck_is_an_error(client):
    response = client.post("/api/session", json={"deck_indices": [9]})
    assert response.status_code == 400
    assert "Unknown deck" in response.json()["error"]


def test_answer_flow(started):
    assert started.get("/api/question").json()["text"] == "犬"
    assert started.post("/api/answer", json={"answer": "cat"}).json()["feedback"] == "incorrect"
    assert started.post("/api/answer", json={"answer": "Dog"}).json()["feedback"] == "correct"
    assert started.post("/api/answer", json={"answer": ""}).json()["feedback"] == "skipped"

    progress = started.get("/api/progress").json()
    assert progress["review"]["correct"] == 1
    assert progress["review"]["skipped"] == 1
    assert progress["conquest"] is None


def test_invalid_block_size(started):
    response = started.post("/api/settings", json={"block_size": 7})
    assert response.status_code == 400


def test_range_navigation(started):
    started.post("/api/settings", json={"block_size": 25})
    response = started.post("/api/range/next")
    assert response.json()["range"]["label"] == "1–6"
    assert started.post("/api/range/sideways").status_code == 404


def test_review_skipped_in_choice_mode(started, deck_manager):
    started.post("/api/settings", json={"choice_mode": True})
    questions, _ = deck_manager.combine([0])
    for _ in range(3):
        view = started.get("/api/question").json()
        choice = view["choices"].index(questions[view["index"]].answers) + 1
        assert started.post("/api/answer", json={"answer": str(choice)}).json()["feedback"] == "correct"

    response = started.post("/api/range/review-skipped")
    assert response.status_code == 200
    assert response.json()["question"]["text"] == "魚"
    assert response.json()["question"]["choices"] == []
    assert started.get("/api/question").status_code == 200


def test_deck_cycling(started):
    response = started.post("/api/deck/next")
    assert response.json()["deck_indices"] == [1]
    assert response.json()["question"]["text"] == "一"
    assert started.post("/api/deck/prev").json()["deck_indices"] == [0]
    assert started.post("/api/deck/reset").json()["deck_indices"] == [0]
    assert started.post("/api/deck/sideways").status_code == 404


def test_deck_cycling_refused_for_multiple_decks(client):
    client.post("/api/session", json={"deck_indices": [0, 1]})
    response = client.post("/api/deck/next")
    assert response.status_code == 400
    assert "Multi-deck" in response.json()["error"]


def test_settings_without_conquest_fields_during_run(started):
    started.post("/api/conquest")
    response = started.post("/api/settings", json={})
    assert response.status_code == 200
    assert started.post("/api/settings", json={"threshold": 50}).status_code == 400


def test_conquest_run(started, deck_manager):
    response = started.post("/api/conquest")
    assert response.json()["status"] == "started"
    assert response.json()["progress"]["conquest"]["total"] == 6

    status = started.get("/api/conquest").json()
    assert status["active"] is True
    assert status["countdown"] is None

    # Locked while the run is active.
    assert started.post("/api/settings", json={"block_size": 50}).status_code == 400

    result = started.post("/api/answer", json={"answer": "wrong"}).json()
    assert result["feedback"] == "incorrect"
    assert result["requeue_position"] == 2

    for _ in range(20):
        if not started.get("/api/conquest").json()["active"]:
            break
        answer = current_answer(started, deck_manager)
        started.post("/api/answer", json={"answer": answer})
    assert started.get("/api/conquest").json()["active"] is False


def test_stop_conquest(started):
    started.post("/api/conquest")
    assert started.delete("/api/conquest").json()["status"] == "stopped"
    assert started.get("/api/conquest").json()["active"] is False


def test_export_and_import(started):
    started.post("/api/settings", json={"threshold": 60, "spacing": 1})
    started.post("/api/conquest")
    started.post("/api/answer", json={"answer": "wrong"})

    export = started.post("/api/conquest/export", json={"name": "evening"})
    assert "conquest_evening_" in export.headers["content-disposition"]
    snapshot = export.json()
    assert snapshot["threshold"] == 60
    assert snapshot["stats"]["0"]["consecutiveWrong"] == 1
    assert started.get("/api/conquest").json()["active"] is False

    response = started.post("/api/conquest/import", content=export.content)
    assert response.status_code == 200
    assert response.json()["progress"]["conquest"]["remaining"] == 6
    status = started.get("/api/conquest").json()
    assert status["active"] is True


def test_import_rejects_garbage(started):
    response = started.post("/api/conquest/import", content=b"not a session")
    assert response.status_code == 400
    assert "Invalid session" in response.json()["error"]


def test_reset(started, fake_redis):
    assert started.post("/api/reset").json()["status"] == "success"
    assert fake_redis.data == {}
