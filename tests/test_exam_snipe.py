"""
Exam Snipe analysis and history.
"""
import json

from core.config import settings
from services.exam_snipe_service import rank_concepts


def test_rank_concepts_orders_by_points_per_hour():
    ranked = rank_concepts([
        {"name": "Low", "pointsPerHour": 2},
        "not a concept",
        {"name": "High", "pointsPerHour": "9.5"},
        {"name": "Unknown", "pointsPerHour": "n/a"},
    ])
    assert [c["name"] for c in ranked] == ["High", "Low", "Unknown"]
    assert rank_concepts(None) == []


def test_analyze_exams(client, user_headers, fake_openai):
    fake_openai.reply(json.dumps({
        "gradeInfo": "A = 90%",
        "patternAnalysis": "Kinetics every year",
        "concepts": [
            {"name": "Equilibrium", "pointsPerHour": 4},
            {"name": "Kinetics", "pointsPerHour": 12},
        ],
    }))

    response = client.post(
        "/api/exam-snipe",
        files=[
            ("exams", ("2022.txt", b"Q1. Rate laws (10 pts)", "text/plain")),
            ("exams", ("2023.txt", b"Q1. Equilibrium constants (5 pts)", "text/plain")),
        ],
        headers=user_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalExams"] == 2
    assert data["gradeInfo"] == "A = 90%"
    assert [c["name"] for c in data["concepts"]] == ["Kinetics", "Equilibrium"]

    prompt = fake_openai.calls[0]["messages"][1]["content"]
    assert "=== EXAM 1: 2022.txt ===" in prompt
    assert "Rate laws" in prompt
    usage = client.get("/api/subscription/info", headers=user_headers).json()["usage"]
    assert usage["apiCalls"] == 1


def test_analyze_without_files(client, fake_openai):
    response = client.post("/api/exam-snipe", data={"note": "nothing"})
    assert response.status_code == 400
    assert response.json()["error"] == "No exam files provided"


def test_analyze_with_non_json_reply(client, fake_openai):
    fake_openai.reply("I could not find any exams.")
    response = client.post("/api/exam-snipe", files=[("exams", ("a.txt", b"exam", "text/plain"))])

    assert response.status_code == 500
    assert response.json()["error"] == "No valid JSON found in response"


def test_analyze_upstream_failure(client, fake_openai):
    fake_openai.chat.completions.create.side_effect = RuntimeError("connection reset")
    response = client.post("/api/exam-snipe", files=[("exams", ("a.txt", b"exam", "text/plain"))])

    assert response.status_code == 502
    assert response.json()["type"] == "AIServiceException"


def _save(client, headers, slug, **fields):
    body = {"slug": slug, "courseName": fields.pop("courseName", slug.title()), **fields}
    return client.post("/api/exam-snipe/history", json=body, headers=headers)


def test_history_upsert(client, user_headers):
    first = _save(client, user_headers, "chem", fileNames=["a.pdf"], results={"v": 1}).json()["record"]
    second = _save(client, user_headers, "chem", courseName="Chemistry", results={"v": 2}).json()["record"]

    assert second["id"] == first["id"]
    history = client.get("/api/exam-snipe/history", headers=user_headers).json()["history"]
    assert len(history) == 1
    assert history[0]["courseName"] == "Chemistry"
    assert history[0]["results"] == {"v": 2}
    assert history[0]["fileNames"] == []


def test_history_requires_slug_and_name(client, user_headers):
    response = client.post("/api/exam-snipe/history", json={"slug": "chem"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Missing courseName or slug"


def test_history_is_pruned_to_limit(client, user_headers, monkeypatch):
    monkeypatch.setattr(settings, "exam_history_limit", 3)
    for index in range(5):
        _save(client, user_headers, f"exam-{index}")

    history = client.get("/api/exam-snipe/history", headers=user_headers).json()["history"]

    assert [record["slug"] for record in history] == ["exam-4", "exam-3", "exam-2"]


def test_history_rename_and_delete(client, user_headers):
    _save(client, user_headers, "chem")

    renamed = client.patch(
        "/api/exam-snipe/history", json={"slug": "chem", "courseName": "Organic Chemistry"}, headers=user_headers
    )
    assert renamed.json()["record"]["courseName"] == "Organic Chemistry"

    missing = client.patch(
        "/api/exam-snipe/history", json={"slug": "nope", "courseName": "X"}, headers=user_headers
    )
    assert missing.status_code == 404

    assert client.delete("/api/exam-snipe/history", params={"slug": "chem"}, headers=user_headers).json() == {
        "ok": True
    }
    assert client.get("/api/exam-snipe/history", headers=user_headers).json()["history"] == []
    assert client.delete("/api/exam-snipe/history", headers=user_headers).status_code == 400
    assert client.delete("/api/exam-snipe/history", params={"slug": "chem"}, headers=user_headers).status_code == 404


def test_history_is_per_user(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    _save(client, alice, "chem")

    assert client.get("/api/exam-snipe/history", headers=bob).json()["history"] == []
    assert client.delete("/api/exam-snipe/history", params={"slug": "chem"}, headers=bob).status_code == 404
