"""AI generation endpoints: start a job, save a result, poll the ledger.

The worker is not running here; tests drive it through app.worker.drain()
with a scripted model client where a full round trip is needed.
"""

from __future__ import annotations

import asyncio
import json
from uuid import UUID, uuid4

from fastapi.testclient import TestClient

from app.repos.generation_repo import generation_repo
from app.services.quiz_catalog import quiz_catalog
from app.services.quiz_generation import GenerationWorker
from app.services.task_queue import GENERATION_QUEUE, task_queue
from app.worker import WorkerDeps, drain
from tests.conftest import auth

GENERATE_BODY = {
    "topic": "Fractions",
    "total_questions": 2,
    "easy_questions": 1,
    "medium_questions": 1,
    "hard_questions": 0,
    "total_points": 4,
    "passing_score": 50,
    "max_attempts": 3,
}

SAVE_QUESTIONS = [
    {
        "title": "Half",
        "content": "1/2 + 1/2 = 1",
        "type": "true_false",
        "points": 2,
        "answers": [{"text": "True", "isCorrect": True}, {"text": "False"}],
    },
    {
        "title": "Quarter",
        "content": "1/4 of 8 is ____.",
        "type": "fill_blank",
        "points": 2,
        "answers": [{"text": "2", "isCorrect": True}],
    },
]


class ScriptedModel:
    provider = "fake"
    model = "fake-1"

    def __init__(self, reply: str) -> None:
        self.reply = reply

    async def complete(self, prompt, *, response_schema=None):
        return self.reply


def _generate(client: TestClient, headers: dict, **overrides) -> dict:
    resp = client.post(
        "/v1/quizzes/generate_ai", json={**GENERATE_BODY, **overrides}, headers=headers
    )
    assert resp.status_code == 202, resp.text
    return resp.json()


def test_generate_ai_creates_ledger_entry_and_job(
    client: TestClient, admin_headers: dict
) -> None:
    data = _generate(client, admin_headers)
    assert data["status"] == "not_started"

    entry = asyncio.run(generation_repo.get(UUID(data["ledger_id"])))
    assert entry.title == "AI quiz: Fractions"
    assert entry.params.total_points == 4

    task = asyncio.run(task_queue.dequeue(GENERATION_QUEUE))
    assert task.payload == {"ledger_id": data["ledger_id"]}


def test_generate_ai_checks_difficulty_split(
    client: TestClient, admin_headers: dict
) -> None:
    resp = client.post(
        "/v1/quizzes/generate_ai",
        json={**GENERATE_BODY, "easy_questions": 2},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert "total_questions" in resp.json()["errors"]


def test_generate_ai_needs_a_point_per_question(
    client: TestClient, admin_headers: dict
) -> None:
    resp = client.post(
        "/v1/quizzes/generate_ai",
        json={**GENERATE_BODY, "total_points": 1},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert "total_points" in resp.json()["errors"]


def test_generate_ai_caps_points_per_question(
    client: TestClient, admin_headers: dict
) -> None:
    resp = client.post(
        "/v1/quizzes/generate_ai",
        json={
            **GENERATE_BODY,
            "easy_questions": 2,
            "medium_questions": 0,
            "total_points": 1000,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert "total_points" in resp.json()["errors"]
    assert generation_repo._by_id == {}  # type: ignore[attr-defined]
    assert asyncio.run(task_queue.queue_length(GENERATION_QUEUE)) == 0


def test_generate_ai_is_admin_only(client: TestClient) -> None:
    resp = client.post(
        "/v1/quizzes/generate_ai", json=GENERATE_BODY, headers=auth(uuid4(), "parent")
    )
    assert resp.status_code == 403


def test_ai_save_creates_quiz_once(client: TestClient, admin_headers: dict) -> None:
    ledger_id = _generate(client, admin_headers)["ledger_id"]
    body = {"ledger_id": ledger_id, "questions": SAVE_QUESTIONS}

    first = client.post("/v1/quizzes/ai-save", json=body, headers=admin_headers)
    second = client.post("/v1/quizzes/ai-save", json=body, headers=admin_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    quiz = first.json()["quiz"]
    assert quiz["id"] == second.json()["quiz"]["id"]
    assert quiz["generation_id"] == ledger_id
    assert quiz["total_points"] == 4
    assert quiz["max_attempts"] == 3

    entry = asyncio.run(generation_repo.get(UUID(ledger_id)))
    assert entry.status == "completed"
    assert entry.quiz_id == UUID(quiz["id"])


def test_ai_save_rejects_point_mismatch(client: TestClient, admin_headers: dict) -> None:
    ledger_id = _generate(client, admin_headers)["ledger_id"]
    questions = [dict(SAVE_QUESTIONS[0], points=1), SAVE_QUESTIONS[1]]
    resp = client.post(
        "/v1/quizzes/ai-save",
        json={"ledger_id": ledger_id, "questions": questions},
        headers=admin_headers,
    )
    assert resp.status_code == 422


def test_ai_save_on_failed_entry_is_conflict(
    client: TestClient, admin_headers: dict
) -> None:
    ledger_id = _generate(client, admin_headers)["ledger_id"]
    asyncio.run(
        generation_repo.fail(
            UUID(ledger_id), data_error={"code": "stale"}, data_ai=None, now=1
        )
    )
    resp = client.post(
        "/v1/quizzes/ai-save",
        json={"ledger_id": ledger_id, "questions": SAVE_QUESTIONS},
        headers=admin_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["status"] == "error"


def test_ai_save_unknown_ledger_is_404(client: TestClient, admin_headers: dict) -> None:
    resp = client.post(
        "/v1/quizzes/ai-save",
        json={"ledger_id": str(uuid4()), "questions": SAVE_QUESTIONS},
        headers=admin_headers,
    )
    assert resp.status_code == 404


def test_generation_round_trip_through_worker(
    client: TestClient, admin_headers: dict
) -> None:
    ledger_id = _generate(client, admin_headers)["ledger_id"]
    generated = []
    for q in SAVE_QUESTIONS:
        answers = [
            {"text": a["text"], "isCorrect": a.get("isCorrect", False)}
            for a in q["answers"]
        ]
        generated.append({**q, "difficulty": "easy", "answers": answers})
    reply = json.dumps(generated)
    deps = WorkerDeps(
        generation=GenerationWorker(
            ledger=generation_repo,
            catalog=quiz_catalog,
            client=ScriptedModel(reply),
        )
    )

    assert asyncio.run(drain(deps)) == 1

    resp = client.get(f"/v1/ai/generate-process/{ledger_id}", headers=admin_headers)
    data = resp.json()
    assert data["status"] == "completed"
    assert data["quiz_id"] is not None
    assert data["data_ai"] == reply
