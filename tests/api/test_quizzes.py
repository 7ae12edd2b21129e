"""Quiz authoring and assignment endpoints."""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from tests.conftest import auth, seed_family, seed_quiz, seed_user

QUIZ_BODY = {
    "title": "Capitals",
    "subject": "Geography",
    "passing_score": 50,
    "max_attempts": 2,
    "questions": [
        {
            "title": "France",
            "content": "Capital of France?",
            "type": "single_choice",
            "points": 3,
            "answers": [
                {"text": "Paris", "isCorrect": True},
                {"text": "Lyon"},
            ],
        },
        {
            "title": "Spain",
            "content": "The capital of Spain is ____.",
            "type": "fill_blank",
            "points": 2,
            "answers": [{"text": "Madrid", "isCorrect": True}],
        },
    ],
}


def test_admin_creates_quiz(client: TestClient, admin_headers: dict) -> None:
    resp = client.post("/v1/quizzes", json=QUIZ_BODY, headers=admin_headers)
    assert resp.status_code == 201
    data = resp.json()
    assert data["title"] == "Capitals"
    assert data["total_points"] == 5
    assert data["max_attempts"] == 2
    assert len(data["question_ids"]) == 2
    assert data["generation_id"] is None


def test_create_quiz_reports_field_errors(
    client: TestClient, admin_headers: dict
) -> None:
    body = {**QUIZ_BODY, "questions": [dict(QUIZ_BODY["questions"][0], answers=[])]}
    resp = client.post("/v1/quizzes", json=body, headers=admin_headers)
    assert resp.status_code == 422
    data = resp.json()
    assert data["status"] == "error"
    assert "questions[0].answers" in data["errors"]
    assert "timestamp" in data


def test_students_cannot_create_quizzes(client: TestClient) -> None:
    resp = client.post("/v1/quizzes", json=QUIZ_BODY, headers=auth(uuid4(), "student"))
    assert resp.status_code == 403


def test_admin_assigns_quiz(client: TestClient, admin_headers: dict) -> None:
    quiz = seed_quiz()
    student = seed_user("s@example.com")
    resp = client.post(
        f"/v1/quizzes/{quiz.id}/assign",
        json={"student_id": str(student.id)},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["quiz_id"] == str(quiz.id)
    assert data["student_id"] == str(student.id)
    assert data["attempt_count"] == 0
    assert data["status"] == "not_started"


def test_assigning_twice_returns_same_assignment(
    client: TestClient, admin_headers: dict
) -> None:
    quiz = seed_quiz()
    body = {"student_id": str(uuid4())}
    first = client.post(f"/v1/quizzes/{quiz.id}/assign", json=body, headers=admin_headers)
    second = client.post(f"/v1/quizzes/{quiz.id}/assign", json=body, headers=admin_headers)
    assert first.json()["id"] == second.json()["id"]


def test_parent_assigns_to_own_child(client: TestClient) -> None:
    parent, child = seed_family()
    quiz = seed_quiz()
    resp = client.post(
        f"/v1/quizzes/{quiz.id}/assign",
        json={"student_id": str(child.id)},
        headers=auth(parent.id, "parent"),
    )
    assert resp.status_code == 200


def test_parent_cannot_assign_to_other_child(client: TestClient) -> None:
    parent, _child = seed_family()
    stranger = seed_user("other@example.com")
    quiz = seed_quiz()
    resp = client.post(
        f"/v1/quizzes/{quiz.id}/assign",
        json={"student_id": str(stranger.id)},
        headers=auth(parent.id, "parent"),
    )
    assert resp.status_code == 403


def test_assign_unknown_quiz_is_404(client: TestClient, admin_headers: dict) -> None:
    resp = client.post(
        f"/v1/quizzes/{uuid4()}/assign",
        json={"student_id": str(uuid4())},
        headers=admin_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["message"] == "Quiz not found"
