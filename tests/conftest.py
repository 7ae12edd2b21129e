from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.assignment import QuizAssignment
from app.models.quiz import Quiz
from app.models.user import User
from app.repos.assignment_repo import assignment_repo
from app.repos.generation_repo import generation_repo
from app.repos.quiz_repo import quiz_repo
from app.repos.user_repo import user_repo
from app.services import token_service
from app.services.quiz_catalog import AnswerDraft, QuestionDraft, quiz_catalog
from app.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_quiz_state() -> None:
    """Clear quizzes, questions, assignments and attempt histories."""
    quiz_repo._quizzes.clear()  # type: ignore[attr-defined]
    quiz_repo._questions.clear()  # type: ignore[attr-defined]
    assignment_repo._assignments.clear()  # type: ignore[attr-defined]
    assignment_repo._histories.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_generation_ledger() -> None:
    generation_repo._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_users() -> None:
    user_repo._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]
        task_queue._processing.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: str | None = None,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=user_id or str(uuid4()), roles=roles
    )


def auth(user_id: UUID | str, *roles: str) -> dict[str, str]:
    """Authorization header for `user_id` with `roles` (default: student)."""
    token = mint_token(str(user_id), list(roles) or None)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth(uuid4(), "admin")


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def seed_user(
    email: str,
    *,
    role: str = "student",
    full_name: str = "",
    parent_id: UUID | None = None,
    telegram_chat_id: str | None = None,
) -> User:
    user = User.new(
        email=email,
        full_name=full_name,
        role=role,
        parent_id=parent_id,
        telegram_chat_id=telegram_chat_id,
    )
    asyncio.run(user_repo.add(user))
    return user


def seed_family(chat_id: str | None = "4242") -> tuple[User, User]:
    """A guardian with a Telegram chat and one child. Returns (parent, child)."""
    parent = seed_user(
        "parent@example.com",
        role="parent",
        full_name="Dana",
        telegram_chat_id=chat_id,
    )
    child = seed_user(
        "kid@example.com", full_name="Sam", parent_id=parent.id
    )
    return parent, child


def three_question_drafts() -> list[QuestionDraft]:
    """true_false (1pt), single_choice (2pt), multiple_choice (2pt)."""
    return [
        QuestionDraft(
            title="Sky",
            content="The sky is blue.",
            type="true_false",
            answers=(AnswerDraft("True", True), AnswerDraft("False")),
            points=1,
        ),
        QuestionDraft(
            title="Capital",
            content="Capital of France?",
            type="single_choice",
            answers=(
                AnswerDraft("Paris", True),
                AnswerDraft("Rome"),
                AnswerDraft("Madrid"),
            ),
            points=2,
        ),
        QuestionDraft(
            title="Primes",
            content="Pick the primes.",
            type="multiple_choice",
            answers=(
                AnswerDraft("2", True),
                AnswerDraft("3", True),
                AnswerDraft("4"),
            ),
            points=2,
        ),
    ]


def seed_quiz(
    *, passing_score: int = 60, max_attempts: int = 3, title: str = "Basics"
) -> Quiz:
    return asyncio.run(
        quiz_catalog.create_quiz(
            title=title,
            questions=three_question_drafts(),
            passing_score=passing_score,
            max_attempts=max_attempts,
        )
    )


def seed_assignment(quiz: Quiz, student_id: UUID) -> QuizAssignment:
    return asyncio.run(quiz_catalog.assign_quiz(quiz.id, student_id))


def correct_answers(quiz: Quiz) -> dict:
    """Answers that get every question of `quiz` right."""
    questions = asyncio.run(quiz_repo.get_questions(quiz.question_ids))
    answers: dict = {}
    for q in questions:
        correct = [a for a in q.answers if a.is_correct]
        if q.type == "multiple_choice":
            answers[str(q.id)] = [a.id for a in correct]
        elif q.type == "fill_blank":
            answers[str(q.id)] = correct[0].text
        else:
            answers[str(q.id)] = correct[0].id
    return answers
