"""Scoring engine tests.

score_attempt() is exercised directly against hand-built snapshots;
ScoringService.submit() runs against fresh in-memory repos so each test
controls its own state, including a simulated lost compare-and-set race.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from app.core.errors import ConcurrencyConflict, NotFoundError, ValidationError
from app.models.assignment import AttemptHistory, QuizAssignment
from app.models.question import AnswerOption, Question
from app.models.quiz import Quiz
from app.repos.assignment_repo import InMemoryAssignmentRepo
from app.repos.generation_repo import InMemoryGenerationRepo
from app.repos.quiz_repo import InMemoryQuizRepo
from app.repos.user_repo import InMemoryUserRepo
from app.services.notifications import NotificationDispatcher
from app.services.quiz_catalog import QuizCatalog
from app.services.scoring import ScoringService, score_attempt
from app.services.task_queue import InMemoryTaskQueue
from tests.conftest import three_question_drafts

# ---- score_attempt (pure) ----


def _snapshot(passing_score: int = 60) -> tuple[Quiz, list[Question]]:
    q1 = Question.new(
        title="a",
        content="a",
        type="true_false",
        answers=(AnswerOption("t", "True", True), AnswerOption("f", "False")),
        points=1,
    )
    q2 = Question.new(
        title="b",
        content="b",
        type="single_choice",
        answers=(AnswerOption("p", "Paris", True), AnswerOption("r", "Rome")),
        points=2,
    )
    q3 = Question.new(
        title="c",
        content="c",
        type="multiple_choice",
        answers=(
            AnswerOption("2", "2", True),
            AnswerOption("3", "3", True),
            AnswerOption("4", "4"),
        ),
        points=2,
    )
    quiz = Quiz.new(
        title="Basics",
        question_ids=(q1.id, q2.id, q3.id),
        total_points=5,
        passing_score=passing_score,
    )
    return quiz, [q1, q2, q3]


def test_score_attempt_partial_credit_passes_at_threshold() -> None:
    quiz, (q1, q2, q3) = _snapshot(passing_score=60)
    score = score_attempt(
        quiz, [q1, q2, q3], {str(q1.id): "t", str(q2.id): "p"}, attempt_number=1
    )
    assert score.total_score == 3
    assert score.rate_percent == 60.0
    assert score.status == "passed"
    assert score.passed_question_ids == (q1.id, q2.id)
    assert score.failed_question_ids == (q3.id,)


def test_score_attempt_below_threshold_fails() -> None:
    quiz, questions = _snapshot(passing_score=70)
    q1 = questions[0]
    score = score_attempt(quiz, questions, {str(q1.id): "t"}, attempt_number=2)
    assert score.total_score == 1
    assert score.rate_percent == 20.0
    assert score.status == "failed"
    assert score.attempt_number == 2


def test_score_attempt_ignores_answers_for_other_questions() -> None:
    quiz, questions = _snapshot()
    score = score_attempt(quiz, questions, {str(uuid4()): "t"}, attempt_number=1)
    assert score.total_score == 0
    assert len(score.failed_question_ids) == 3


def test_score_attempt_counts_missing_question_as_failed() -> None:
    quiz, (q1, q2, _q3) = _snapshot()
    score = score_attempt(
        quiz, [q1, q2], {str(q1.id): "t", str(q2.id): "p"}, attempt_number=1
    )
    assert score.failed_question_ids == (quiz.question_ids[2],)


def test_score_attempt_zero_point_quiz_scores_zero() -> None:
    quiz, questions = _snapshot()
    quiz = replace(quiz, total_points=0)
    score = score_attempt(quiz, questions, {}, attempt_number=1)
    assert score.rate_percent == 0.0
    assert score.status == "failed"


def test_score_attempt_rounds_rate_to_two_decimals() -> None:
    quiz, questions = _snapshot(passing_score=0)
    quiz = replace(quiz, total_points=3)
    q1 = questions[0]
    score = score_attempt(quiz, questions, {str(q1.id): "t"}, attempt_number=1)
    assert score.rate_percent == 33.33


# ---- ScoringService.submit ----


class RacingAssignmentRepo(InMemoryAssignmentRepo):
    """Lets a competing submission win the first `races` record_attempt calls."""

    def __init__(self, races: int = 1) -> None:
        super().__init__()
        self.races = races

    async def record_attempt(
        self, history: AttemptHistory, expected_attempt_count: int
    ) -> QuizAssignment:
        if self.races > 0:
            self.races -= 1
            rival = replace(
                history, id=uuid4(), attempt_number=expected_attempt_count + 1
            )
            await super().record_attempt(rival, expected_attempt_count)
        return await super().record_attempt(history, expected_attempt_count)


def _service(
    assignments: InMemoryAssignmentRepo | None = None, feedback_client=None
):
    quizzes = InMemoryQuizRepo()
    assignments = assignments or InMemoryAssignmentRepo()
    catalog = QuizCatalog(
        quizzes=quizzes, assignments=assignments, ledger=InMemoryGenerationRepo()
    )
    notifier = NotificationDispatcher(
        users=InMemoryUserRepo(), queue=InMemoryTaskQueue()
    )
    service = ScoringService(
        quizzes=quizzes,
        assignments=assignments,
        notifier=notifier,
        feedback_client=feedback_client,
        clock=lambda: 1000,
    )
    return catalog, assignments, service


async def _setup(
    assignments: InMemoryAssignmentRepo | None = None, feedback_client=None
):
    catalog, repo, service = _service(assignments, feedback_client)
    quiz = await catalog.create_quiz(
        title="Basics", questions=three_question_drafts(), max_attempts=5
    )
    student_id = uuid4()
    assignment = await catalog.assign_quiz(quiz.id, student_id)
    return quiz, repo, service, student_id, assignment


def test_submit_records_first_attempt() -> None:
    async def run():
        quiz, repo, service, student_id, assignment = await _setup()
        history = await service.submit(assignment.id, student_id, {}, 42)
        return history, await repo.get(assignment.id)

    history, stored = asyncio.run(run())
    assert history.attempt_number == 1
    assert history.total_score == 0
    assert history.submission_time == 42
    assert history.created_at == 1000
    assert stored.attempt_count == 1
    assert stored.status == "completed"
    assert stored.last_history_id == history.id


def test_submit_numbers_attempts_sequentially() -> None:
    async def run():
        _quiz, repo, service, student_id, assignment = await _setup()
        for _ in range(3):
            await service.submit(assignment.id, student_id, {})
        return await repo.list_histories(assignment.id)

    histories = asyncio.run(run())
    assert [h.attempt_number for h in histories] == [1, 2, 3]


def test_submit_rescores_after_lost_race() -> None:
    async def run():
        repo = RacingAssignmentRepo(races=1)
        _quiz, _repo, service, student_id, assignment = await _setup(repo)
        history = await service.submit(assignment.id, student_id, {})
        return history, await repo.get(assignment.id), await repo.list_histories(
            assignment.id
        )

    history, stored, histories = asyncio.run(run())
    assert history.attempt_number == 2
    assert stored.attempt_count == 2
    assert [h.attempt_number for h in histories] == [1, 2]


def test_concurrent_submissions_get_distinct_attempt_numbers() -> None:
    async def run():
        _quiz, repo, service, student_id, assignment = await _setup()
        await asyncio.gather(
            *(service.submit(assignment.id, student_id, {}) for _ in range(5))
        )
        return await repo.get(assignment.id), await repo.list_histories(
            assignment.id
        )

    stored, histories = asyncio.run(run())
    assert stored.attempt_count == len(histories) == 5
    assert sorted(h.attempt_number for h in histories) == [1, 2, 3, 4, 5]


def test_lost_race_does_not_ask_for_feedback_again() -> None:
    class CountingModel:
        provider = "fake"
        model = "fake"

        def __init__(self) -> None:
            self.calls = 0

        async def complete(self, prompt, *, response_schema=None):
            self.calls += 1
            return "Keep going."

    model = CountingModel()

    async def run():
        repo = RacingAssignmentRepo(races=2)
        _quiz, _repo, service, student_id, assignment = await _setup(repo, model)
        return await service.submit(assignment.id, student_id, {})

    history = asyncio.run(run())
    assert history.attempt_number == 3
    assert history.feedback == "Keep going."
    assert model.calls == 1


def test_submit_gives_up_after_repeated_conflicts() -> None:
    async def run():
        repo = RacingAssignmentRepo(races=10)
        _quiz, _repo, service, student_id, assignment = await _setup(repo)
        await service.submit(assignment.id, student_id, {})

    with pytest.raises(ConcurrencyConflict):
        asyncio.run(run())


def test_submit_rejects_other_students_assignment() -> None:
    async def run():
        _quiz, repo, service, _student_id, assignment = await _setup()
        with pytest.raises(NotFoundError):
            await service.submit(assignment.id, uuid4(), {})
        return await repo.get(assignment.id)

    stored = asyncio.run(run())
    assert stored.attempt_count == 0


def test_submit_rejects_non_object_answers_without_side_effects() -> None:
    async def run():
        _quiz, repo, service, student_id, assignment = await _setup()
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(assignment.id, student_id, ["not", "a", "map"])
        return exc_info.value, await repo.list_histories(assignment.id)

    error, histories = asyncio.run(run())
    assert "answers" in error.errors
    assert histories == []


def test_submit_rejects_negative_submission_time() -> None:
    async def run():
        _quiz, _repo, service, student_id, assignment = await _setup()
        await service.submit(assignment.id, student_id, {}, -1)

    with pytest.raises(ValidationError):
        asyncio.run(run())


def test_feedback_failure_leaves_comment_empty() -> None:
    class BrokenModel:
        provider = "fake"
        model = "fake"

        async def complete(self, prompt, *, response_schema=None):
            raise RuntimeError("model down")

    async def run():
        quizzes = InMemoryQuizRepo()
        assignments = InMemoryAssignmentRepo()
        catalog = QuizCatalog(
            quizzes=quizzes, assignments=assignments, ledger=InMemoryGenerationRepo()
        )
        service = ScoringService(
            quizzes=quizzes,
            assignments=assignments,
            notifier=NotificationDispatcher(
                users=InMemoryUserRepo(), queue=InMemoryTaskQueue()
            ),
            feedback_client=BrokenModel(),
        )
        quiz = await catalog.create_quiz(title="Q", questions=three_question_drafts())
        student_id = uuid4()
        assignment = await catalog.assign_quiz(quiz.id, student_id)
        return await service.submit(assignment.id, student_id, {})

    history = asyncio.run(run())
    assert history.feedback is None


def test_feedback_is_trimmed_and_capped() -> None:
    class ChattyModel:
        provider = "fake"
        model = "fake"

        async def complete(self, prompt, *, response_schema=None):
            return "  Great effort! " + "x" * 2000

    async def run():
        quizzes = InMemoryQuizRepo()
        assignments = InMemoryAssignmentRepo()
        catalog = QuizCatalog(
            quizzes=quizzes, assignments=assignments, ledger=InMemoryGenerationRepo()
        )
        service = ScoringService(
            quizzes=quizzes,
            assignments=assignments,
            notifier=NotificationDispatcher(
                users=InMemoryUserRepo(), queue=InMemoryTaskQueue()
            ),
            feedback_client=ChattyModel(),
        )
        quiz = await catalog.create_quiz(title="Q", questions=three_question_drafts())
        student_id = uuid4()
        assignment = await catalog.assign_quiz(quiz.id, student_id)
        return await service.submit(assignment.id, student_id, {})

    history = asyncio.run(run())
    assert history.feedback.startswith("Great effort!")
    assert len(history.feedback) == 1000


# ---- worked examples ----


def _capital_quiz() -> tuple[Quiz, Question, Question]:
    q1 = Question.new(
        title="Capital",
        content="Capital of France?",
        type="single_choice",
        answers=(
            AnswerOption("opt1", "Paris", True),
            AnswerOption("opt2", "London"),
        ),
        points=5,
    )
    q2 = Question.new(
        title="Capital again",
        content="The capital of France is ____.",
        type="fill_blank",
        answers=(AnswerOption("a", "Paris", True),),
        points=5,
    )
    quiz = Quiz.new(
        title="Capitals",
        question_ids=(q1.id, q2.id),
        total_points=10,
        passing_score=60,
    )
    return quiz, q1, q2


def test_all_correct_submission_passes_with_full_marks() -> None:
    quiz, q1, q2 = _capital_quiz()
    score = score_attempt(
        quiz, [q1, q2], {str(q1.id): "opt1", str(q2.id): "paris"}, attempt_number=1
    )
    assert score.total_score == 10
    assert score.rate_percent == 100.0
    assert score.status == "passed"


def test_all_wrong_submission_fails_every_question() -> None:
    quiz, q1, q2 = _capital_quiz()
    score = score_attempt(
        quiz, [q1, q2], {str(q1.id): "opt2", str(q2.id): "london"}, attempt_number=1
    )
    assert score.total_score == 0
    assert score.status == "failed"
    assert score.failed_question_ids == (q1.id, q2.id)
    assert score.passed_question_ids == ()


def test_rescoring_same_inputs_is_stable() -> None:
    quiz, q1, q2 = _capital_quiz()
    answers = {str(q1.id): "opt1", str(q2.id): "london"}
    first = score_attempt(quiz, [q1, q2], answers, attempt_number=1)
    again = score_attempt(quiz, [q1, q2], answers, attempt_number=1)
    assert first == again
