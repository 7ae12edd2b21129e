"""Domain error taxonomy.

Services raise these; app/api/errors.py maps them onto HTTP responses.
The worker recovers ProviderError/ParseError locally by failing the
ledger entry, and DeliveryFailure is only ever logged.
"""

from __future__ import annotations

from typing import Any


class QuizServiceError(Exception):
    """Base class for every error the domain layer raises on purpose."""


class NotFoundError(QuizServiceError):
    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(QuizServiceError, ValueError):
    """Rejected input. `errors` maps field paths to messages."""

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class ConflictError(QuizServiceError):
    """Request is well-formed but the current state does not allow it."""


class ConcurrencyConflict(ConflictError):
    def __init__(self, assignment_id: object) -> None:
        super().__init__("Concurrent submission for the same quiz, please retry")
        self.assignment_id = assignment_id


class AttemptLimitReached(ConflictError):
    def __init__(self, max_attempts: int) -> None:
        super().__init__(f"No attempts left for this quiz (max {max_attempts})")
        self.max_attempts = max_attempts


class GenerationStateConflict(ConflictError):
    def __init__(self, ledger_id: object, status: str) -> None:
        super().__init__(f"Generation request is already {status}")
        self.ledger_id = ledger_id
        self.status = status


class ProviderError(QuizServiceError):
    """The generative-model provider failed, timed out, or throttled us."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "provider_error",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class ParseError(QuizServiceError):
    """Model output could not be repaired into the expected question list."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "parse_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class DeliveryFailure(QuizServiceError):
    """A notification could not be delivered to the messaging channel."""
