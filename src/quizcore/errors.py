"""Error taxonomy shared by the scoring and rate limiting layers.

Quota exhaustion is not an error: a denied request is a normal
``RateLimitCheck`` with ``allowed=False``, not an exception.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class QuizCoreError(Exception):
    """Base class for quizcore errors."""


class InvalidInputError(QuizCoreError, ValueError):
    """A precondition was violated at the boundary.

    Raised for negative times, a zero time limit, more correct answers than
    questions, or an unknown tier/difficulty string.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    @classmethod
    def from_validation_error(cls, exc: ValidationError, what: str) -> InvalidInputError:
        """Flatten a pydantic ValidationError into a single InvalidInputError."""
        errors = [
            {
                "loc": ".".join(str(part) for part in err["loc"]),
                "msg": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors(include_url=False)
        ]
        summary = "; ".join(f"{e['loc'] or what}: {e['msg']}" for e in errors)
        return cls(f"Invalid {what}: {summary}", errors=errors)


class GenerationError(QuizCoreError):
    """The upstream content generator failed or is not configured."""


def validate_input(model_cls: type[ModelT], value: object, what: str) -> ModelT:
    """Return ``value`` as a ``model_cls`` instance, validating mappings.

    Instances pass through untouched (they were validated on construction).
    Anything else goes through ``model_validate`` and any failure surfaces as
    ``InvalidInputError``.
    """
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as exc:
        raise InvalidInputError.from_validation_error(exc, what) from exc
