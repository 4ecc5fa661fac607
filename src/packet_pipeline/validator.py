"""QuestionValidator — required-ness and type constraints for intake answers.

Validation is a pure function of a question definition and a candidate
value.  Only visible questions are validated; the caller (usually
``IntakeService``) filters with the evaluator first.

Error codes:
  - required
  - not_a_number, min, max, step
  - not_text, min_length, max_length, pattern, email, url
  - invalid_option, not_a_list, min_selections, max_selections
  - invalid_date, future_date

Each code has a default message; a question may override any of them via
``error_messages``.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from packet_pipeline.evaluator import is_missing
from packet_pipeline.models.question import (
    DateQuestion,
    LongTextQuestion,
    MultiChoiceQuestion,
    MultiSelectQuestion,
    NumberQuestion,
    Question,
    RangeQuestion,
    ShortTextQuestion,
    SingleChoiceQuestion,
    SingleSelectQuestion,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_DEFAULT_MESSAGES: dict[str, str] = {
    "required": "This field is required",
    "not_a_number": "Must be a number",
    "min": "Must be at least {min:g}",
    "max": "Must be at most {max:g}",
    "step": "Must be a multiple of {step:g}",
    "not_text": "Must be text",
    "min_length": "Must be at least {min_length} characters",
    "max_length": "Must be at most {max_length} characters",
    "pattern": "Invalid format",
    "email": "Please enter a valid email address",
    "url": "Please enter a valid URL",
    "invalid_option": "Please choose one of the available options",
    "not_a_list": "Please choose one or more options",
    "min_selections": "Please choose at least {min_selections} option(s)",
    "max_selections": "Please choose at most {max_selections} option(s)",
    "invalid_date": "Please enter a valid date (YYYY-MM-DD)",
    "future_date": "Date cannot be in the future",
}


class ValidationIssue(BaseModel):
    code: str
    message: str


class ValidationResult(BaseModel):
    """Outcome of validating one answer."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)

    @property
    def first_message(self) -> str | None:
        return self.errors[0].message if self.errors else None


class IntakeValidation(BaseModel):
    """Outcome of validating a whole intake.

    ``errors`` maps each failing question id to its first error message.
    """

    valid: bool
    errors: dict[str, str] = Field(default_factory=dict)
    first_error_block_id: str | None = None


def sanitize_responses(responses: Mapping[str, Any]) -> dict[str, Any]:
    """Trim strings (also inside lists) and drop ``None`` values."""
    clean: dict[str, Any] = {}
    for key, value in responses.items():
        if value is None:
            continue
        if isinstance(value, str):
            clean[key] = value.strip()
        elif isinstance(value, (list, tuple)):
            clean[key] = [v.strip() if isinstance(v, str) else v for v in value]
        else:
            clean[key] = value
    return clean


class QuestionValidator:
    """Validates answers against question definitions.

    Args:
        today: callable returning the reference date for ``allow_future``
            checks.  Defaults to ``date.today``.
    """

    def __init__(self, today: Callable[[], date] | None = None) -> None:
        self._today = today or date.today

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, question: Question, value: Any) -> ValidationResult:
        """Validate a single answer.

        Absent values (``None``, blank string, empty list) fail only when the
        question is required; type checks are skipped for them.
        """
        if is_missing(value):
            if question.required:
                return self._fail(question, "required")
            return ValidationResult(valid=True)

        issues = self._check_type(question, value)
        return ValidationResult(valid=not issues, errors=issues)

    def validate_all(
        self,
        questions: Sequence[Question],
        responses: Mapping[str, Any],
    ) -> IntakeValidation:
        """Validate every visible question; report the first error per question."""
        errors: dict[str, str] = {}
        for q in questions:
            result = self.validate(q, responses.get(q.id))
            if not result.valid:
                errors[q.id] = result.errors[0].message
        return IntakeValidation(valid=not errors, errors=errors)

    def validate_blocks(
        self,
        visible: Mapping[str, Sequence[Question]],
        responses: Mapping[str, Any],
    ) -> IntakeValidation:
        """Validate visible questions grouped by block id (in display order).

        Also reports the first block holding an invalid answer so the caller
        can navigate back to it.
        """
        errors: dict[str, str] = {}
        first_block: str | None = None
        for block_id, questions in visible.items():
            outcome = self.validate_all(questions, responses)
            if not outcome.valid:
                errors.update(outcome.errors)
                if first_block is None:
                    first_block = block_id
        return IntakeValidation(
            valid=not errors, errors=errors, first_error_block_id=first_block,
        )

    # ------------------------------------------------------------------
    # Type dispatch
    # ------------------------------------------------------------------

    def _check_type(self, q: Question, value: Any) -> list[ValidationIssue]:
        if isinstance(q, (ShortTextQuestion, LongTextQuestion)):
            return self._check_text(q, value)
        elif isinstance(q, (NumberQuestion, RangeQuestion)):
            return self._check_number(q, value)
        elif isinstance(q, (SingleSelectQuestion, SingleChoiceQuestion)):
            return self._check_single(q, value)
        elif isinstance(q, (MultiSelectQuestion, MultiChoiceQuestion)):
            return self._check_multi(q, value)
        elif isinstance(q, DateQuestion):
            return self._check_date(q, value)
        raise TypeError(f"No validator for question type {type(q).__name__}")

    def _check_text(
        self, q: ShortTextQuestion | LongTextQuestion, value: Any
    ) -> list[ValidationIssue]:
        if not isinstance(value, str):
            return [self._issue(q, "not_text")]
        text = value.strip()
        if q.min_length is not None and len(text) < q.min_length:
            return [self._issue(q, "min_length", min_length=q.min_length)]
        if q.max_length is not None and len(text) > q.max_length:
            return [self._issue(q, "max_length", max_length=q.max_length)]
        if q.format == "email" and not _EMAIL_RE.match(text):
            return [self._issue(q, "email")]
        if q.format == "url":
            parsed = urlparse(text)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                return [self._issue(q, "url")]
        if q.pattern is not None and not re.search(q.pattern, text):
            return [self._issue(q, "pattern")]
        return []

    def _check_number(
        self, q: NumberQuestion | RangeQuestion, value: Any
    ) -> list[ValidationIssue]:
        # Reject bool explicitly (bool is a subclass of int in Python)
        if isinstance(value, bool):
            return [self._issue(q, "not_a_number")]
        try:
            num = float(value)
        except (TypeError, ValueError):
            return [self._issue(q, "not_a_number")]
        if not math.isfinite(num):
            return [self._issue(q, "not_a_number")]

        if q.min_value is not None and num < q.min_value:
            return [self._issue(q, "min", min=q.min_value)]
        if q.max_value is not None and num > q.max_value:
            return [self._issue(q, "max", max=q.max_value)]
        if q.step is not None:
            base = q.min_value if q.min_value is not None else 0.0
            ratio = (num - base) / q.step
            if not math.isclose(ratio, round(ratio), abs_tol=1e-9):
                return [self._issue(q, "step", step=q.step)]
        return []

    def _check_single(
        self, q: SingleSelectQuestion | SingleChoiceQuestion, value: Any
    ) -> list[ValidationIssue]:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            return [self._issue(q, "invalid_option")]
        if str(value) not in q.option_values:
            return [self._issue(q, "invalid_option")]
        return []

    def _check_multi(
        self, q: MultiSelectQuestion | MultiChoiceQuestion, value: Any
    ) -> list[ValidationIssue]:
        if not isinstance(value, (list, tuple, set, frozenset)):
            return [self._issue(q, "not_a_list")]
        # Duplicate selections collapse to one
        selected = list(dict.fromkeys(str(v) for v in value))
        if any(v not in q.option_values for v in selected):
            return [self._issue(q, "invalid_option")]
        if q.min_selections is not None and len(selected) < q.min_selections:
            return [self._issue(q, "min_selections", min_selections=q.min_selections)]
        if q.max_selections is not None and len(selected) > q.max_selections:
            return [self._issue(q, "max_selections", max_selections=q.max_selections)]
        return []

    def _check_date(self, q: DateQuestion, value: Any) -> list[ValidationIssue]:
        if isinstance(value, datetime):
            parsed = value.date()
        elif isinstance(value, date):
            parsed = value
        elif isinstance(value, str):
            try:
                parsed = date.fromisoformat(value.strip())
            except ValueError:
                return [self._issue(q, "invalid_date")]
        else:
            return [self._issue(q, "invalid_date")]

        if not q.allow_future and parsed > self._today():
            return [self._issue(q, "future_date")]
        return []

    # ------------------------------------------------------------------
    # Message helpers
    # ------------------------------------------------------------------

    def _fail(self, q: Question, code: str, **params: Any) -> ValidationResult:
        return ValidationResult(valid=False, errors=[self._issue(q, code, **params)])

    @staticmethod
    def _issue(q: Question, code: str, **params: Any) -> ValidationIssue:
        template = q.error_messages.get(code) or _DEFAULT_MESSAGES[code]
        try:
            message = template.format(**params)
        except (KeyError, IndexError, ValueError):
            logger.warning("Bad error message template for %s/%s: %r", q.id, code, template)
            message = _DEFAULT_MESSAGES[code].format(**params)
        return ValidationIssue(code=code, message=message)
