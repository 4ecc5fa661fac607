"""Question type models for the intake catalog.

Each question type maps to one UI input and carries only the constraints
that make sense for it:

  Text:
    - short_text: single-line input (length, pattern, email/url format)
    - long_text: multi-line input, same constraints as short_text

  Numeric:
    - number: free numeric input with optional bounds and step
    - range: slider with mandatory bounds

  Options:
    - single_select / single_choice: exactly one option value
    - multi_select / multi_choice: a set of option values, optional
      min/max selection counts

  Temporal:
    - date: ISO calendar date, optionally forbidden in the future

The discriminated ``Question`` union uses ``question_type`` as its discriminator.
The ``question_mapper`` dict maps type strings to their Pydantic classes.
Published questions are frozen.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .rule import ConditionGroup


# --- Base question type ---

class BaseQuestion(BaseModel):
    """Fields shared by all question types."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    required: bool = False
    help_text: Optional[str] = None
    # Shown only while this predicate holds (ANDed with any branching rule)
    visible_when: Optional[ConditionGroup] = None
    # Per-error-code message overrides, e.g. {"required": "Name is required"}
    error_messages: dict[str, str] = Field(default_factory=dict)


class Option(BaseModel):
    """A selectable option with a stored value and display label."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str


# --- Text ---

class _TextQuestion(BaseQuestion):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=1)
    pattern: Optional[str] = None
    format: Optional[Literal["email", "url"]] = None

    @model_validator(mode="after")
    def _chk_lengths(self):
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError("min_length must be <= max_length")
        return self


class ShortTextQuestion(_TextQuestion):
    """Single-line text input."""

    question_type: Literal["short_text"] = "short_text"


class LongTextQuestion(_TextQuestion):
    """Multi-line text input."""

    question_type: Literal["long_text"] = "long_text"


# --- Numeric ---

class NumberQuestion(BaseQuestion):
    """Numeric input with optional min/max/step."""

    question_type: Literal["number"] = "number"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    step: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must be <= max_value")
        return self


class RangeQuestion(BaseQuestion):
    """Slider with mandatory bounds."""

    question_type: Literal["range"] = "range"
    min_value: float
    max_value: float
    step: float = Field(default=1.0, gt=0)
    unit: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.min_value >= self.max_value:
            raise ValueError("min_value must be < max_value")
        return self


# --- Options ---

class _OptionsQuestion(BaseQuestion):
    options: List[Option] = Field(min_length=1)

    @model_validator(mode="after")
    def _chk_unique(self):
        values = [o.value for o in self.options]
        if len(values) != len(set(values)):
            raise ValueError(f"Question '{self.id}' has duplicate option values")
        return self

    @property
    def option_values(self) -> set[str]:
        return {o.value for o in self.options}


class SingleSelectQuestion(_OptionsQuestion):
    """Dropdown; exactly one option value."""

    question_type: Literal["single_select"] = "single_select"


class SingleChoiceQuestion(_OptionsQuestion):
    """Radio group; exactly one option value."""

    question_type: Literal["single_choice"] = "single_choice"


class _MultiOptionsQuestion(_OptionsQuestion):
    min_selections: Optional[int] = Field(default=None, ge=0)
    max_selections: Optional[int] = Field(default=None, ge=1)


class MultiSelectQuestion(_MultiOptionsQuestion):
    """Multi-select list; answer is a set of option values."""

    question_type: Literal["multi_select"] = "multi_select"


class MultiChoiceQuestion(_MultiOptionsQuestion):
    """Checkbox group; answer is a set of option values."""

    question_type: Literal["multi_choice"] = "multi_choice"


# --- Temporal ---

class DateQuestion(BaseQuestion):
    """ISO ``YYYY-MM-DD`` calendar date."""

    question_type: Literal["date"] = "date"
    allow_future: bool = True


# --- Discriminated union of all question types ---

Question = Annotated[
    Union[
        ShortTextQuestion,
        LongTextQuestion,
        NumberQuestion,
        RangeQuestion,
        SingleSelectQuestion,
        SingleChoiceQuestion,
        MultiSelectQuestion,
        MultiChoiceQuestion,
        DateQuestion,
    ],
    Field(discriminator="question_type"),
]

# Maps question_type string -> Pydantic class for dynamic deserialization from YAML.
question_mapper = {
    "short_text": ShortTextQuestion,
    "long_text": LongTextQuestion,
    "number": NumberQuestion,
    "range": RangeQuestion,
    "single_select": SingleSelectQuestion,
    "single_choice": SingleChoiceQuestion,
    "multi_select": MultiSelectQuestion,
    "multi_choice": MultiChoiceQuestion,
    "date": DateQuestion,
}


class QuestionBlock(BaseModel):
    """An ordered group of questions; the unit of pagination and progress."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    questions: List[Question]
    visible_when: Optional[ConditionGroup] = None

    @model_validator(mode="after")
    def _chk_ids(self):
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Block '{self.id}' has duplicate question ids")
        return self
