"""ClientProfile — the ``client`` template scope built from intake answers.

Answer ids are kebab-case (``full-name``, ``days-per-week``); profile keys
are camelCase when serialised (``fullName``, ``daysPerWeek``) so templates
read ``{{client.fullName}}``.

Fields the client did not answer fall back to neutral defaults where a
sensible one exists (``activityLevel`` -> ``moderately-active``).  Fields
without a default stay ``None`` and therefore count as missing for the
renderer.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


def _as_text(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or None
    text = str(value).strip()
    return text or None


def age_on(dob: date, reference: date) -> int:
    """Whole years between *dob* and *reference*."""
    before_birthday = (reference.month, reference.day) < (dob.month, dob.day)
    return reference.year - dob.year - int(before_birthday)


# answer id -> (profile field, parser)
_FIELD_MAP: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "full-name": ("full_name", _as_text),
    "email": ("email", _as_text),
    "gender": ("gender", _as_text),
    "date-of-birth": ("date_of_birth", _as_date),
    "height-inches": ("height_inches", _as_int),
    "weight-lbs": ("weight_lbs", _as_float),
    "primary-goal": ("goal", _as_text),
    "target-weight": ("target_weight", _as_float),
    "motivation": ("motivation", _as_text),
    "biggest-struggle": ("biggest_struggle", _as_text),
    "activity-level": ("activity_level", _as_text),
    "training-goal": ("training_goals", _as_text),
    "training-experience": ("training_experience", _as_text),
    "days-per-week": ("days_per_week", _as_int),
    "session-duration": ("session_duration", _as_int),
    "preferred-workout-time": ("preferred_workout_time", _as_text),
    "workout-location": ("workout_location", _as_text),
    "available-equipment": ("available_equipment", _as_text),
    "injuries": ("injuries", _as_text),
    "medical-conditions": ("medical_conditions", _as_text),
    "diet-type": ("diet_type", _as_text),
    "food-allergies": ("food_allergies", _as_text),
    "foods-to-avoid": ("foods_to_avoid", _as_text),
    "meals-per-day": ("meals_per_day", _as_int),
    "water-intake-oz": ("water_intake_oz", _as_int),
    "favorite-meals": ("favorite_meals", _as_text),
    "sport": ("sport", _as_text),
    "position": ("position", _as_text),
    "competition-level": ("competition_level", _as_text),
    "season-phase": ("season_phase", _as_text),
    "training-age": ("training_age", _as_int),
    "school-grade": ("school_grade", _as_text),
    "sports-played": ("sports_played", _as_text),
    "parent-name": ("parent_name", _as_text),
    "parent-email": ("parent_email", _as_text),
    "wellness-focus": ("wellness_focus", _as_text),
    "injury-location": ("injury_location", _as_text),
    "pain-patterns": ("pain_patterns", _as_text),
    "mobility-limitations": ("mobility_limitations", _as_text),
    "recovery-goals": ("recovery_goals", _as_text),
}


class ClientProfile(BaseModel):
    """Normalised client attributes exposed to templates as ``client``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    client_type: str
    full_name: str = "Client"
    email: str = ""
    gender: str = "not specified"
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    height_inches: Optional[int] = None
    weight_lbs: Optional[float] = None

    # Goals
    goal: str = "general fitness"
    target_weight: Optional[float] = None
    motivation: str = "improve health"
    biggest_struggle: str = "consistency"

    # Activity & training
    activity_level: str = "moderately-active"
    training_goals: Optional[str] = None
    training_experience: str = "beginner"
    days_per_week: int = 3
    session_duration: int = 60
    preferred_workout_time: str = "flexible"
    workout_location: str = "gym"
    available_equipment: str = "basic equipment"

    # Health
    injuries: str = "none reported"
    medical_conditions: str = "none reported"

    # Nutrition
    diet_type: str = "no restrictions"
    food_allergies: str = "none"
    foods_to_avoid: str = "none"
    meals_per_day: int = 3
    water_intake_oz: Optional[int] = None
    favorite_meals: str = "varied"

    # Athlete
    sport: Optional[str] = None
    position: Optional[str] = None
    competition_level: Optional[str] = None
    season_phase: Optional[str] = None
    training_age: Optional[int] = None

    # Youth
    school_grade: Optional[str] = None
    sports_played: str = "various"
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None

    # Wellness & recovery
    wellness_focus: Optional[str] = None
    injury_location: Optional[str] = None
    pain_patterns: Optional[str] = None
    medical_clearance: str = "No"
    mobility_limitations: Optional[str] = None
    recovery_goals: Optional[str] = None

    @classmethod
    def from_answers(
        cls,
        client_id: str,
        client_type: str,
        answers: Mapping[str, Any],
        *,
        reference_date: date,
    ) -> ClientProfile:
        """Map intake answers onto profile fields.

        Args:
            client_id: external client identifier
            client_type: intake path the answers came from
            answers: answers keyed by question id
            reference_date: date used to compute ``age`` (the job's
                submission date, so regeneration is reproducible)
        """
        data: dict[str, Any] = {"id": client_id, "client_type": client_type}
        for answer_id, (field_name, parse) in _FIELD_MAP.items():
            raw = answers.get(answer_id)
            if raw is None:
                continue
            parsed = parse(raw)
            if parsed is not None:
                data[field_name] = parsed

        clearance = answers.get("medical-clearance")
        if clearance is not None:
            data["medical_clearance"] = "Yes" if str(clearance).lower() == "yes" else "No"

        dob = data.get("date_of_birth")
        if dob is not None:
            data["age"] = age_on(dob, reference_date)
        return cls(**data)
