"""Calculated values — the ``calculated`` template scope.

Derived from the client profile only, so a job re-rendered from the same
snapshot yields the same numbers:

  - Nutrition: daily calories (Mifflin-St Jeor BMR x activity multiplier,
    adjusted for goal), macro split, meal timing, hydration
  - Workout: weekly frequency, session duration, training split, volume
  - General: BMI, experience description
"""

from __future__ import annotations

from typing import Any

from packet_pipeline.profile import ClientProfile

ACTIVITY_MULTIPLIERS: dict[str, float] = {
    "sedentary": 1.2,
    "lightly-active": 1.375,
    "moderately-active": 1.55,
    "very-active": 1.725,
    "extremely-active": 1.9,
}

# Gender constant in the Mifflin-St Jeor equation; anything else uses -78
_BMR_GENDER_OFFSET: dict[str, float] = {"male": 5.0, "female": -161.0}
_BMR_OTHER_OFFSET = -78.0

_LBS_TO_KG = 0.453592
_IN_TO_CM = 2.54

VOLUME_BY_EXPERIENCE: dict[str, dict[str, str]] = {
    "beginner": {"setsPerExercise": "2-3", "repsPerSet": "10-15", "exercisesPerSession": "4-6"},
    "intermediate": {"setsPerExercise": "3-4", "repsPerSet": "8-12", "exercisesPerSession": "6-8"},
    "advanced": {"setsPerExercise": "4-5", "repsPerSet": "6-12", "exercisesPerSession": "8-10"},
}
_EXPERIENCE_TIER: dict[str, str] = {
    "beginner": "beginner",
    "novice": "beginner",
    "intermediate": "intermediate",
    "advanced": "advanced",
    "expert": "advanced",
}
EXPERIENCE_DESCRIPTIONS: dict[str, str] = {
    "beginner": "New to training",
    "novice": "New to training",
    "intermediate": "Some training experience",
    "advanced": "Experienced athlete",
    "expert": "Elite level",
}


def calculate_values(profile: ClientProfile) -> dict[str, Any]:
    """Compute every calculated value for *profile*."""
    values: dict[str, Any] = {}
    values.update(nutrition_values(profile))
    values.update(workout_values(profile))
    bmi = body_mass_index(profile.height_inches, profile.weight_lbs)
    if bmi is not None:
        values["bmi"] = bmi
    values["experienceLevel"] = EXPERIENCE_DESCRIPTIONS.get(
        profile.training_experience, "New to training"
    )
    return values


# ------------------------------------------------------------------
# Nutrition
# ------------------------------------------------------------------

def nutrition_values(profile: ClientProfile) -> dict[str, Any]:
    calories = daily_calories(profile)
    return {
        "dailyCalories": calories,
        "macros": macro_breakdown(profile.goal, calories),
        "mealTiming": meal_timing(profile.meals_per_day, profile.preferred_workout_time),
        "hydrationOz": hydration_oz(profile.weight_lbs, profile.activity_level),
    }


def daily_calories(profile: ClientProfile) -> int:
    """Calorie target: BMR x activity multiplier, -500 to lose, +300 to gain."""
    weight = profile.weight_lbs or 150
    height = profile.height_inches or 66
    age = profile.age if profile.age is not None else 30
    offset = _BMR_GENDER_OFFSET.get((profile.gender or "").lower(), _BMR_OTHER_OFFSET)

    bmr = 10 * weight * _LBS_TO_KG + 6.25 * height * _IN_TO_CM - 5 * age + offset
    tdee = bmr * ACTIVITY_MULTIPLIERS.get(profile.activity_level, 1.55)

    goal = profile.goal.lower()
    if "lose" in goal or "fat" in goal:
        tdee -= 500
    elif "gain" in goal or "muscle" in goal:
        tdee += 300
    return round(tdee)


def macro_breakdown(goal: str, calories: int) -> list[dict[str, Any]]:
    """Protein/carb/fat split as rows of name, grams, calories, percentage."""
    goal = goal.lower()
    protein, carbs, fat = 0.30, 0.40, 0.30
    if "muscle" in goal or "strength" in goal:
        protein, carbs, fat = 0.35, 0.40, 0.25
    elif "endurance" in goal:
        protein, carbs, fat = 0.25, 0.50, 0.25
    elif "fat" in goal or "lose" in goal:
        protein, carbs, fat = 0.35, 0.30, 0.35

    rows = []
    for name, share, kcal_per_gram in (
        ("Protein", protein, 4),
        ("Carbohydrates", carbs, 4),
        ("Fats", fat, 9),
    ):
        kcal = calories * share
        rows.append({
            "name": name,
            "grams": round(kcal / kcal_per_gram),
            "calories": round(kcal),
            "percentage": round(share * 100),
        })
    return rows


def meal_timing(meals_per_day: int, workout_time: str) -> list[str]:
    timings: list[str] = []
    if meals_per_day >= 3:
        timings += [
            "Breakfast: 7:00-9:00 AM",
            "Lunch: 12:00-2:00 PM",
            "Dinner: 6:00-8:00 PM",
        ]
    if meals_per_day >= 4:
        if workout_time in ("early-morning", "morning"):
            timings.append("Pre-Workout Snack: 6:00-7:00 AM")
        elif workout_time == "afternoon":
            timings.append("Afternoon Snack: 3:00-4:00 PM")
        else:
            timings.append("Evening Snack: 4:00-5:00 PM")
    if meals_per_day >= 5:
        timings.append("Post-Workout Snack: Within 30 minutes after training")
    return timings


def hydration_oz(weight_lbs: float | None, activity_level: str) -> int:
    base = (weight_lbs or 150) * 0.67
    if activity_level in ("very-active", "extremely-active"):
        base *= 1.2
    return round(base)


# ------------------------------------------------------------------
# Workout
# ------------------------------------------------------------------

def workout_values(profile: ClientProfile) -> dict[str, Any]:
    return {
        "weeklyFrequency": profile.days_per_week,
        "sessionDuration": profile.session_duration,
        "trainingSplit": training_split(profile.days_per_week, profile.training_experience),
        "volumeRecommendations": dict(
            VOLUME_BY_EXPERIENCE[_EXPERIENCE_TIER.get(profile.training_experience, "beginner")]
        ),
    }


def training_split(days_per_week: int, experience: str) -> str:
    if days_per_week <= 2:
        return "Full Body"
    if days_per_week == 3:
        return "Full Body" if experience in ("beginner", "novice") else "Upper/Lower Split"
    if days_per_week == 4:
        return "Upper/Lower Split"
    return "Push/Pull/Legs Split"


def body_mass_index(height_inches: int | None, weight_lbs: float | None) -> float | None:
    if not height_inches or not weight_lbs:
        return None
    return round(weight_lbs / (height_inches * height_inches) * 703, 1)
