from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

AVATARS = ["🏋️", "💪", "🤸", "🧘", "🏃", "🚴", "🥊", "🏆"]


class ExerciseCategory(str, Enum):
    CHEST = "Chest"
    BACK = "Back"
    BICEPS = "Biceps"
    TRICEPS = "Triceps"
    LEGS = "Legs"
    SHOULDERS = "Shoulders"
    CARDIO = "Cardio"
    CORE = "Core"


class ExerciseType(str, Enum):
    STRENGTH = "Strength"
    CARDIO = "Cardio"


EXERCISE_CATEGORIES = [
    ExerciseCategory.CHEST,
    ExerciseCategory.BACK,
    ExerciseCategory.BICEPS,
    ExerciseCategory.TRICEPS,
    ExerciseCategory.LEGS,
    ExerciseCategory.SHOULDERS,
    ExerciseCategory.CORE,
    ExerciseCategory.CARDIO,
]


class Record(BaseModel):
    """Base model serialized with the camelCase document field names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Profile(Record):
    id: str
    name: str
    avatar: str


class Exercise(Record):
    id: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    name: str
    category: ExerciseCategory
    exercise_type: ExerciseType = Field(alias="exerciseType")


class PlanExercise(Record):
    exercise_id: str = Field(alias="exerciseId")
    number_of_sets: Optional[int] = Field(default=None, alias="numberOfSets")
    rep_range: Optional[str] = Field(default=None, alias="repRange")
    target_weight: Optional[float] = Field(
        default=None, alias="targetWeight", allow_inf_nan=False
    )
    duration: Optional[int] = None
    notes: Optional[str] = None


class WorkoutPlan(Record):
    id: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    name: str
    exercises: list[PlanExercise] = Field(default_factory=list)


class PerformedSet(Record):
    weight: float = Field(default=0, allow_inf_nan=False)
    reps: int = 0
    is_warmup: Optional[bool] = Field(default=None, alias="isWarmup")


class CardioPerformance(Record):
    duration: int
    distance: Optional[float] = Field(default=None, allow_inf_nan=False)


class PerformedExercise(Record):
    exercise_id: str = Field(alias="exerciseId")
    notes: Optional[str] = None
    sets: Optional[list[PerformedSet]] = None
    cardio_performance: Optional[CardioPerformance] = Field(
        default=None, alias="cardioPerformance"
    )

    def has_performance(self) -> bool:
        return bool(self.sets) or self.cardio_performance is not None


class WorkoutDraft(Record):
    """A finished session that has not been persisted yet."""

    plan_id: str = Field(alias="planId")
    plan_name: str = Field(alias="planName")
    date: str
    duration: int
    exercises: list[PerformedExercise] = Field(default_factory=list)


class WorkoutHistory(WorkoutDraft):
    id: str
    user_id: Optional[str] = Field(default=None, alias="userId")
