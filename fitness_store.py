from __future__ import annotations
import logging
import random
import sqlite3
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional

from db import ExerciseRepository, HistoryRepository, PlanRepository, ProfileRepository
from models import (
    AVATARS,
    Exercise,
    PlanExercise,
    Profile,
    WorkoutDraft,
    WorkoutHistory,
    WorkoutPlan,
)
from stats_service import sort_history

logger = logging.getLogger(__name__)

# action kinds understood by reduce()
SET_USER_DATA = "SET_USER_DATA"
SET_PROFILE = "SET_PROFILE"
LOG_OUT = "LOG_OUT"
ADD_EXERCISE = "ADD_EXERCISE"
UPDATE_EXERCISE = "UPDATE_EXERCISE"
DELETE_EXERCISE = "DELETE_EXERCISE"
ADD_PLAN = "ADD_PLAN"
UPDATE_PLAN = "UPDATE_PLAN"
DELETE_PLAN = "DELETE_PLAN"
ADD_WORKOUT_TO_HISTORY = "ADD_WORKOUT_TO_HISTORY"
DELETE_WORKOUT_FROM_HISTORY = "DELETE_WORKOUT_FROM_HISTORY"

_REPOSITORY_ERRORS = (ValueError, sqlite3.Error)


@dataclass(frozen=True)
class FitnessState:
    user_id: Optional[str] = None
    profile: Optional[Profile] = None
    exercises: List[Exercise] = field(default_factory=list)
    plans: List[WorkoutPlan] = field(default_factory=list)
    history: List[WorkoutHistory] = field(default_factory=list)


@dataclass(frozen=True)
class Action:
    type: str
    payload: Any = None


def _replace_item(items: list, item) -> list:
    return [item if existing.id == item.id else existing for existing in items]


def _without(items: list, item_id: str) -> list:
    return [existing for existing in items if existing.id != item_id]


def reduce(state: FitnessState, action: Action) -> FitnessState:
    """Return the state that results from applying ``action`` to ``state``."""
    kind, payload = action.type, action.payload
    if kind == SET_USER_DATA:
        return FitnessState(
            user_id=payload["user_id"],
            profile=payload.get("profile"),
            exercises=list(payload.get("exercises", [])),
            plans=list(payload.get("plans", [])),
            history=sort_history(payload.get("history", [])),
        )
    if kind == SET_PROFILE:
        return replace(state, profile=payload)
    if kind == LOG_OUT:
        return FitnessState()
    if kind == ADD_EXERCISE:
        return replace(state, exercises=state.exercises + [payload])
    if kind == UPDATE_EXERCISE:
        return replace(state, exercises=_replace_item(state.exercises, payload))
    if kind == DELETE_EXERCISE:
        return replace(state, exercises=_without(state.exercises, payload))
    if kind == ADD_PLAN:
        return replace(state, plans=state.plans + [payload])
    if kind == UPDATE_PLAN:
        return replace(state, plans=_replace_item(state.plans, payload))
    if kind == DELETE_PLAN:
        return replace(state, plans=_without(state.plans, payload))
    if kind == ADD_WORKOUT_TO_HISTORY:
        return replace(state, history=sort_history(state.history + [payload]))
    if kind == DELETE_WORKOUT_FROM_HISTORY:
        return replace(state, history=sort_history(_without(state.history, payload)))
    raise ValueError(f"unknown action: {kind}")


def default_profile_name(email: Optional[str]) -> str:
    local = (email or "").split("@")[0]
    return local or "Gymrat"


class FitnessStore:
    """Application state for one signed-in user backed by the repositories.

    Updates and deletes are applied locally first and then persisted; a
    persistence failure is logged and the local change stays. Creates are
    persisted first and only registered locally when they succeed, otherwise
    ``None`` is returned. Without a signed-in user every operation is a no-op.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        exercises: ExerciseRepository,
        plans: PlanRepository,
        history: HistoryRepository,
    ) -> None:
        self.profiles = profiles
        self.exercises = exercises
        self.plans = plans
        self.history = history
        self.state = FitnessState()

    @classmethod
    def from_path(cls, db_path: str = "fitness.db") -> "FitnessStore":
        return cls(
            ProfileRepository(db_path),
            ExerciseRepository(db_path),
            PlanRepository(db_path),
            HistoryRepository(db_path),
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.state.user_id

    def dispatch(self, action: Action) -> FitnessState:
        self.state = reduce(self.state, action)
        return self.state

    def find_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return next((e for e in self.state.exercises if e.id == exercise_id), None)

    def find_plan(self, plan_id: str) -> Optional[WorkoutPlan]:
        return next((p for p in self.state.plans if p.id == plan_id), None)

    def find_workout(self, history_id: str) -> Optional[WorkoutHistory]:
        return next((w for w in self.state.history if w.id == history_id), None)

    # session --------------------------------------------------------------

    def load_session(self, user_id: str, email: Optional[str] = None) -> FitnessState:
        profile = self.profiles.fetch(user_id)
        if profile is None:
            profile = self.profiles.create(
                user_id, default_profile_name(email), random.choice(AVATARS)
            )
            logger.info("Created profile for user %s", user_id)
        return self.dispatch(
            Action(
                SET_USER_DATA,
                {
                    "user_id": user_id,
                    "profile": profile,
                    "exercises": self.exercises.fetch_all_for_user(user_id),
                    "plans": self.plans.fetch_all_for_user(user_id),
                    "history": self.history.fetch_all_for_user(user_id),
                },
            )
        )

    def refetch(self) -> Optional[FitnessState]:
        if self.user_id is None:
            return None
        return self.load_session(self.user_id)

    def log_out(self) -> FitnessState:
        return self.dispatch(Action(LOG_OUT))

    def delete_account(self) -> Optional[bool]:
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            self.history.delete_for_user(user_id)
            self.plans.delete_for_user(user_id)
            self.exercises.delete_for_user(user_id)
            self.profiles.delete(user_id)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error deleting account %s: %s", user_id, e)
            return False
        self.log_out()
        return True

    # profile --------------------------------------------------------------

    def update_profile(self, name: str, avatar: str) -> Optional[Profile]:
        if self.user_id is None:
            return None
        profile = Profile(id=self.user_id, name=name, avatar=avatar)
        self.dispatch(Action(SET_PROFILE, profile))
        try:
            self.profiles.update(self.user_id, name, avatar)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error updating profile: %s", e)
        return profile

    # exercises ------------------------------------------------------------

    def add_exercise(
        self, name: str, category: str, exercise_type: str
    ) -> Optional[Exercise]:
        if self.user_id is None:
            return None
        try:
            exercise = self.exercises.create(self.user_id, name, category, exercise_type)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error adding exercise %r: %s", name, e)
            return None
        self.dispatch(Action(ADD_EXERCISE, exercise))
        return exercise

    def update_exercise(self, exercise: Exercise) -> Optional[Exercise]:
        if self.user_id is None:
            return None
        self.dispatch(Action(UPDATE_EXERCISE, exercise))
        try:
            self.exercises.update(self.user_id, exercise)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error updating exercise %s: %s", exercise.id, e)
        return exercise

    def delete_exercise(self, exercise_id: str) -> Optional[bool]:
        if self.user_id is None:
            return None
        self.dispatch(Action(DELETE_EXERCISE, exercise_id))
        try:
            self.exercises.delete(self.user_id, exercise_id)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error deleting exercise %s: %s", exercise_id, e)
            return False
        return True

    # plans ----------------------------------------------------------------

    def add_plan(
        self, name: str, exercises: List[PlanExercise]
    ) -> Optional[WorkoutPlan]:
        if self.user_id is None:
            return None
        try:
            plan = self.plans.create(self.user_id, name, exercises)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error adding plan %r: %s", name, e)
            return None
        self.dispatch(Action(ADD_PLAN, plan))
        return plan

    def update_plan(self, plan: WorkoutPlan) -> Optional[WorkoutPlan]:
        if self.user_id is None:
            return None
        self.dispatch(Action(UPDATE_PLAN, plan))
        try:
            self.plans.update(self.user_id, plan)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error updating plan %s: %s", plan.id, e)
        return plan

    def delete_plan(self, plan_id: str) -> Optional[bool]:
        if self.user_id is None:
            return None
        self.dispatch(Action(DELETE_PLAN, plan_id))
        try:
            self.plans.delete(self.user_id, plan_id)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error deleting plan %s: %s", plan_id, e)
            return False
        return True

    # history --------------------------------------------------------------

    def add_workout_to_history(self, draft: WorkoutDraft) -> Optional[WorkoutHistory]:
        if self.user_id is None:
            return None
        try:
            record = self.history.create(self.user_id, draft)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error saving workout: %s", e)
            return None
        self.dispatch(Action(ADD_WORKOUT_TO_HISTORY, record))
        return record

    def register_workout(self, record: WorkoutHistory) -> Optional[WorkoutHistory]:
        """Add a workout that was persisted elsewhere to the local history."""
        if self.user_id is None:
            return None
        self.dispatch(Action(ADD_WORKOUT_TO_HISTORY, record))
        return record

    def delete_workout_from_history(self, history_id: str) -> Optional[bool]:
        if self.user_id is None:
            return None
        self.dispatch(Action(DELETE_WORKOUT_FROM_HISTORY, history_id))
        try:
            self.history.delete(self.user_id, history_id)
        except _REPOSITORY_ERRORS as e:
            logger.error("Error deleting workout %s: %s", history_id, e)
            return False
        return True
