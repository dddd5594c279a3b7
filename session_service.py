from __future__ import annotations
import datetime
import math
import re
import sys
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from algorithms import MathTools
from models import (
    CardioPerformance,
    Exercise,
    ExerciseType,
    PerformedExercise,
    PerformedSet,
    PlanExercise,
    WorkoutDraft,
    WorkoutHistory,
    WorkoutPlan,
)
from planner_service import default_plan_exercise
from stats_service import sort_history

_INT_PREFIX = re.compile(r"^\s*[-+]?\d+")
_FLOAT_PREFIX = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")
DEFAULT_SET_COUNT = 3


def parse_int(value: Optional[str]) -> int:
    """Return the leading integer of ``value`` or 0."""
    match = _INT_PREFIX.match(value or "")
    if not match:
        return 0
    try:
        number = int(match.group(0))
    except ValueError:
        return 0
    # numbers no float can hold count as unparseable
    return number if abs(number) <= sys.float_info.max else 0


def parse_float(value: Optional[str]) -> float:
    """Return the leading decimal number of ``value`` or 0."""
    match = _FLOAT_PREFIX.match(value or "")
    if not match:
        return 0.0
    number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class SetInput:
    weight: str = ""
    reps: str = ""


@dataclass
class CardioInput:
    minutes: str = ""
    seconds: str = ""
    distance: str = ""


@dataclass
class WorkoutSession:
    """State of one active workout started from a plan.

    The session owns a copy of the plan exercises; reordering, replacing or
    removing entries never touches the stored plan. Pending input is keyed by
    exercise id and only parsed when the session is finished. Every mutating
    operation returns ``False`` (or ``None``) when it does not apply, including
    any call made after the session reached its finished state.
    """

    plan: WorkoutPlan
    catalog: Dict[str, Exercise]
    clock: Callable[[], datetime.datetime] = _utcnow
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    exercises: List[PlanExercise] = field(init=False)
    cursor: int = field(default=0, init=False)
    strength_inputs: Dict[str, List[SetInput]] = field(default_factory=dict, init=False)
    cardio_inputs: Dict[str, CardioInput] = field(default_factory=dict, init=False)
    notes: Dict[str, str] = field(default_factory=dict, init=False)
    started_at: datetime.datetime = field(init=False)
    finished: bool = field(default=False, init=False)
    draft: Optional[WorkoutDraft] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.exercises = [pe.model_copy() for pe in self.plan.exercises]
        self.started_at = self.clock()
        if not self.exercises:
            self.finished = True

    @classmethod
    def start(
        cls,
        plan: WorkoutPlan,
        exercises: Iterable[Exercise],
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> "WorkoutSession":
        return cls(plan=plan, catalog={e.id: e for e in exercises}, clock=clock)

    # navigation -----------------------------------------------------------

    @property
    def current(self) -> Optional[PlanExercise]:
        if self.finished or not self.exercises:
            return None
        return self.exercises[self.cursor]

    @property
    def current_exercise(self) -> Optional[Exercise]:
        current = self.current
        return self.catalog.get(current.exercise_id) if current else None

    def _move(self, step: int) -> bool:
        if self.finished:
            return False
        self.cursor = MathTools.clamp(self.cursor + step, 0, len(self.exercises) - 1)
        return True

    def next(self) -> bool:
        return self._move(1)

    def previous(self) -> bool:
        return self._move(-1)

    def is_last(self) -> bool:
        return self.cursor == len(self.exercises) - 1

    def elapsed_seconds(self) -> int:
        return int((self.clock() - self.started_at).total_seconds())

    # input ----------------------------------------------------------------

    def record_set(
        self,
        exercise_id: str,
        set_index: int,
        weight: Optional[str] = None,
        reps: Optional[str] = None,
    ) -> bool:
        if self.finished or set_index < 0:
            return False
        # sets are added one at a time past the prescribed count
        sets = self.strength_inputs.get(exercise_id, [])
        if set_index > max(len(sets), self._prescribed_sets(exercise_id)):
            return False
        sets = self.strength_inputs.setdefault(exercise_id, sets)
        while len(sets) <= set_index:
            sets.append(SetInput())
        if weight is not None:
            sets[set_index].weight = weight
        if reps is not None:
            sets[set_index].reps = reps
        return True

    def record_cardio(
        self,
        exercise_id: str,
        minutes: Optional[str] = None,
        seconds: Optional[str] = None,
        distance: Optional[str] = None,
    ) -> bool:
        if self.finished:
            return False
        data = self.cardio_inputs.setdefault(exercise_id, CardioInput())
        if minutes is not None:
            data.minutes = minutes
        if seconds is not None:
            data.seconds = seconds
        if distance is not None:
            data.distance = distance
        return True

    def record_note(self, exercise_id: str, text: str) -> bool:
        if self.finished:
            return False
        self.notes[exercise_id] = text
        return True

    def _prescribed_sets(self, exercise_id: str) -> int:
        for pe in self.exercises:
            if pe.exercise_id == exercise_id:
                return pe.number_of_sets or DEFAULT_SET_COUNT
        return DEFAULT_SET_COUNT

    def pending_sets(self, exercise_id: str) -> List[SetInput]:
        """Return the set inputs for display, padded to the prescribed count."""
        prescribed = self._prescribed_sets(exercise_id)
        sets = list(self.strength_inputs.get(exercise_id, []))
        while len(sets) < prescribed:
            sets.append(SetInput())
        return sets

    # editing --------------------------------------------------------------

    def reorder(self, from_index: int, to_index: int) -> bool:
        size = len(self.exercises)
        if self.finished or not (0 <= from_index < size) or not (0 <= to_index < size):
            return False
        moved = self.exercises.pop(from_index)
        self.exercises.insert(to_index, moved)
        if self.cursor == from_index:
            self.cursor = to_index
        elif from_index < self.cursor <= to_index:
            self.cursor -= 1
        elif to_index <= self.cursor < from_index:
            self.cursor += 1
        return True

    def remove(self, index: int) -> bool:
        if self.finished or not (0 <= index < len(self.exercises)):
            return False
        del self.exercises[index]
        if self.cursor >= index:
            self.cursor = max(0, self.cursor - 1)
        if not self.exercises:
            self.finished = True
        return True

    def replace(self, index: int, exercise_id: str) -> bool:
        if self.finished or not (0 <= index < len(self.exercises)):
            return False
        new_exercise = self.catalog.get(exercise_id)
        if new_exercise is None:
            return False
        old = self.exercises[index]
        old_exercise = self.catalog.get(old.exercise_id)
        if old_exercise is not None and old_exercise.exercise_type == new_exercise.exercise_type:
            replacement = old.model_copy(update={"exercise_id": exercise_id})
        else:
            replacement = default_plan_exercise(new_exercise)
            replacement.notes = old.notes
        self.exercises[index] = replacement
        return True

    # completion -----------------------------------------------------------

    def _performed(self, pe: PlanExercise) -> Optional[PerformedExercise]:
        exercise = self.catalog.get(pe.exercise_id)
        if exercise is None:
            return None
        notes = self.notes.get(pe.exercise_id) or None
        if exercise.exercise_type == ExerciseType.STRENGTH:
            sets = [
                PerformedSet(weight=parse_float(s.weight), reps=parse_int(s.reps))
                for s in self.strength_inputs.get(pe.exercise_id, [])
            ]
            sets = [s for s in sets if s.reps > 0]
            if not sets and not notes:
                return None
            return PerformedExercise(exercise_id=pe.exercise_id, sets=sets, notes=notes)
        data = self.cardio_inputs.get(pe.exercise_id, CardioInput())
        total = parse_int(data.minutes) * 60 + parse_int(data.seconds)
        if total <= 0 and not notes:
            return None
        return PerformedExercise(
            exercise_id=pe.exercise_id,
            cardio_performance=CardioPerformance(
                duration=total, distance=parse_float(data.distance) or None
            ),
            notes=notes,
        )

    def finish(self) -> Optional[WorkoutDraft]:
        """End the session and return the workout to persist, if any."""
        if self.finished:
            return None
        self.finished = True
        now = self.clock()
        performed = []
        for pe in self.exercises:
            item = self._performed(pe)
            if item is not None:
                performed.append(item)
        if not performed:
            return None
        self.draft = WorkoutDraft(
            plan_id=self.plan.id,
            plan_name=self.plan.name,
            date=now.isoformat(),
            duration=int((now - self.started_at).total_seconds()),
            exercises=performed,
        )
        return self.draft

    def previous_performance(
        self, history: Iterable[WorkoutHistory]
    ) -> Optional[PerformedExercise]:
        current = self.current
        if current is None:
            return None
        return previous_performance(history, current.exercise_id)

    def snapshot(self) -> dict:
        current = self.current
        return {
            "id": self.id,
            "planId": self.plan.id,
            "planName": self.plan.name,
            "finished": self.finished,
            "cursor": self.cursor,
            "elapsed": self.elapsed_seconds(),
            "exercises": [pe.to_dict() for pe in self.exercises],
            "current": current.to_dict() if current else None,
            "sets": {
                eid: [vars(s) for s in self.pending_sets(eid)]
                for eid in dict.fromkeys(pe.exercise_id for pe in self.exercises)
                if eid in self.catalog
                and self.catalog[eid].exercise_type == ExerciseType.STRENGTH
            },
            "cardio": {eid: vars(c) for eid, c in self.cardio_inputs.items()},
            "notes": dict(self.notes),
        }


def previous_performance(
    history: Iterable[WorkoutHistory], exercise_id: str
) -> Optional[PerformedExercise]:
    """Return the most recent logged performance of ``exercise_id``."""
    for workout in sort_history(history):
        for performed in workout.exercises:
            if performed.exercise_id == exercise_id and performed.has_performance():
                return performed
    return None


class SessionManager:
    """Keeps at most one active workout session per user."""

    def __init__(self) -> None:
        self._sessions: Dict[str, WorkoutSession] = {}

    def start(
        self,
        user_id: str,
        plan: WorkoutPlan,
        exercises: Iterable[Exercise],
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> WorkoutSession:
        session = WorkoutSession.start(plan, exercises, clock)
        self._sessions[user_id] = session
        return session

    def get(self, user_id: str, session_id: str) -> WorkoutSession:
        session = self._sessions.get(user_id)
        if session is None or session.id != session_id:
            raise ValueError("session not found")
        return session

    def active(self, user_id: str) -> Optional[WorkoutSession]:
        return self._sessions.get(user_id)

    def discard(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)
