from __future__ import annotations
import datetime
import math
from typing import Dict, Iterable, List, Optional
from pydantic import Field

from algorithms import MathTools
from db import ExerciseRepository, HistoryRepository
from models import Exercise, PerformedSet, Record, WorkoutHistory

TIME_RANGES = ("all", "month", "week", "today")
FREQUENCY_WINDOW_DAYS = 28
TOP_PERSONAL_RECORDS = 3
TOP_CARDIO_EXERCISES = 2


class PersonalRecord(Record):
    exercise_id: str = Field(alias="exerciseId")
    name: str
    weight: float
    reps: int
    estimated_1rm: int = Field(alias="estimated1RM")


class CardioBest(Record):
    exercise_id: str = Field(alias="exerciseId")
    name: str
    sessions: int
    longest_duration: int = Field(alias="longestDuration")
    greatest_distance: Optional[float] = Field(default=None, alias="greatestDistance")


class AnalyticsSummary(Record):
    total_workouts: int = Field(default=0, alias="totalWorkouts")
    total_sets: int = Field(default=0, alias="totalSets")
    total_volume: float = Field(default=0.0, alias="totalVolume")
    average_duration_minutes: int = Field(default=0, alias="averageDurationMinutes")
    workout_density: int = Field(default=0, alias="workoutDensity")
    category_sets_distribution: Dict[str, int] = Field(
        default_factory=dict, alias="categorySetsDistribution"
    )
    category_percentages: Dict[str, int] = Field(
        default_factory=dict, alias="categoryPercentages"
    )
    weekly_frequency: Dict[str, int] = Field(
        default_factory=dict, alias="weeklyFrequency"
    )
    personal_records: List[PersonalRecord] = Field(
        default_factory=list, alias="personalRecords"
    )
    cardio_bests: List[CardioBest] = Field(default_factory=list, alias="cardioBests")


def parse_timestamp(ts: str) -> datetime.datetime:
    """Return ``ts`` as timezone-aware datetime in UTC."""
    if ts.endswith("Z"):
        ts = ts[:-1] + "+00:00"
    dt = datetime.datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def _workout_time(workout: WorkoutHistory) -> Optional[datetime.datetime]:
    try:
        return parse_timestamp(workout.date)
    except ValueError:
        return None


def _now(now: Optional[datetime.datetime]) -> datetime.datetime:
    if now is None:
        return datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=datetime.timezone.utc)
    return now.astimezone(datetime.timezone.utc)


def week_start(day: datetime.date) -> datetime.date:
    """Return the Sunday that starts the week containing ``day``."""
    return day - datetime.timedelta(days=(day.weekday() + 1) % 7)


def sort_history(history: Iterable[WorkoutHistory]) -> List[WorkoutHistory]:
    """Return ``history`` newest first; undated records sort last."""
    epoch = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
    return sorted(
        history,
        key=lambda w: _workout_time(w) or epoch,
        reverse=True,
    )


def filter_history(
    history: Iterable[WorkoutHistory],
    time_range: str = "all",
    now: Optional[datetime.datetime] = None,
) -> List[WorkoutHistory]:
    """Return the workouts of ``history`` that fall in ``time_range``."""
    if time_range not in TIME_RANGES:
        raise ValueError(f"unknown time range: {time_range}")
    if time_range == "all":
        return list(history)
    today = _now(now).date()
    result = []
    for workout in history:
        when = _workout_time(workout)
        if when is None:
            continue
        day = when.date()
        if time_range == "today" and day == today:
            result.append(workout)
        elif time_range == "week" and week_start(today) <= day <= today:
            result.append(workout)
        elif (
            time_range == "month"
            and (day.year, day.month) == (today.year, today.month)
        ):
            result.append(workout)
    return result


def weekly_frequency(
    history: Iterable[WorkoutHistory],
    now: Optional[datetime.datetime] = None,
    days: int = FREQUENCY_WINDOW_DAYS,
) -> Dict[str, int]:
    """Count workouts per Sunday-started week over the trailing ``days``."""
    cutoff = _now(now) - datetime.timedelta(days=days)
    buckets: Dict[str, int] = {}
    for workout in history:
        when = _workout_time(workout)
        if when is None or when <= cutoff:
            continue
        key = week_start(when.date()).isoformat()
        buckets[key] = buckets.get(key, 0) + 1
    return {k: buckets[k] for k in sorted(buckets)}


def compute_analytics(
    history: List[WorkoutHistory],
    exercises: List[Exercise],
    full_history: Optional[List[WorkoutHistory]] = None,
    now: Optional[datetime.datetime] = None,
) -> AnalyticsSummary:
    """Aggregate ``history`` into an :class:`AnalyticsSummary`.

    ``history`` is the time-filtered slice; weekly frequency always uses
    ``full_history`` (defaults to ``history``). Performed exercises whose id
    is missing from ``exercises`` contribute nothing and warmup sets are
    ignored everywhere.
    """
    catalog = {e.id: e for e in exercises}
    total_sets = 0
    total_volume = 0.0
    total_duration = 0
    categories: Dict[str, int] = {}
    best_sets: Dict[str, PerformedSet] = {}
    cardio: Dict[str, Dict[str, float]] = {}

    for workout in history:
        total_duration += workout.duration
        for performed in workout.exercises:
            exercise = catalog.get(performed.exercise_id)
            if exercise is None:
                continue
            for s in performed.sets or []:
                if s.is_warmup:
                    continue
                total_sets += 1
                total_volume += s.weight * s.reps
                category = exercise.category.value
                categories[category] = categories.get(category, 0) + 1
                best = best_sets.get(exercise.id)
                if best is None or s.weight > best.weight:
                    best_sets[exercise.id] = s
            perf = performed.cardio_performance
            if perf is not None:
                entry = cardio.setdefault(
                    exercise.id, {"sessions": 0, "duration": 0, "distance": 0.0}
                )
                entry["sessions"] += 1
                entry["duration"] = max(entry["duration"], perf.duration)
                entry["distance"] = max(entry["distance"], perf.distance or 0.0)

    records = [
        PersonalRecord(
            exercise_id=eid,
            name=catalog[eid].name,
            weight=s.weight,
            reps=s.reps,
            estimated_1rm=MathTools.epley_1rm(s.weight, s.reps),
        )
        for eid, s in best_sets.items()
        if s.weight > 0
    ]
    records.sort(key=lambda r: r.estimated_1rm, reverse=True)

    ranked_cardio = sorted(cardio.items(), key=lambda kv: kv[1]["sessions"], reverse=True)
    bests = [
        CardioBest(
            exercise_id=eid,
            name=catalog[eid].name,
            sessions=int(data["sessions"]),
            longest_duration=int(data["duration"]),
            greatest_distance=data["distance"] or None,
        )
        for eid, data in ranked_cardio[:TOP_CARDIO_EXERCISES]
    ]

    distribution = dict(sorted(categories.items(), key=lambda kv: kv[1], reverse=True))
    if not math.isfinite(total_volume):
        total_volume = 0.0
    workouts = len(history)
    return AnalyticsSummary(
        total_workouts=workouts,
        total_sets=total_sets,
        total_volume=round(total_volume, 2),
        average_duration_minutes=(
            MathTools.round_half_up(total_duration / workouts / 60) if workouts else 0
        ),
        workout_density=MathTools.density(total_volume, total_duration),
        category_sets_distribution=distribution,
        category_percentages={
            c: MathTools.percentage(n, total_sets) for c, n in distribution.items()
        },
        weekly_frequency=weekly_frequency(
            history if full_history is None else full_history, now
        ),
        personal_records=records[:TOP_PERSONAL_RECORDS],
        cardio_bests=bests,
    )


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(
        self,
        history_repo: HistoryRepository,
        exercise_repo: ExerciseRepository,
    ) -> None:
        self.history = history_repo
        self.exercises = exercise_repo

    def overview(
        self,
        user_id: str,
        time_range: str = "all",
        now: Optional[datetime.datetime] = None,
    ) -> AnalyticsSummary:
        full = sort_history(self.history.fetch_all_for_user(user_id))
        return compute_analytics(
            filter_history(full, time_range, now),
            self.exercises.fetch_all_for_user(user_id),
            full_history=full,
            now=now,
        )

    def exercise_history(self, user_id: str, exercise_id: str) -> List[Dict]:
        """Return the working sets logged for ``exercise_id``, newest first."""
        rows = []
        for workout in sort_history(self.history.fetch_all_for_user(user_id)):
            for performed in workout.exercises:
                if performed.exercise_id != exercise_id:
                    continue
                for s in performed.sets or []:
                    if s.is_warmup:
                        continue
                    rows.append(
                        {
                            "date": workout.date,
                            "weight": s.weight,
                            "reps": s.reps,
                            "volume": MathTools.volume([(s.reps, s.weight)]),
                            "est_1rm": MathTools.epley_1rm(s.weight, s.reps),
                        }
                    )
        return rows
