from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional
from pydantic import ValidationError

from localization import translator
from models import Exercise, ExerciseCategory, ExerciseType, PlanExercise, WorkoutPlan

if TYPE_CHECKING:
    from fitness_store import FitnessStore

logger = logging.getLogger(__name__)

DEFAULT_SETS = 3
DEFAULT_REP_RANGE = "8-12"
DEFAULT_CARDIO_SECONDS = 600


class PlanImportError(ValueError):
    """Raised when an imported plan document cannot be applied."""


@dataclass
class PlanImportResult:
    plan: Optional[WorkoutPlan] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.plan is not None


def default_plan_exercise(exercise: Exercise) -> PlanExercise:
    """Return the default prescription for a newly chosen exercise."""
    if exercise.exercise_type == ExerciseType.STRENGTH:
        return PlanExercise(
            exercise_id=exercise.id,
            number_of_sets=DEFAULT_SETS,
            rep_range=DEFAULT_REP_RANGE,
        )
    return PlanExercise(exercise_id=exercise.id, duration=DEFAULT_CARDIO_SECONDS)


def _seconds_to_minutes(seconds: int) -> float | int:
    minutes = seconds / 60
    return int(minutes) if float(minutes).is_integer() else minutes


class PlannerService:
    """Creates plans and converts them to and from the exchange document."""

    def __init__(self, store: "FitnessStore") -> None:
        self.store = store

    def create_plan(
        self, name: str, exercises: list[PlanExercise]
    ) -> Optional[WorkoutPlan]:
        if not name or not name.strip():
            raise ValueError("plan name is required")
        if not exercises:
            raise ValueError("plan needs at least one exercise")
        return self.store.add_plan(name.strip(), exercises)

    def export_plan(self, plan_id: str) -> dict:
        plan = self.store.find_plan(plan_id)
        if plan is None:
            raise ValueError("plan not found")
        items = []
        for pe in plan.exercises:
            exercise = self.store.find_exercise(pe.exercise_id)
            if exercise is None:
                continue
            details = pe.to_dict()
            details.pop("exerciseId")
            if pe.duration:
                details["duration"] = _seconds_to_minutes(pe.duration)
            items.append(
                {
                    "exercise": {
                        "name": exercise.name,
                        "category": exercise.category.value,
                        "exerciseType": exercise.exercise_type.value,
                    },
                    "planDetails": details,
                }
            )
        return {"name": plan.name, "exercises": items}

    def export_plan_json(self, plan_id: str) -> str:
        return json.dumps(self.export_plan(plan_id), indent=2, ensure_ascii=False)

    @staticmethod
    def export_filename(plan: WorkoutPlan) -> str:
        return "gymrat-plan-" + "_".join(plan.name.split()) + ".json"

    def _parse_document(self, document: Any) -> tuple[str, list[tuple[dict, dict]]]:
        if (
            not isinstance(document, dict)
            or not isinstance(document.get("name"), str)
            or not document["name"]
            or not isinstance(document.get("exercises"), list)
        ):
            raise PlanImportError(translator.gettext("import_invalid_format"))
        items: list[tuple[dict, dict]] = []
        for item in document["exercises"]:
            exercise = item.get("exercise") if isinstance(item, dict) else None
            if not isinstance(exercise, dict) or not all(
                exercise.get(k) for k in ("name", "category", "exerciseType")
            ):
                logger.warning("Skipping invalid exercise item in plan import: %r", item)
                continue
            if not all(
                isinstance(exercise[k], str) for k in ("name", "category", "exerciseType")
            ):
                raise PlanImportError(translator.gettext("import_invalid_format"))
            exercise = {k: exercise[k] for k in ("name", "category", "exerciseType")}
            name = exercise["name"]
            for field, enum in (("category", ExerciseCategory), ("exerciseType", ExerciseType)):
                try:
                    enum(exercise[field])
                except ValueError:
                    raise PlanImportError(
                        translator.gettext(
                            "import_invalid_value",
                            field=field,
                            value=exercise[field],
                            name=name,
                        )
                    )
            details = item.get("planDetails") or {}
            if not isinstance(details, dict):
                raise PlanImportError(translator.gettext("import_invalid_format"))
            details = dict(details)
            details.pop("exerciseId", None)
            if details.get("duration"):
                try:
                    details["duration"] = round(float(details["duration"]) * 60)
                except (TypeError, ValueError, OverflowError):
                    raise PlanImportError(translator.gettext("import_invalid_format"))
            try:
                PlanExercise(exercise_id="", **details)
            except (TypeError, ValidationError) as e:
                raise PlanImportError(str(e))
            items.append((exercise, details))
        if not items:
            raise PlanImportError(translator.gettext("import_no_exercises"))
        return document["name"], items

    def _unique_name(self, base: str) -> str:
        taken = {p.name for p in self.store.state.plans}
        name = base
        counter = 1
        while name in taken:
            name = f"{base} (Imported {counter})"
            counter += 1
        return name

    def _apply_import(self, document: Any) -> WorkoutPlan:
        base_name, items = self._parse_document(document)
        created: list[Exercise] = []
        try:
            return self._save_import(base_name, items, created)
        except PlanImportError:
            # an aborted import leaves the catalog as it found it
            for exercise in created:
                self.store.delete_exercise(exercise.id)
            raise

    def _save_import(
        self, base_name: str, items: list[tuple[dict, dict]], created: list[Exercise]
    ) -> WorkoutPlan:
        resolved: list[PlanExercise] = []
        for exercise, details in items:
            match = next(
                (
                    e
                    for e in self.store.state.exercises
                    if e.name.lower() == exercise["name"].lower()
                ),
                None,
            )
            if match is None:
                match = self.store.add_exercise(
                    exercise["name"], exercise["category"], exercise["exerciseType"]
                )
                if match is None:
                    raise PlanImportError(
                        translator.gettext("import_create_failed", name=exercise["name"])
                    )
                created.append(match)
            resolved.append(PlanExercise(exercise_id=match.id, **details))
        plan = self.store.add_plan(self._unique_name(base_name), resolved)
        if plan is None:
            raise PlanImportError(translator.gettext("import_save_failed"))
        return plan

    def import_plan(self, document: Any) -> PlanImportResult:
        """Import an exported plan document and report the outcome."""
        try:
            plan = self._apply_import(document)
        except PlanImportError as e:
            logger.error("Failed to import plan: %s", e)
            return PlanImportResult(
                message=translator.gettext("import_plan_error", error=str(e))
            )
        return PlanImportResult(
            plan=plan,
            message=translator.gettext("import_plan_success", plan_name=plan.name),
        )

    def import_plan_json(self, text: str) -> PlanImportResult:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Failed to import plan: %s", e)
            return PlanImportResult(
                message=translator.gettext("import_plan_error", error=str(e))
            )
        return self.import_plan(document)
