import os
import sys
import sqlite3
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from fitness_store import (
    ADD_WORKOUT_TO_HISTORY,
    DELETE_PLAN,
    Action,
    FitnessState,
    FitnessStore,
    reduce,
)
from models import AVATARS, PerformedExercise, PerformedSet, PlanExercise, WorkoutDraft, WorkoutHistory, WorkoutPlan


def draft(date: str) -> WorkoutDraft:
    return WorkoutDraft(
        plan_id="p1",
        plan_name="Push",
        date=date,
        duration=600,
        exercises=[
            PerformedExercise(exercise_id="e1", sets=[PerformedSet(weight=50, reps=10)])
        ],
    )


class ReducerTestCase(unittest.TestCase):
    def test_reduce_returns_new_state(self) -> None:
        plan = WorkoutPlan(id="p1", name="Push")
        state = FitnessState(user_id="u1", plans=[plan])
        new_state = reduce(state, Action(DELETE_PLAN, "p1"))
        self.assertEqual(new_state.plans, [])
        self.assertEqual(state.plans, [plan])

    def test_history_sorted_after_insert(self) -> None:
        state = FitnessState(user_id="u1")
        for wid, date in (("a", "2024-03-01T10:00:00Z"), ("b", "2024-03-05T10:00:00Z"), ("c", "2024-02-01T10:00:00Z")):
            record = WorkoutHistory(id=wid, **draft(date).model_dump())
            state = reduce(state, Action(ADD_WORKOUT_TO_HISTORY, record))
        self.assertEqual([w.id for w in state.history], ["b", "a", "c"])

    def test_unknown_action(self) -> None:
        with self.assertRaises(ValueError):
            reduce(FitnessState(), Action("NOPE"))


class FitnessStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_store.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.store = FitnessStore.from_path(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_operations_without_user_are_noops(self) -> None:
        self.assertIsNone(self.store.add_exercise("Squat", "Legs", "Strength"))
        self.assertIsNone(self.store.delete_plan("p1"))
        self.assertIsNone(self.store.add_workout_to_history(draft("2024-03-01T10:00:00Z")))
        self.assertIsNone(self.store.refetch())
        self.assertEqual(self.store.exercises.fetch_all_for_user(""), [])

    def test_first_login_creates_profile(self) -> None:
        state = self.store.load_session("u1", "jordan@example.com")
        self.assertEqual(state.profile.name, "jordan")
        self.assertIn(state.profile.avatar, AVATARS)
        self.store.update_profile("Jordan", AVATARS[0])
        other = FitnessStore.from_path(self.db_path)
        self.assertEqual(other.load_session("u1", "ignored@example.com").profile.name, "Jordan")

    def test_profile_name_fallback(self) -> None:
        self.assertEqual(self.store.load_session("u1").profile.name, "Gymrat")

    def test_crud_round_trip(self) -> None:
        self.store.load_session("u1")
        squat = self.store.add_exercise("Squat", "Legs", "Strength")
        plan = self.store.add_plan(
            "Legs", [PlanExercise(exercise_id=squat.id, number_of_sets=5, rep_range="5")]
        )
        older = self.store.add_workout_to_history(draft("2024-03-01T10:00:00Z"))
        newer = self.store.add_workout_to_history(draft("2024-03-05T10:00:00Z"))
        self.assertEqual([w.id for w in self.store.state.history], [newer.id, older.id])

        self.store.update_exercise(squat.model_copy(update={"name": "Back Squat"}))
        self.store.update_plan(plan.model_copy(update={"name": "Leg Day"}))
        self.store.refetch()
        self.assertEqual(self.store.state.exercises[0].name, "Back Squat")
        self.assertEqual(self.store.state.plans[0].name, "Leg Day")
        self.assertEqual(len(self.store.state.history), 2)

        self.assertTrue(self.store.delete_workout_from_history(older.id))
        self.assertTrue(self.store.delete_plan(plan.id))
        self.assertTrue(self.store.delete_exercise(squat.id))
        self.store.refetch()
        self.assertEqual(self.store.state.exercises, [])
        self.assertEqual(self.store.state.plans, [])
        self.assertEqual([w.id for w in self.store.state.history], [newer.id])

    def test_failed_update_keeps_local_change(self) -> None:
        self.store.load_session("u1")
        squat = self.store.add_exercise("Squat", "Legs", "Strength")
        renamed = squat.model_copy(update={"name": "Front Squat"})
        with mock.patch.object(
            self.store.exercises, "update", side_effect=sqlite3.OperationalError("locked")
        ):
            with self.assertLogs("fitness_store", level="ERROR"):
                self.store.update_exercise(renamed)
        self.assertEqual(self.store.state.exercises[0].name, "Front Squat")

    def test_failed_create_registers_nothing(self) -> None:
        self.store.load_session("u1")
        with mock.patch.object(
            self.store.plans, "create", side_effect=sqlite3.OperationalError("locked")
        ):
            with self.assertLogs("fitness_store", level="ERROR"):
                self.assertIsNone(self.store.add_plan("Legs", []))
        self.assertEqual(self.store.state.plans, [])
        self.assertIsNone(self.store.add_exercise("Squat", "Arms", "Strength"))
        self.assertEqual(self.store.state.exercises, [])

    def test_delete_account(self) -> None:
        self.store.load_session("u1")
        self.store.add_exercise("Squat", "Legs", "Strength")
        self.store.add_workout_to_history(draft("2024-03-01T10:00:00Z"))
        self.assertTrue(self.store.delete_account())
        self.assertIsNone(self.store.user_id)
        self.assertIsNone(self.store.profiles.fetch("u1"))
        self.assertEqual(self.store.exercises.fetch_all_for_user("u1"), [])
        self.assertEqual(self.store.history.fetch_all_for_user("u1"), [])

    def test_log_out(self) -> None:
        self.store.load_session("u1")
        self.store.log_out()
        self.assertEqual(self.store.state, FitnessState())


if __name__ == "__main__":
    unittest.main()
