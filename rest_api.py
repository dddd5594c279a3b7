import logging
from typing import Dict, List, Optional
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Response
from pydantic import ValidationError

from coach_service import ChatConversation, CoachService, TextGenerator, analysis_prompt
from config import APP_VERSION
from db import AsyncHistoryRepository, SettingsRepository
from fitness_store import FitnessStore
from localization import translator
from models import Exercise, ExerciseType, PlanExercise, WorkoutPlan
from planner_service import PlannerService
from session_service import SessionManager, WorkoutSession
from settings_schema import validate_settings
from stats_service import StatisticsService, compute_analytics, filter_history

logger = logging.getLogger(__name__)


def require_user(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="missing X-User-Id header")
    return x_user_id


def _plan_exercises(items: List[Dict]) -> List[PlanExercise]:
    try:
        return [PlanExercise.model_validate(i) for i in items]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


class FitnessAPI:
    """Provides REST endpoints for the fitness tracker."""

    def __init__(
        self,
        db_path: str = "fitness.db",
        yaml_path: str = "settings.yaml",
        *,
        generator: Optional[TextGenerator] = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.async_history = AsyncHistoryRepository(db_path)
        self.sessions = SessionManager()
        self.generator = generator
        self._stores: Dict[str, FitnessStore] = {}
        translator.set_language(self.settings.get_text("language", "en"))
        self.app = FastAPI(
            title="Gymrat API",
            description="REST API for workout plans, sessions and analytics",
            version=APP_VERSION,
        )
        self._setup_routes()

    def store_for(self, user_id: str, email: Optional[str] = None) -> FitnessStore:
        store = self._stores.get(user_id)
        if store is None:
            store = FitnessStore.from_path(self.db_path)
            store.load_session(user_id, email)
            self._stores[user_id] = store
        return store

    def coach_for(self, store: FitnessStore) -> CoachService:
        return CoachService(store, self.settings, self.generator)

    def _session(self, user_id: str, session_id: str) -> WorkoutSession:
        try:
            return self.sessions.get(user_id, session_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @staticmethod
    def _applied(ok: bool, session: WorkoutSession) -> dict:
        if not ok:
            raise HTTPException(status_code=400, detail="operation not applicable")
        return session.snapshot()

    def _setup_routes(self) -> None:
        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.settings.all_settings()
                return {"status": "ok", "version": APP_VERSION}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        # profile ------------------------------------------------------------

        @self.app.get("/profile")
        def get_profile(email: str = None, user_id: str = Depends(require_user)):
            store = self.store_for(user_id, email)
            return store.state.profile.to_dict()

        @self.app.put("/profile")
        def update_profile(
            name: str, avatar: str, user_id: str = Depends(require_user)
        ):
            if not name.strip():
                raise HTTPException(status_code=400, detail="name is required")
            profile = self.store_for(user_id).update_profile(name.strip(), avatar)
            return profile.to_dict()

        @self.app.delete("/profile")
        def delete_account(user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            if not store.delete_account():
                raise HTTPException(status_code=500, detail="account deletion failed")
            self._stores.pop(user_id, None)
            self.sessions.discard(user_id)
            return {"status": "deleted"}

        # exercises ----------------------------------------------------------

        @self.app.get("/exercises")
        def list_exercises(user_id: str = Depends(require_user)):
            return [e.to_dict() for e in self.store_for(user_id).state.exercises]

        @self.app.post("/exercises")
        def add_exercise(
            name: str,
            category: str,
            exercise_type: str = ExerciseType.STRENGTH.value,
            user_id: str = Depends(require_user),
        ):
            if not name.strip():
                raise HTTPException(status_code=400, detail="name is required")
            try:
                Exercise(id="", name=name, category=category, exercise_type=exercise_type)
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=str(e))
            exercise = self.store_for(user_id).add_exercise(
                name.strip(), category, exercise_type
            )
            if exercise is None:
                raise HTTPException(status_code=500, detail="exercise not saved")
            return exercise.to_dict()

        @self.app.put("/exercises/{exercise_id}")
        def update_exercise(
            exercise_id: str,
            name: str = None,
            category: str = None,
            exercise_type: str = None,
            user_id: str = Depends(require_user),
        ):
            store = self.store_for(user_id)
            current = store.find_exercise(exercise_id)
            if current is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            data = current.model_dump()
            if name is not None:
                data["name"] = name
            if category is not None:
                data["category"] = category
            if exercise_type is not None:
                data["exercise_type"] = exercise_type
            try:
                exercise = Exercise(**data)
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return store.update_exercise(exercise).to_dict()

        @self.app.delete("/exercises/{exercise_id}")
        def delete_exercise(exercise_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            if store.find_exercise(exercise_id) is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            store.delete_exercise(exercise_id)
            return {"status": "deleted"}

        @self.app.get("/exercises/{exercise_id}/history")
        def exercise_history(exercise_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            stats = StatisticsService(store.history, store.exercises)
            return stats.exercise_history(user_id, exercise_id)

        # plans --------------------------------------------------------------

        @self.app.get("/plans")
        def list_plans(user_id: str = Depends(require_user)):
            return [p.to_dict() for p in self.store_for(user_id).state.plans]

        @self.app.get("/plans/{plan_id}")
        def get_plan(plan_id: str, user_id: str = Depends(require_user)):
            plan = self.store_for(user_id).find_plan(plan_id)
            if plan is None:
                raise HTTPException(status_code=404, detail="plan not found")
            return plan.to_dict()

        @self.app.post("/plans")
        def create_plan(
            name: str,
            exercises: List[Dict] = Body(...),
            user_id: str = Depends(require_user),
        ):
            planner = PlannerService(self.store_for(user_id))
            try:
                plan = planner.create_plan(name, _plan_exercises(exercises))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if plan is None:
                raise HTTPException(status_code=500, detail="plan not saved")
            return plan.to_dict()

        @self.app.put("/plans/{plan_id}")
        def update_plan(
            plan_id: str,
            name: str = None,
            exercises: Optional[List[Dict]] = Body(None),
            user_id: str = Depends(require_user),
        ):
            store = self.store_for(user_id)
            current = store.find_plan(plan_id)
            if current is None:
                raise HTTPException(status_code=404, detail="plan not found")
            plan = WorkoutPlan(
                id=current.id,
                user_id=current.user_id,
                name=name.strip() if name else current.name,
                exercises=(
                    _plan_exercises(exercises)
                    if exercises is not None
                    else current.exercises
                ),
            )
            if not plan.exercises:
                raise HTTPException(
                    status_code=400, detail="plan needs at least one exercise"
                )
            return store.update_plan(plan).to_dict()

        @self.app.delete("/plans/{plan_id}")
        def delete_plan(plan_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            if store.find_plan(plan_id) is None:
                raise HTTPException(status_code=404, detail="plan not found")
            store.delete_plan(plan_id)
            return {"status": "deleted"}

        @self.app.get("/plans/{plan_id}/export")
        def export_plan(plan_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            planner = PlannerService(store)
            try:
                content = planner.export_plan_json(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            filename = planner.export_filename(store.find_plan(plan_id))
            return Response(
                content=content,
                media_type="application/json",
                headers={"Content-Disposition": f"attachment; filename={filename}"},
            )

        @self.app.post("/plans/import")
        def import_plan(document: Dict = Body(...), user_id: str = Depends(require_user)):
            result = PlannerService(self.store_for(user_id)).import_plan(document)
            if not result.ok:
                raise HTTPException(status_code=400, detail=result.message)
            return {"message": result.message, "plan": result.plan.to_dict()}

        # history ------------------------------------------------------------

        @self.app.get("/history")
        def list_history(time_range: str = "all", user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            try:
                history = filter_history(store.state.history, time_range)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [w.to_dict() for w in history]

        @self.app.get("/history/{history_id}")
        def get_workout(history_id: str, user_id: str = Depends(require_user)):
            workout = self.store_for(user_id).find_workout(history_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return workout.to_dict()

        @self.app.delete("/history/{history_id}")
        def delete_workout(history_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            if store.find_workout(history_id) is None:
                raise HTTPException(status_code=404, detail="workout not found")
            store.delete_workout_from_history(history_id)
            return {"status": "deleted"}

        # analytics ----------------------------------------------------------

        @self.app.get("/analytics")
        def analytics(time_range: str = None, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            time_range = time_range or self.settings.get_text("default_time_range", "all")
            try:
                filtered = filter_history(store.state.history, time_range)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            summary = compute_analytics(
                filtered, store.state.exercises, full_history=store.state.history
            )
            return summary.to_dict()

        # sessions -----------------------------------------------------------

        @self.app.post("/sessions")
        def start_session(plan_id: str, user_id: str = Depends(require_user)):
            store = self.store_for(user_id)
            plan = store.find_plan(plan_id)
            if plan is None:
                raise HTTPException(status_code=404, detail="plan not found")
            session = self.sessions.start(user_id, plan, store.state.exercises)
            return session.snapshot()

        @self.app.get("/sessions/{session_id}")
        def get_session(session_id: str, user_id: str = Depends(require_user)):
            return self._session(user_id, session_id).snapshot()

        @self.app.post("/sessions/{session_id}/next")
        def next_exercise(session_id: str, user_id: str = Depends(require_user)):
            session = self._session(user_id, session_id)
            return self._applied(session.next(), session)

        @self.app.post("/sessions/{session_id}/previous")
        def previous_exercise(session_id: str, user_id: str = Depends(require_user)):
            session = self._session(user_id, session_id)
            return self._applied(session.previous(), session)

        @self.app.put("/sessions/{session_id}/sets")
        def record_set(
            session_id: str,
            exercise_id: str,
            set_index: int,
            weight: str = None,
            reps: str = None,
            user_id: str = Depends(require_user),
        ):
            session = self._session(user_id, session_id)
            return self._applied(
                session.record_set(exercise_id, set_index, weight, reps), session
            )

        @self.app.put("/sessions/{session_id}/cardio")
        def record_cardio(
            session_id: str,
            exercise_id: str,
            minutes: str = None,
            seconds: str = None,
            distance: str = None,
            user_id: str = Depends(require_user),
        ):
            session = self._session(user_id, session_id)
            return self._applied(
                session.record_cardio(exercise_id, minutes, seconds, distance), session
            )

        @self.app.put("/sessions/{session_id}/notes")
        def record_note(
            session_id: str,
            exercise_id: str,
            text: str = Body(..., embed=True),
            user_id: str = Depends(require_user),
        ):
            session = self._session(user_id, session_id)
            return self._applied(session.record_note(exercise_id, text), session)

        @self.app.post("/sessions/{session_id}/reorder")
        def reorder_exercises(
            session_id: str,
            from_index: int,
            to_index: int,
            user_id: str = Depends(require_user),
        ):
            session = self._session(user_id, session_id)
            return self._applied(session.reorder(from_index, to_index), session)

        @self.app.delete("/sessions/{session_id}/exercises/{index}")
        def remove_exercise(
            session_id: str, index: int, user_id: str = Depends(require_user)
        ):
            session = self._session(user_id, session_id)
            return self._applied(session.remove(index), session)

        @self.app.put("/sessions/{session_id}/exercises/{index}")
        def replace_exercise(
            session_id: str,
            index: int,
            exercise_id: str,
            user_id: str = Depends(require_user),
        ):
            session = self._session(user_id, session_id)
            return self._applied(session.replace(index, exercise_id), session)

        @self.app.get("/sessions/{session_id}/previous_performance")
        def previous_performance(session_id: str, user_id: str = Depends(require_user)):
            session = self._session(user_id, session_id)
            performed = session.previous_performance(self.store_for(user_id).state.history)
            return performed.to_dict() if performed else None

        @self.app.post("/sessions/{session_id}/finish")
        async def finish_session(session_id: str, user_id: str = Depends(require_user)):
            session = self._session(user_id, session_id)
            # a failed save keeps the session so finishing again retries it
            draft = session.finish() or session.draft
            if draft is None:
                self.sessions.discard(user_id)
                return {"saved": False, "workout": None}
            try:
                record = await self.async_history.create(user_id, draft)
            except Exception as e:
                logger.exception("Error saving finished workout")
                raise HTTPException(status_code=500, detail=str(e))
            self.sessions.discard(user_id)
            self.store_for(user_id).register_workout(record)
            return {"saved": True, "workout": record.to_dict()}

        @self.app.delete("/sessions/{session_id}")
        def discard_session(session_id: str, user_id: str = Depends(require_user)):
            self._session(user_id, session_id)
            self.sessions.discard(user_id)
            return {"status": "discarded"}

        # coaching -----------------------------------------------------------

        @self.app.post("/coach")
        async def ask_coach(
            prompt: str = Body(..., embed=True), user_id: str = Depends(require_user)
        ):
            conversation = ChatConversation(self.coach_for(self.store_for(user_id)))
            answer = await conversation.ask(prompt)
            if answer is None:
                raise HTTPException(status_code=400, detail="prompt is required")
            return {"response": answer, "messages": conversation.messages}

        @self.app.post("/coach/analysis")
        async def ask_analysis(
            time_range: str = "all", user_id: str = Depends(require_user)
        ):
            store = self.store_for(user_id)
            try:
                filtered = filter_history(store.state.history, time_range)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            summary = compute_analytics(
                filtered, store.state.exercises, full_history=store.state.history
            )
            conversation = ChatConversation(
                self.coach_for(store), initial_prompt=analysis_prompt(summary)
            )
            answer = await conversation.open()
            return {"response": answer, "messages": conversation.messages}

        # settings -----------------------------------------------------------

        @self.app.get("/settings")
        def get_settings():
            data = self.settings.all_settings()
            data["ai_configured"] = bool(
                self.generator or self.settings.secret("gemini_api_key")
            )
            return data

        @self.app.post("/settings")
        def update_settings(
            language: str = None,
            weight_unit: str = None,
            default_time_range: str = None,
            ai_enabled: bool = None,
            ai_model: str = None,
            gemini_api_key: str = None,
        ):
            text_values = {
                "language": language,
                "weight_unit": weight_unit,
                "default_time_range": default_time_range,
                "ai_model": ai_model,
            }
            updates = {k: v for k, v in text_values.items() if v is not None}
            if ai_enabled is not None:
                updates["ai_enabled"] = ai_enabled
            try:
                validate_settings(updates)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            for key, value in updates.items():
                if key in SettingsRepository.BOOL_KEYS:
                    self.settings.set_bool(key, value)
                else:
                    self.settings.set_text(key, value)
            if gemini_api_key is not None:
                self.settings.set_secret("gemini_api_key", gemini_api_key)
            if language is not None:
                translator.set_language(language)
            return {"status": "updated"}

        @self.app.get("/settings/backup")
        def backup_db():
            with open(self.db_path, "rb") as f:
                data = f.read()
            return Response(
                content=data,
                media_type="application/octet-stream",
                headers={"Content-Disposition": "attachment; filename=backup.db"},
            )


def create_app(db_path: str = "fitness.db", yaml_path: str = "settings.yaml") -> FastAPI:
    return FitnessAPI(db_path, yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
