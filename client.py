import requests
from typing import Optional


class FitnessClient:
    """Simple REST client for the fitness API."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = "") -> None:
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers["X-User-Id"] = user_id

    def _request(self, method: str, path: str, **kwargs):
        resp = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        resp.raise_for_status()
        return resp.json()

    def health(self) -> dict:
        return self._request("GET", "/health")

    def profile(self, email: Optional[str] = None) -> dict:
        return self._request("GET", "/profile", params={"email": email})

    def list_exercises(self) -> list:
        return self._request("GET", "/exercises")

    def add_exercise(self, name: str, category: str, exercise_type: str = "Strength") -> str:
        return self._request(
            "POST",
            "/exercises",
            params={"name": name, "category": category, "exercise_type": exercise_type},
        )["id"]

    def list_plans(self) -> list:
        return self._request("GET", "/plans")

    def create_plan(self, name: str, exercises: list) -> str:
        return self._request("POST", "/plans", params={"name": name}, json=exercises)["id"]

    def export_plan(self, plan_id: str) -> dict:
        return self._request("GET", f"/plans/{plan_id}/export")

    def import_plan(self, document: dict) -> dict:
        return self._request("POST", "/plans/import", json=document)

    def list_history(self, time_range: str = "all") -> list:
        return self._request("GET", "/history", params={"time_range": time_range})

    def analytics(self, time_range: Optional[str] = None) -> dict:
        return self._request("GET", "/analytics", params={"time_range": time_range})

    def start_session(self, plan_id: str) -> dict:
        return self._request("POST", "/sessions", params={"plan_id": plan_id})

    def record_set(
        self, session_id: str, exercise_id: str, set_index: int, weight: str, reps: str
    ) -> dict:
        return self._request(
            "PUT",
            f"/sessions/{session_id}/sets",
            params={
                "exercise_id": exercise_id,
                "set_index": set_index,
                "weight": weight,
                "reps": reps,
            },
        )

    def finish_session(self, session_id: str) -> dict:
        return self._request("POST", f"/sessions/{session_id}/finish")

    def ask_coach(self, prompt: str) -> str:
        return self._request("POST", "/coach", json={"prompt": prompt})["response"]
