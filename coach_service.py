from __future__ import annotations
import json
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from google import genai

from localization import translator

if TYPE_CHECKING:
    from db import SettingsRepository
    from fitness_store import FitnessStore
    from stats_service import AnalyticsSummary

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-flash-preview"
RECENT_HISTORY_ENTRIES = 5

SYSTEM_INSTRUCTION = (
    "You are an expert fitness coach and nutritionist named Gymrat AI. "
    "You are helping a user with their fitness journey. Your tone should be "
    "encouraging and informative. Use the provided user data to give "
    "personalized advice. Keep your answers concise and well-formatted using "
    "markdown (e.g., lists, bold text)."
)

SUGGESTED_PROMPTS = [
    "Analyze my last workout.",
    "Suggest a chest exercise to add to my 'Push Day' plan.",
    "How can I improve my squat form?",
    "What should I eat after a workout?",
]


class TextGenerator:
    """Interface of the remote text-generation service."""

    async def generate(self, prompt: str, system_instruction: str) -> str:
        raise NotImplementedError


class GeminiTextGenerator(TextGenerator):
    def __init__(self, api_key: str, model: str = DEFAULT_MODEL) -> None:
        self.client = genai.Client(api_key=api_key)
        self.model = model

    async def generate(self, prompt: str, system_instruction: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=genai.types.GenerateContentConfig(
                system_instruction=system_instruction
            ),
        )
        return response.text or ""


def user_data_context(store: "FitnessStore") -> str:
    state = store.state
    return json.dumps(
        {
            "plans": [
                {"name": p.name, "exercises": len(p.exercises)} for p in state.plans
            ],
            "recentHistory": [
                {
                    "planName": h.plan_name,
                    "date": h.date,
                    "exercises": len(h.exercises),
                }
                for h in state.history[:RECENT_HISTORY_ENTRIES]
            ],
            "availableExercises": [e.name for e in state.exercises],
        },
        ensure_ascii=False,
    )


def build_prompt(store: "FitnessStore", question: str) -> str:
    return f'User Data Context: {user_data_context(store)}\n\nUser Question: "{question}"'


def analysis_prompt(summary: "AnalyticsSummary") -> str:
    """Return the prompt that asks the coach to review ``summary``."""
    return (
        "Please provide a detailed analysis of my workout data. Give me insights "
        "on my consistency, volume, muscle group balance, and suggest areas for "
        "improvement. Be encouraging but also direct about where I can do better.\n\n"
        "My Analytics Data:\n"
        f"- Total Workouts: {summary.total_workouts}\n"
        f"- Total Volume Lifted: {summary.total_volume:,.0f} kg\n"
        f"- Average Workout Duration: {summary.average_duration_minutes} minutes\n"
        "- Muscle Group Focus (by exercises logged): "
        f"{json.dumps(summary.category_sets_distribution)}\n"
        "- Recent Weekly Workouts (last 4 weeks): "
        f"{json.dumps(summary.weekly_frequency)}\n"
    )


class CoachService:
    """Answers coaching questions with the user's data as context."""

    def __init__(
        self,
        store: "FitnessStore",
        settings: Optional["SettingsRepository"] = None,
        generator: Optional[TextGenerator] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self._generator = generator

    def _resolve_generator(self) -> Optional[TextGenerator]:
        if self._generator is not None:
            return self._generator
        if self.settings is None or not self.settings.get_bool("ai_enabled", True):
            return None
        api_key = self.settings.secret("gemini_api_key")
        if not api_key:
            return None
        model = self.settings.get_text("ai_model", DEFAULT_MODEL)
        self._generator = GeminiTextGenerator(api_key, model)
        return self._generator

    def is_configured(self) -> bool:
        return self._resolve_generator() is not None

    async def respond(self, question: str) -> str:
        generator = self._resolve_generator()
        if generator is None:
            return translator.gettext("ai_not_configured")
        try:
            return await generator.generate(
                build_prompt(self.store, question), SYSTEM_INSTRUCTION
            )
        except Exception:
            logger.exception("Error calling text generation service")
            return translator.gettext("ai_unavailable")


class ChatConversation:
    """Message list of one open coaching chat."""

    def __init__(self, coach: CoachService, initial_prompt: Optional[str] = None) -> None:
        self.coach = coach
        self.initial_prompt = initial_prompt
        self.messages: List[Dict[str, str]] = []
        self.active = True
        if not initial_prompt:
            self.messages.append(
                {"role": "model", "content": translator.gettext("ai_greeting")}
            )

    async def open(self) -> Optional[str]:
        """Send the initial prompt, if the chat was opened with one."""
        if not self.initial_prompt:
            return None
        return await self.ask(self.initial_prompt)

    async def ask(self, prompt: str) -> Optional[str]:
        if not self.active or not prompt.strip():
            return None
        self.messages.append({"role": "user", "content": prompt})
        answer = await self.coach.respond(prompt)
        if not self.active:
            return None
        self.messages.append({"role": "model", "content": answer})
        return answer

    def close(self) -> None:
        self.active = False
