import os
import sys
import asyncio
import json
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from coach_service import (
    SYSTEM_INSTRUCTION,
    ChatConversation,
    CoachService,
    TextGenerator,
    analysis_prompt,
    build_prompt,
)
from db import SettingsRepository
from fitness_store import FitnessStore
from models import PerformedExercise, PerformedSet, PlanExercise, WorkoutDraft
from stats_service import compute_analytics


class RecordingGenerator(TextGenerator):
    def __init__(self, answer: str = "Keep going!") -> None:
        self.answer = answer
        self.calls = []

    async def generate(self, prompt: str, system_instruction: str) -> str:
        self.calls.append((prompt, system_instruction))
        return self.answer


class FailingGenerator(TextGenerator):
    async def generate(self, prompt: str, system_instruction: str) -> str:
        raise ConnectionError("unreachable")


class SlowGenerator(TextGenerator):
    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def generate(self, prompt: str, system_instruction: str) -> str:
        await self.release.wait()
        return "late answer"


@pytest.fixture
def store(tmp_path):
    store = FitnessStore.from_path(str(tmp_path / "coach.db"))
    store.load_session("u1")
    bench = store.add_exercise("Bench Press", "Chest", "Strength")
    store.add_plan("Push Day", [PlanExercise(exercise_id=bench.id, number_of_sets=3)])
    for day in range(1, 8):
        store.add_workout_to_history(
            WorkoutDraft(
                plan_id="p1",
                plan_name="Push Day",
                date=f"2024-03-0{day}T10:00:00+00:00",
                duration=1800,
                exercises=[
                    PerformedExercise(
                        exercise_id=bench.id, sets=[PerformedSet(weight=50, reps=10)]
                    )
                ],
            )
        )
    return store


def test_prompt_contains_user_context(store):
    prompt = build_prompt(store, "How is my bench?")
    context, question = prompt.split("\n\n")
    data = json.loads(context[len("User Data Context: "):])
    assert data["plans"] == [{"name": "Push Day", "exercises": 1}]
    assert len(data["recentHistory"]) == 5
    assert data["recentHistory"][0]["date"] == "2024-03-07T10:00:00+00:00"
    assert data["availableExercises"] == ["Bench Press"]
    assert question == 'User Question: "How is my bench?"'


@pytest.mark.asyncio
async def test_respond_uses_generator(store):
    generator = RecordingGenerator()
    coach = CoachService(store, generator=generator)
    assert await coach.respond("Hi") == "Keep going!"
    prompt, instruction = generator.calls[0]
    assert instruction == SYSTEM_INSTRUCTION
    assert prompt.endswith('User Question: "Hi"')


@pytest.mark.asyncio
async def test_missing_key_reports_not_configured(store, tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    settings = SettingsRepository(str(tmp_path / "coach.db"), str(tmp_path / "s.yaml"))
    coach = CoachService(store, settings)
    assert not coach.is_configured()
    assert "not configured" in await coach.respond("Hi")


@pytest.mark.asyncio
async def test_generator_failure_returns_fallback(store, caplog):
    coach = CoachService(store, generator=FailingGenerator())
    answer = await coach.respond("Hi")
    assert answer.startswith("Sorry")
    assert "Error calling text generation service" in caplog.text


@pytest.mark.asyncio
async def test_conversation_greeting_and_ask(store):
    conversation = ChatConversation(CoachService(store, generator=RecordingGenerator()))
    assert conversation.messages[0]["role"] == "model"
    assert await conversation.open() is None
    assert await conversation.ask("Plan my week") == "Keep going!"
    assert [m["role"] for m in conversation.messages] == ["model", "user", "model"]
    assert await conversation.ask("   ") is None


@pytest.mark.asyncio
async def test_conversation_with_initial_prompt(store):
    conversation = ChatConversation(
        CoachService(store, generator=RecordingGenerator()), initial_prompt="Analyze"
    )
    assert conversation.messages == []
    assert await conversation.open() == "Keep going!"
    assert conversation.messages[0] == {"role": "user", "content": "Analyze"}


@pytest.mark.asyncio
async def test_closed_conversation_discards_late_answer(store):
    generator = SlowGenerator()
    conversation = ChatConversation(CoachService(store, generator=generator))
    pending = asyncio.ensure_future(conversation.ask("Hello?"))
    await asyncio.sleep(0)
    conversation.close()
    generator.release.set()
    assert await pending is None
    assert conversation.messages[-1] == {"role": "user", "content": "Hello?"}
    assert await conversation.ask("Again") is None


def test_analysis_prompt(store):
    summary = compute_analytics(store.state.history, store.state.exercises)
    prompt = analysis_prompt(summary)
    assert "- Total Workouts: 7" in prompt
    assert "- Total Volume Lifted: 3,500 kg" in prompt
    assert "- Average Workout Duration: 30 minutes" in prompt
    assert '{"Chest": 7}' in prompt
