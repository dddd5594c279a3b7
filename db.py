import sqlite3
import aiosqlite
import json
import uuid
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional

from config import YamlConfig
from settings_schema import validate_settings
from models import (
    Profile,
    Exercise,
    PlanExercise,
    WorkoutPlan,
    PerformedExercise,
    WorkoutDraft,
    WorkoutHistory,
)


def new_id() -> str:
    """Return a fresh opaque record identifier."""
    return uuid.uuid4().hex


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "profiles": (
            """CREATE TABLE profiles (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    avatar TEXT NOT NULL
                );""",
            ["id", "name", "avatar"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    exercise_type TEXT NOT NULL DEFAULT 'Strength'
                );""",
            ["id", "user_id", "name", "category", "exercise_type"],
        ),
        "plans": (
            """CREATE TABLE plans (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    exercises TEXT NOT NULL DEFAULT '[]'
                );""",
            ["id", "user_id", "name", "exercises"],
        ),
        "history": (
            """CREATE TABLE history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    plan_id TEXT,
                    plan_name TEXT NOT NULL,
                    date TEXT NOT NULL,
                    duration INTEGER NOT NULL DEFAULT 0,
                    exercises TEXT NOT NULL DEFAULT '[]'
                );""",
            ["id", "user_id", "plan_id", "plan_name", "date", "duration", "exercises"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "fitness.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "exercise_type":
                        return "'Strength'"
                    if col == "exercises":
                        return "'[]'"
                    if col == "duration":
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "language": "en",
            "weight_unit": "kg",
            "default_time_range": "all",
            "ai_enabled": "1",
            "ai_model": "gemini-3-flash-preview",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class ProfileRepository(BaseRepository):
    """Repository for user profiles keyed by the auth identity."""

    def fetch(self, user_id: str) -> Optional[Profile]:
        rows = self.fetch_all(
            "SELECT id, name, avatar FROM profiles WHERE id = ?;", (user_id,)
        )
        if not rows:
            return None
        pid, name, avatar = rows[0]
        return Profile(id=pid, name=name, avatar=avatar)

    def create(self, user_id: str, name: str, avatar: str) -> Profile:
        self.execute(
            "INSERT INTO profiles (id, name, avatar) VALUES (?, ?, ?);",
            (user_id, name, avatar),
        )
        return Profile(id=user_id, name=name, avatar=avatar)

    def update(self, user_id: str, name: str, avatar: str) -> None:
        if not self.execute(
            "UPDATE profiles SET name = ?, avatar = ? WHERE id = ?;",
            (name, avatar, user_id),
        ):
            raise ValueError("profile not found")

    def delete(self, user_id: str) -> None:
        self.execute("DELETE FROM profiles WHERE id = ?;", (user_id,))


class ExerciseRepository(BaseRepository):
    """Repository for the exercise library of each user."""

    @staticmethod
    def _row_to_exercise(row: Tuple) -> Exercise:
        eid, user_id, name, category, exercise_type = row
        return Exercise(
            id=eid,
            user_id=user_id,
            name=name,
            category=category,
            exercise_type=exercise_type,
        )

    def create(
        self, user_id: str, name: str, category: str, exercise_type: str
    ) -> Exercise:
        exercise = Exercise(
            id=new_id(),
            user_id=user_id,
            name=name,
            category=category,
            exercise_type=exercise_type,
        )
        self.execute(
            "INSERT INTO exercises (id, user_id, name, category, exercise_type) VALUES (?, ?, ?, ?, ?);",
            (
                exercise.id,
                user_id,
                exercise.name,
                exercise.category.value,
                exercise.exercise_type.value,
            ),
        )
        return exercise

    def fetch_all_for_user(self, user_id: str) -> List[Exercise]:
        rows = self.fetch_all(
            "SELECT id, user_id, name, category, exercise_type FROM exercises WHERE user_id = ? ORDER BY rowid;",
            (user_id,),
        )
        return [self._row_to_exercise(r) for r in rows]

    def fetch_detail(self, user_id: str, exercise_id: str) -> Exercise:
        rows = self.fetch_all(
            "SELECT id, user_id, name, category, exercise_type FROM exercises WHERE user_id = ? AND id = ?;",
            (user_id, exercise_id),
        )
        if not rows:
            raise ValueError("exercise not found")
        return self._row_to_exercise(rows[0])

    def update(self, user_id: str, exercise: Exercise) -> None:
        if not self.execute(
            "UPDATE exercises SET name = ?, category = ?, exercise_type = ? WHERE user_id = ? AND id = ?;",
            (
                exercise.name,
                exercise.category.value,
                exercise.exercise_type.value,
                user_id,
                exercise.id,
            ),
        ):
            raise ValueError("exercise not found")

    def delete(self, user_id: str, exercise_id: str) -> None:
        if not self.execute(
            "DELETE FROM exercises WHERE user_id = ? AND id = ?;",
            (user_id, exercise_id),
        ):
            raise ValueError("exercise not found")

    def delete_for_user(self, user_id: str) -> None:
        self.execute("DELETE FROM exercises WHERE user_id = ?;", (user_id,))


class PlanRepository(BaseRepository):
    """Repository for workout plans; plan exercises are stored as JSON."""

    @staticmethod
    def _row_to_plan(row: Tuple) -> WorkoutPlan:
        pid, user_id, name, exercises = row
        return WorkoutPlan(
            id=pid,
            user_id=user_id,
            name=name,
            exercises=[PlanExercise.model_validate(e) for e in json.loads(exercises)],
        )

    @staticmethod
    def _dump_exercises(exercises: List[PlanExercise]) -> str:
        return json.dumps([e.to_dict() for e in exercises])

    def create(
        self, user_id: str, name: str, exercises: List[PlanExercise]
    ) -> WorkoutPlan:
        plan = WorkoutPlan(id=new_id(), user_id=user_id, name=name, exercises=exercises)
        self.execute(
            "INSERT INTO plans (id, user_id, name, exercises) VALUES (?, ?, ?, ?);",
            (plan.id, user_id, name, self._dump_exercises(exercises)),
        )
        return plan

    def fetch_all_for_user(self, user_id: str) -> List[WorkoutPlan]:
        rows = self.fetch_all(
            "SELECT id, user_id, name, exercises FROM plans WHERE user_id = ? ORDER BY rowid;",
            (user_id,),
        )
        return [self._row_to_plan(r) for r in rows]

    def fetch_detail(self, user_id: str, plan_id: str) -> WorkoutPlan:
        rows = self.fetch_all(
            "SELECT id, user_id, name, exercises FROM plans WHERE user_id = ? AND id = ?;",
            (user_id, plan_id),
        )
        if not rows:
            raise ValueError("plan not found")
        return self._row_to_plan(rows[0])

    def update(self, user_id: str, plan: WorkoutPlan) -> None:
        if not self.execute(
            "UPDATE plans SET name = ?, exercises = ? WHERE user_id = ? AND id = ?;",
            (plan.name, self._dump_exercises(plan.exercises), user_id, plan.id),
        ):
            raise ValueError("plan not found")

    def delete(self, user_id: str, plan_id: str) -> None:
        if not self.execute(
            "DELETE FROM plans WHERE user_id = ? AND id = ?;", (user_id, plan_id)
        ):
            raise ValueError("plan not found")

    def delete_for_user(self, user_id: str) -> None:
        self.execute("DELETE FROM plans WHERE user_id = ?;", (user_id,))


_HISTORY_COLUMNS = "id, user_id, plan_id, plan_name, date, duration, exercises"


def _row_to_history(row: Tuple) -> WorkoutHistory:
    hid, user_id, plan_id, plan_name, date, duration, exercises = row
    return WorkoutHistory(
        id=hid,
        user_id=user_id,
        plan_id=plan_id or "",
        plan_name=plan_name,
        date=date,
        duration=int(duration),
        exercises=[
            PerformedExercise.model_validate(e) for e in json.loads(exercises)
        ],
    )


def _history_params(user_id: str, record: WorkoutHistory) -> Tuple:
    return (
        record.id,
        user_id,
        record.plan_id,
        record.plan_name,
        record.date,
        record.duration,
        json.dumps([e.to_dict() for e in record.exercises]),
    )


class HistoryRepository(BaseRepository):
    """Repository for finished workouts, newest first."""

    def create(self, user_id: str, draft: WorkoutDraft) -> WorkoutHistory:
        record = WorkoutHistory(id=new_id(), user_id=user_id, **draft.model_dump())
        self.execute(
            f"INSERT INTO history ({_HISTORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?);",
            _history_params(user_id, record),
        )
        return record

    def fetch_all_for_user(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[WorkoutHistory]:
        query = f"SELECT {_HISTORY_COLUMNS} FROM history WHERE user_id = ?"
        params: list[str] = [user_id]
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date DESC;"
        return [_row_to_history(r) for r in self.fetch_all(query, tuple(params))]

    def fetch_detail(self, user_id: str, history_id: str) -> WorkoutHistory:
        rows = self.fetch_all(
            f"SELECT {_HISTORY_COLUMNS} FROM history WHERE user_id = ? AND id = ?;",
            (user_id, history_id),
        )
        if not rows:
            raise ValueError("workout not found")
        return _row_to_history(rows[0])

    def delete(self, user_id: str, history_id: str) -> None:
        if not self.execute(
            "DELETE FROM history WHERE user_id = ? AND id = ?;", (user_id, history_id)
        ):
            raise ValueError("workout not found")

    def delete_for_user(self, user_id: str) -> None:
        self.execute("DELETE FROM history WHERE user_id = ?;", (user_id,))


class AsyncHistoryRepository(AsyncBaseRepository):
    """Async repository for finished workouts."""

    async def create(self, user_id: str, draft: WorkoutDraft) -> WorkoutHistory:
        record = WorkoutHistory(id=new_id(), user_id=user_id, **draft.model_dump())
        await self.execute(
            f"INSERT INTO history ({_HISTORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?);",
            _history_params(user_id, record),
        )
        return record

    async def fetch_all_for_user(self, user_id: str) -> List[WorkoutHistory]:
        rows = await self.fetch_all(
            f"SELECT {_HISTORY_COLUMNS} FROM history WHERE user_id = ? ORDER BY date DESC;",
            (user_id,),
        )
        return [_row_to_history(r) for r in rows]

    async def delete(self, user_id: str, history_id: str) -> None:
        if not await self.execute(
            "DELETE FROM history WHERE user_id = ? AND id = ?;", (user_id, history_id)
        ):
            raise ValueError("workout not found")


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {"ai_enabled"}

    def __init__(
        self, db_path: str = "fitness.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, bool | str] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
            else:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                if key in YamlConfig.SENSITIVE_KEYS:
                    continue
                val = str(value)
                if key in self.BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def secret(self, key: str) -> Optional[str]:
        return self._yaml.secret(key)

    def set_secret(self, key: str, value: str) -> None:
        self._yaml.set_secret(key, value)
