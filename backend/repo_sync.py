"""
Repository: SQL operations for the five synced tables.

This file contains only DB interaction code. It maps entity models to SQL
parameters and converts rows back into models. Keep business rules (which
records to send, how far back to look) out of this module.

Important notes:
- SQL strings use positional parameters for psycopg and are built from the
  column tuples below so parameter order always matches.
- Opaque structured fields are sent with `Jsonb` so Postgres stores native
  JSONB; on read they may come back parsed (JSONB) or as text (stores whose
  columns were created as TEXT), and both are accepted.
- The repository never commits. Transaction boundaries belong to the
  caller that opened the connection.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from psycopg.types.json import Jsonb

from models import BiomarkerEntry, FoodEntry, Goal, UserProfile, WorkoutEntry

logger = logging.getLogger(__name__)


FOOD_COLUMNS = (
    "id", "name", "calories", "protein", "carbs", "fat", "fiber", "sugar",
    "sodium", "image_uri", "timestamp", "meal_type", "confidence",
    "ai_analysis", "portion_multiplier", "portion_unit", "base_calories",
    "base_protein", "base_carbs", "base_fat", "base_fiber", "base_sugar",
    "base_sodium", "show_manual_nutrition",
)
WORKOUT_COLUMNS = (
    "id", "name", "type", "duration", "calories", "intensity", "exercises",
    "notes", "timestamp",
)
BIOMARKER_COLUMNS = ("id", "type", "value", "unit", "timestamp", "notes")
GOAL_COLUMNS = (
    "id", "title", "description", "type", "target_value", "current_value",
    "unit", "target_date", "created_at", "is_completed", "milestones",
    "updated_at",
)
PROFILE_COLUMNS = (
    "id", "name", "age", "gender", "height", "activity_level", "preferences",
    "created_at", "updated_at",
)

# Fields a re-push may overwrite. Everything else keeps its first value.
GOAL_MUTABLE = ("title", "description", "current_value", "is_completed", "updated_at")
PROFILE_MUTABLE = (
    "name", "age", "gender", "height", "activity_level", "preferences", "updated_at",
)


def _insert_ignore(table: str, columns: tuple) -> str:
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(['%s'] * len(columns))}) "
        "ON CONFLICT (id) DO NOTHING"
    )


def _upsert(table: str, columns: tuple, mutable: tuple) -> str:
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in mutable)
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(['%s'] * len(columns))}) "
        f"ON CONFLICT (id) DO UPDATE SET {updates}"
    )


def _select_since(table: str, columns: tuple, time_column: str, limit: Optional[int] = None) -> str:
    sql = (
        f"SELECT {', '.join(columns)} FROM {table} "
        f"WHERE {time_column} > %s ORDER BY {time_column} DESC"
    )
    if limit is not None:
        sql += f" LIMIT {limit}"
    return sql


INSERT_FOOD = _insert_ignore("food_entries", FOOD_COLUMNS)
INSERT_WORKOUT = _insert_ignore("workout_entries", WORKOUT_COLUMNS)
INSERT_BIOMARKER = _insert_ignore("biomarker_entries", BIOMARKER_COLUMNS)
UPSERT_GOAL = _upsert("goals", GOAL_COLUMNS, GOAL_MUTABLE)
UPSERT_PROFILE = _upsert("user_profiles", PROFILE_COLUMNS, PROFILE_MUTABLE)

# Goals are pulled with the same columns minus the server marker.
GOAL_READ_COLUMNS = GOAL_COLUMNS[:-1]

SELECT_FOOD_SINCE = _select_since("food_entries", FOOD_COLUMNS, "timestamp")
SELECT_WORKOUTS_SINCE = _select_since("workout_entries", WORKOUT_COLUMNS, "timestamp")
SELECT_BIOMARKERS_SINCE = _select_since("biomarker_entries", BIOMARKER_COLUMNS, "timestamp")
SELECT_GOALS_SINCE = _select_since("goals", GOAL_READ_COLUMNS, "created_at")
SELECT_PROFILE_SINCE = _select_since("user_profiles", PROFILE_COLUMNS, "updated_at", limit=1)

# Diagnostics: columns shown per table and the column recent rows sort on.
INSPECT_COLUMNS = {
    "food_entries": (("id", "name", "timestamp", "created_at"), "timestamp"),
    "workout_entries": (("id", "name", "timestamp", "created_at"), "timestamp"),
    "biomarker_entries": (("id", "type", "value", "timestamp", "created_at"), "timestamp"),
    "goals": (("id", "title", "created_at", "updated_at"), "created_at"),
    "user_profiles": (("id", "name", "created_at", "updated_at"), "updated_at"),
}
COUNT_SQL = {table: f"SELECT COUNT(*) FROM {table}" for table in INSPECT_COLUMNS}
RECENT_SQL = {
    table: f"SELECT {', '.join(cols)} FROM {table} ORDER BY {order} DESC LIMIT %s"
    for table, (cols, order) in INSPECT_COLUMNS.items()
}
PING_SQL = "SELECT NOW()"


def to_float(value: Any) -> Optional[float]:
    """Numeric columns may arrive as float, Decimal or text."""
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        f = to_float(value)
        return int(f) if f is not None else None


def parse_json(value: Any) -> Any:
    """Return structured data for an opaque column, or None if it is unreadable."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error("Error parsing JSON column: %s (data=%r)", e, value[:200])
            return None
    return None


def _jsonb(value: Any) -> Optional[Jsonb]:
    return None if value is None else Jsonb(value)


def _plain(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


class SyncRepo:
    """DB access only. No business logic here.

    Responsibilities:
    - Map entity models -> SQL parameters
    - Map rows -> entity models, normalizing stored representations
    - Leave commit/rollback to the owner of `conn`
    """

    def __init__(self, conn):
        self.conn = conn

    # -- writes ---------------------------------------------------------

    def insert_food(self, e: FoodEntry) -> None:
        self._execute(INSERT_FOOD, (
            e.id, e.name, e.calories, e.protein, e.carbs, e.fat, e.fiber,
            e.sugar, e.sodium, e.image_uri, e.timestamp, e.meal_type,
            e.confidence, e.ai_analysis, e.portion_multiplier, e.portion_unit,
            e.base_calories, e.base_protein, e.base_carbs, e.base_fat,
            e.base_fiber, e.base_sugar, e.base_sodium, e.show_manual_nutrition,
        ))

    def insert_workout(self, e: WorkoutEntry) -> None:
        self._execute(INSERT_WORKOUT, (
            e.id, e.name, e.type, e.duration, e.calories, e.intensity,
            _jsonb(e.exercises), e.notes, e.timestamp,
        ))

    def insert_biomarker(self, e: BiomarkerEntry) -> None:
        self._execute(INSERT_BIOMARKER, (
            e.id, e.type, e.value, e.unit, e.timestamp, e.notes,
        ))

    def upsert_goal(self, g: Goal, now_ms: int) -> None:
        self._execute(UPSERT_GOAL, (
            g.id, g.title, g.description, g.type, g.target_value,
            g.current_value, g.unit, g.target_date, g.created_at,
            g.is_completed, _jsonb(g.milestones), now_ms,
        ))

    def upsert_profile(self, p: UserProfile, now_ms: int) -> None:
        self._execute(UPSERT_PROFILE, (
            p.id, p.name, p.age, p.gender, p.height, p.activity_level,
            _jsonb(p.preferences), p.created_at, now_ms,
        ))

    # -- windowed reads -------------------------------------------------

    def fetch_food_since(self, horizon_ms: int) -> List[FoodEntry]:
        out = []
        for r in self._fetch(SELECT_FOOD_SINCE, FOOD_COLUMNS, horizon_ms):
            out.append(FoodEntry(
                id=r["id"],
                name=r["name"],
                calories=to_float(r["calories"]),
                protein=to_float(r["protein"]),
                carbs=to_float(r["carbs"]),
                fat=to_float(r["fat"]),
                fiber=to_float(r["fiber"]),
                sugar=to_float(r["sugar"]),
                sodium=to_float(r["sodium"]),
                image_uri=r["image_uri"],
                timestamp=to_int(r["timestamp"]),
                meal_type=r["meal_type"],
                confidence=to_float(r["confidence"]),
                ai_analysis=r["ai_analysis"],
                portion_multiplier=to_float(r["portion_multiplier"]),
                portion_unit=r["portion_unit"],
                base_calories=to_float(r["base_calories"]),
                base_protein=to_float(r["base_protein"]),
                base_carbs=to_float(r["base_carbs"]),
                base_fat=to_float(r["base_fat"]),
                base_fiber=to_float(r["base_fiber"]),
                base_sugar=to_float(r["base_sugar"]),
                base_sodium=to_float(r["base_sodium"]),
                show_manual_nutrition=r["show_manual_nutrition"],
            ))
        return out

    def fetch_workouts_since(self, horizon_ms: int) -> List[WorkoutEntry]:
        return [
            WorkoutEntry(
                id=r["id"],
                name=r["name"],
                type=r["type"],
                duration=to_int(r["duration"]),
                calories=to_float(r["calories"]),
                intensity=r["intensity"],
                exercises=parse_json(r["exercises"]),
                notes=r["notes"],
                timestamp=to_int(r["timestamp"]),
            )
            for r in self._fetch(SELECT_WORKOUTS_SINCE, WORKOUT_COLUMNS, horizon_ms)
        ]

    def fetch_biomarkers_since(self, horizon_ms: int) -> List[BiomarkerEntry]:
        return [
            BiomarkerEntry(
                id=r["id"],
                type=r["type"],
                value=to_float(r["value"]),
                unit=r["unit"],
                timestamp=to_int(r["timestamp"]),
                notes=r["notes"],
            )
            for r in self._fetch(SELECT_BIOMARKERS_SINCE, BIOMARKER_COLUMNS, horizon_ms)
        ]

    def fetch_goals_since(self, horizon_ms: int) -> List[Goal]:
        return [
            Goal(
                id=r["id"],
                title=r["title"],
                description=r["description"],
                type=r["type"],
                target_value=to_float(r["target_value"]),
                current_value=to_float(r["current_value"]),
                unit=r["unit"],
                target_date=to_int(r["target_date"]),
                created_at=to_int(r["created_at"]),
                is_completed=r["is_completed"],
                milestones=parse_json(r["milestones"]),
            )
            for r in self._fetch(SELECT_GOALS_SINCE, GOAL_READ_COLUMNS, horizon_ms)
        ]

    def fetch_profile_since(self, horizon_ms: int) -> Optional[UserProfile]:
        rows = self._fetch(SELECT_PROFILE_SINCE, PROFILE_COLUMNS, horizon_ms)
        if not rows:
            return None
        r = rows[0]
        return UserProfile(
            id=r["id"],
            name=r["name"],
            age=to_int(r["age"]),
            gender=r["gender"],
            height=to_float(r["height"]),
            activity_level=r["activity_level"],
            preferences=parse_json(r["preferences"]),
            created_at=to_int(r["created_at"]),
            updated_at=to_int(r["updated_at"]),
        )

    # -- diagnostics ----------------------------------------------------

    def count_rows(self, table: str) -> int:
        with self.conn.cursor() as cur:
            cur.execute(COUNT_SQL[table])
            return int(cur.fetchone()[0])

    def recent_rows(self, table: str, limit: int) -> List[Dict[str, Any]]:
        columns, _ = INSPECT_COLUMNS[table]
        with self.conn.cursor() as cur:
            cur.execute(RECENT_SQL[table], (limit,))
            return [
                {c: _plain(v) for c, v in zip(columns, r)}
                for r in cur.fetchall()
            ]

    def ping(self) -> None:
        """Single round trip. Raises on error."""

        with self.conn.cursor() as cur:
            cur.execute(PING_SQL)
            cur.fetchone()

    # -- helpers --------------------------------------------------------

    def _execute(self, sql: str, params: tuple) -> None:
        with self.conn.cursor() as cur:
            cur.execute(sql, params)

    def _fetch(self, sql: str, columns: tuple, horizon_ms: int) -> List[Dict[str, Any]]:
        with self.conn.cursor() as cur:
            cur.execute(sql, (horizon_ms,))
            return [dict(zip(columns, r)) for r in cur.fetchall()]
