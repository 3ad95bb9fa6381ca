"""
Schema bootstrap for a client-supplied store.

`ensure_schema()` must run to completion before a push touches any data
table. Every statement is "if not exists", so running it against a store
that is already set up is a no-op.

Timestamps are BIGINT epoch milliseconds, matching what clients send.
Opaque structured fields live in JSONB columns.
"""

import logging

logger = logging.getLogger(__name__)

TABLES = {
    "user_profiles": """
        CREATE TABLE IF NOT EXISTS user_profiles (
            id VARCHAR(255) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            age INTEGER,
            gender VARCHAR(20),
            height REAL,
            activity_level VARCHAR(50),
            preferences JSONB,
            created_at BIGINT,
            updated_at BIGINT DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000
        )
    """,
    "food_entries": """
        CREATE TABLE IF NOT EXISTS food_entries (
            id VARCHAR(255) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            calories REAL,
            protein REAL,
            carbs REAL,
            fat REAL,
            fiber REAL,
            sugar REAL,
            sodium REAL,
            image_uri TEXT,
            timestamp BIGINT,
            meal_type VARCHAR(50),
            confidence REAL,
            ai_analysis TEXT,
            portion_multiplier REAL,
            portion_unit VARCHAR(50),
            base_calories REAL,
            base_protein REAL,
            base_carbs REAL,
            base_fat REAL,
            base_fiber REAL,
            base_sugar REAL,
            base_sodium REAL,
            show_manual_nutrition BOOLEAN,
            created_at BIGINT DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000
        )
    """,
    "workout_entries": """
        CREATE TABLE IF NOT EXISTS workout_entries (
            id VARCHAR(255) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            type VARCHAR(50),
            duration INTEGER,
            calories REAL,
            intensity VARCHAR(20),
            exercises JSONB,
            notes TEXT,
            timestamp BIGINT,
            created_at BIGINT DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000
        )
    """,
    "biomarker_entries": """
        CREATE TABLE IF NOT EXISTS biomarker_entries (
            id VARCHAR(255) PRIMARY KEY,
            type VARCHAR(50),
            value REAL,
            unit VARCHAR(20),
            timestamp BIGINT,
            notes TEXT,
            created_at BIGINT DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000
        )
    """,
    "goals": """
        CREATE TABLE IF NOT EXISTS goals (
            id VARCHAR(255) PRIMARY KEY,
            title VARCHAR(255),
            description TEXT,
            type VARCHAR(50),
            target_value REAL,
            current_value REAL,
            unit VARCHAR(20),
            target_date BIGINT,
            created_at BIGINT,
            is_completed BOOLEAN,
            milestones JSONB,
            updated_at BIGINT DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000
        )
    """,
}

# Stores created by older clients predate these columns.
COLUMN_BACKFILLS = [
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_calories REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_protein REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_carbs REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_fat REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_fiber REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_sugar REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS base_sodium REAL",
    "ALTER TABLE food_entries ADD COLUMN IF NOT EXISTS show_manual_nutrition BOOLEAN",
    "ALTER TABLE goals ADD COLUMN IF NOT EXISTS updated_at BIGINT "
    "DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000",
    "ALTER TABLE user_profiles ADD COLUMN IF NOT EXISTS updated_at BIGINT "
    "DEFAULT EXTRACT(EPOCH FROM NOW()) * 1000",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_food_entries_timestamp ON food_entries (timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_workout_entries_timestamp ON workout_entries (timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_biomarker_entries_timestamp ON biomarker_entries (timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_biomarker_entries_type ON biomarker_entries (type)",
]


def schema_statements() -> list[str]:
    return [*TABLES.values(), *COLUMN_BACKFILLS, *INDEXES]


def ensure_schema(conn) -> None:
    """Create missing tables, columns and indexes, then commit.

    Raises whatever the driver raises; a partially applied bootstrap is
    never committed.
    """

    with conn.cursor() as cur:
        for statement in schema_statements():
            cur.execute(statement)
    conn.commit()
    logger.debug("Schema ensured (%d tables, %d indexes)", len(TABLES), len(INDEXES))
