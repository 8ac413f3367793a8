"""SQLite schema for workouts, segments and weekly summaries."""

SCHEMA = """
-- Planned and performed workouts
CREATE TABLE IF NOT EXISTS workouts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'scheduled',
    scheduled_date TEXT,  -- UTC, "%Y-%m-%dT%H:%M:%S.%f"
    total_duration_minutes REAL,
    readiness_score REAL,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_workouts_user_date
    ON workouts(user_id, scheduled_date);

-- Ordered workout segments with planned vs. actual performance
CREATE TABLE IF NOT EXISTS workout_segments (
    id TEXT PRIMARY KEY,
    workout_id TEXT NOT NULL REFERENCES workouts(id) ON DELETE CASCADE,
    order_index INTEGER NOT NULL,
    segment_type TEXT,
    name TEXT,
    duration_minutes REAL,
    distance_km REAL,
    target_pace TEXT,
    actual_distance_km REAL,
    actual_pace TEXT,
    actual_duration_minutes REAL,
    actual_heart_rate_avg INTEGER,
    completion_status TEXT NOT NULL DEFAULT 'not_started',
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(workout_id, order_index)
);

CREATE INDEX IF NOT EXISTS idx_segments_workout
    ON workout_segments(workout_id, completion_status);

-- Weekly roll-ups (one row per user and week)
CREATE TABLE IF NOT EXISTS weekly_summaries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    week_starting TEXT NOT NULL,  -- YYYY-MM-DD
    week_ending TEXT NOT NULL,
    workouts_planned INTEGER NOT NULL DEFAULT 0,
    workouts_completed INTEGER NOT NULL DEFAULT 0,
    total_duration_minutes REAL NOT NULL DEFAULT 0,
    total_distance_km REAL NOT NULL DEFAULT 0,
    avg_readiness_score REAL,
    workout_breakdown TEXT,  -- JSON object: type -> completed count
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, week_starting)
);
"""
