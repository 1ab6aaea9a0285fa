"""Database schema - DDL statements for SQLite."""

# Applied migrations, append-only
CREATE_SCHEMA_VERSIONS = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Settings table - key/value configuration
CREATE_SETTINGS = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Runs table - one row per .run file, payload kept as JSON
CREATE_RUNS = """
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    character TEXT NOT NULL,
    victory INTEGER NOT NULL DEFAULT 0,
    ascension_level INTEGER NOT NULL DEFAULT 0,
    floor_reached INTEGER NOT NULL DEFAULT 0,
    playtime INTEGER NOT NULL DEFAULT 0,
    score INTEGER NOT NULL DEFAULT 0,
    timestamp INTEGER NOT NULL,
    run_data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

CREATE_RUNS_TIMESTAMP_INDEX = """
CREATE INDEX IF NOT EXISTS idx_runs_timestamp ON runs(timestamp)
"""

CREATE_RUNS_CHARACTER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_runs_character ON runs(character)
"""

DROP_RUNS_TIMESTAMP_INDEX = "DROP INDEX IF EXISTS idx_runs_timestamp"
DROP_RUNS_CHARACTER_INDEX = "DROP INDEX IF EXISTS idx_runs_character"
DROP_RUNS = "DROP TABLE IF EXISTS runs"
DROP_SETTINGS = "DROP TABLE IF EXISTS settings"
