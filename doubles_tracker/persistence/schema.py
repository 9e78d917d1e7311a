"""
SQLite schema for stored matches and player profiles.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def match_records_schema() -> str:
    """One row per saved match. record_json holds the full MatchRecord (events, resumable state)."""
    return """
    CREATE TABLE IF NOT EXISTS match_records (
        id TEXT PRIMARY KEY,
        date TEXT NOT NULL,
        winner INTEGER,
        reconstructed INTEGER NOT NULL DEFAULT 0,
        approximate INTEGER NOT NULL DEFAULT 0,
        record_json TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_match_records_created ON match_records(created_at);
    """


def player_profiles_schema() -> str:
    """Stable player identity; stats aggregated across completed matches."""
    return """
    CREATE TABLE IF NOT EXISTS player_profiles (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        profile_json TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_player_profiles_name ON player_profiles(name COLLATE NOCASE);
    """


def all_schema_sql() -> str:
    return match_records_schema() + player_profiles_schema()
