"""
Repository interfaces for match records and player profiles.
No business logic: only read/write operations keyed by id.
"""
from __future__ import annotations

import json
import sqlite3
from datetime import datetime

from doubles_tracker.errors import RecordNotFoundError
from doubles_tracker.match.records import MatchRecord, PlayerProfile, new_profile


def _now() -> str:
    return datetime.utcnow().isoformat()


# ---------- MatchRecordRepository ----------


class MatchRecordRepository:
    """Save/load MatchRecords. Saving an existing id overwrites it (pause, then finish)."""

    def save(self, conn: sqlite3.Connection, record: MatchRecord) -> MatchRecord:
        now = _now()
        conn.execute(
            """INSERT INTO match_records (
                id, date, winner, reconstructed, approximate, record_json, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                date = excluded.date,
                winner = excluded.winner,
                reconstructed = excluded.reconstructed,
                approximate = excluded.approximate,
                record_json = excluded.record_json,
                updated_at = excluded.updated_at""",
            (
                record.id,
                record.date,
                record.winner,
                int(record.reconstructed),
                int(record.approximate),
                json.dumps(record.to_dict()),
                now,
                now,
            ),
        )
        conn.commit()
        return record

    def get(self, conn: sqlite3.Connection, record_id: str) -> MatchRecord | None:
        row = conn.execute(
            "SELECT record_json FROM match_records WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return None
        return MatchRecord.from_dict(json.loads(row["record_json"]))

    def require(self, conn: sqlite3.Connection, record_id: str) -> MatchRecord:
        record = self.get(conn, record_id)
        if record is None:
            raise RecordNotFoundError(f"Match record not found: {record_id}")
        return record

    def list_recent(self, conn: sqlite3.Connection, limit: int = 50) -> list[MatchRecord]:
        rows = conn.execute(
            "SELECT record_json FROM match_records ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [MatchRecord.from_dict(json.loads(r["record_json"])) for r in rows]

    def delete(self, conn: sqlite3.Connection, record_id: str) -> bool:
        cur = conn.execute("DELETE FROM match_records WHERE id = ?", (record_id,))
        conn.commit()
        return cur.rowcount > 0


# ---------- PlayerProfileRepository ----------


class PlayerProfileRepository:
    """CRUD for player profiles."""

    def create(self, conn: sqlite3.Connection, name: str) -> PlayerProfile:
        profile = new_profile(name)
        return self.save(conn, profile)

    def save(self, conn: sqlite3.Connection, profile: PlayerProfile) -> PlayerProfile:
        conn.execute(
            """INSERT INTO player_profiles (id, name, profile_json, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   profile_json = excluded.profile_json""",
            (profile.id, profile.name, json.dumps(profile.to_dict()), _now()),
        )
        conn.commit()
        return profile

    def get(self, conn: sqlite3.Connection, profile_id: str) -> PlayerProfile | None:
        row = conn.execute(
            "SELECT profile_json FROM player_profiles WHERE id = ?", (profile_id,)
        ).fetchone()
        if row is None:
            return None
        return PlayerProfile.from_dict(json.loads(row["profile_json"]))

    def get_by_name(self, conn: sqlite3.Connection, name: str) -> PlayerProfile | None:
        row = conn.execute(
            "SELECT profile_json FROM player_profiles WHERE name = ? COLLATE NOCASE ORDER BY created_at LIMIT 1",
            (name.strip(),),
        ).fetchone()
        if row is None:
            return None
        return PlayerProfile.from_dict(json.loads(row["profile_json"]))

    def list_all(self, conn: sqlite3.Connection) -> list[PlayerProfile]:
        rows = conn.execute(
            "SELECT profile_json FROM player_profiles ORDER BY created_at, name"
        ).fetchall()
        return [PlayerProfile.from_dict(json.loads(r["profile_json"])) for r in rows]

    def get_many(self, conn: sqlite3.Connection, profile_ids: list[str]) -> dict[str, PlayerProfile]:
        profiles = (self.get(conn, pid) for pid in profile_ids)
        return {p.id: p for p in profiles if p is not None}
