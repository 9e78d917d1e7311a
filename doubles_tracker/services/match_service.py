"""
Live match service: one ScoreMachine per live match, commands serialised per match,
records and profiles persisted through the repositories.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from doubles_tracker.errors import RecordNotFoundError, UsageError, ValidationError
from doubles_tracker.match import (
    Command,
    InteractionMode,
    MatchRecord,
    MatchRules,
    Player,
    PointEvent,
    ResumeMatch,
    ScoreMachine,
    StartMatch,
    build_match_record,
    decode_match,
    encode_record,
    update_profiles_on_match_end,
)
from doubles_tracker.persistence.repositories import MatchRecordRepository, PlayerProfileRepository

logger = logging.getLogger(__name__)


@dataclass
class LiveMatch:
    """A match being scored. The lock guards the machine and its history."""
    id: str
    machine: ScoreMachine
    video_file_name: str | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


def _state_view(live: LiveMatch) -> dict[str, Any]:
    """State without the undo snapshots, plus match id and undo depth. Caller holds the lock."""
    state = live.machine.state
    d = state.to_dict()
    d.pop("history")
    d["match_id"] = live.id
    d["undo_depth"] = len(state.history)
    return d


class MatchService:
    """
    Domain orchestration for live scoring.
    Persistence is delegated to repositories; scoring to ScoreMachine.
    """

    def __init__(self, rules: MatchRules | None = None) -> None:
        self._rules = rules or MatchRules()
        self._record_repo = MatchRecordRepository()
        self._profile_repo = PlayerProfileRepository()
        self._live: dict[str, LiveMatch] = {}
        self._registry_lock = threading.Lock()

    # ---------- Live sessions ----------

    def get_live(self, match_id: str) -> LiveMatch:
        with self._registry_lock:
            live = self._live.get(match_id)
        if live is None:
            raise RecordNotFoundError(f"No live match: {match_id}")
        return live

    def _register(self, machine: ScoreMachine, match_id: str | None = None, video: str | None = None) -> LiveMatch:
        live = LiveMatch(id=match_id or str(uuid.uuid4()), machine=machine, video_file_name=video)
        with self._registry_lock:
            self._live[live.id] = live
        return live

    def _drop(self, match_id: str) -> None:
        with self._registry_lock:
            self._live.pop(match_id, None)

    def start_match(
        self,
        conn: sqlite3.Connection,
        team1_profile_ids: list[str],
        team2_profile_ids: list[str],
        video_file_name: str | None = None,
    ) -> LiveMatch:
        """Seat four stored profiles (team 1 on seats 0,1; team 2 on 2,3) and start scoring."""
        ids = [*team1_profile_ids, *team2_profile_ids]
        if len(team1_profile_ids) != 2 or len(team2_profile_ids) != 2:
            raise ValidationError("Each team needs exactly two players")
        players = []
        for seat, pid in enumerate(ids):
            profile = self._profile_repo.get(conn, pid)
            if profile is None:
                raise RecordNotFoundError(f"Profile not found: {pid}")
            players.append(Player(seat=seat, profile_id=profile.id, name=profile.name))
        machine = ScoreMachine(rules=self._rules)
        machine.handle(StartMatch(team1=(players[0], players[1]), team2=(players[2], players[3])))
        return self._register(machine, video=video_file_name)

    def handle(self, match_id: str, command: Command) -> tuple[dict[str, Any], PointEvent | None]:
        """
        Apply one command and return the resulting state view. The next command on this
        match waits until both are done.
        """
        live = self.get_live(match_id)
        with live.lock:
            event = live.machine.handle(command)
            return _state_view(live), event

    def snapshot_view(self, match_id: str) -> dict[str, Any]:
        """State view taken between commands, never halfway through one."""
        live = self.get_live(match_id)
        with live.lock:
            return _state_view(live)

    # ---------- Saving ----------

    def save_in_progress(self, conn: sqlite3.Connection, match_id: str) -> MatchRecord:
        """Store the match with its full state for resuming, then close the live session."""
        live = self.get_live(match_id)
        with live.lock:
            if live.machine.mode == InteractionMode.ATTRIBUTING_RALLY:
                raise UsageError("SaveInProgress", live.machine.mode.value, "finish or cancel the pending point")
            record = build_match_record(live.machine.state, live.video_file_name, record_id=live.id)
            self._record_repo.save(conn, record)
        self._drop(match_id)
        logger.info("Saved in-progress match %s (%d points)", match_id, len(record.events))
        return record

    def finish_match(self, conn: sqlite3.Connection, match_id: str) -> MatchRecord:
        """Store a completed match and add its stats to the four player profiles."""
        live = self.get_live(match_id)
        with live.lock:
            if live.machine.mode != InteractionMode.MATCH_OVER:
                raise UsageError("FinishMatch", live.machine.mode.value, "match is not over")
            record = build_match_record(live.machine.state, live.video_file_name, record_id=live.id)
            self._record_repo.save(conn, record)
            profiles = self._profile_repo.get_many(conn, [p.profile_id for p in record.players])
            for profile in update_profiles_on_match_end(profiles, record).values():
                self._profile_repo.save(conn, profile)
        self._drop(match_id)
        logger.info("Finished match %s: team %s wins", match_id, record.winner)
        return record

    def resume_match(self, conn: sqlite3.Connection, record_id: str) -> LiveMatch:
        record = self._record_repo.require(conn, record_id)
        if record.last_state is None:
            raise ValidationError(f"Match {record_id} has no saved state to resume")
        if record.winner is not None:
            raise ValidationError(f"Match {record_id} is already finished")
        machine = ScoreMachine(rules=record.last_state.rules)
        machine.handle(ResumeMatch(state=record.last_state))
        return self._register(machine, match_id=record.id, video=record.video_file_name)

    # ---------- Tabular import/export ----------

    def export_csv(self, conn: sqlite3.Connection, record_id: str) -> str:
        return encode_record(self._record_repo.require(conn, record_id))

    def import_csv(self, conn: sqlite3.Connection, text: str) -> MatchRecord:
        """Rebuild a match from CSV rows; unknown names become new profiles."""
        record, created = decode_match(text, profiles=self._profile_repo.list_all(conn))
        for profile in created:
            self._profile_repo.save(conn, profile)
        self._record_repo.save(conn, record)
        logger.info(
            "Imported match %s (%d points, approximate=%s)", record.id, len(record.events), record.approximate
        )
        return record
