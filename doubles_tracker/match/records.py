"""
Match records and player profiles: what crosses the persistence boundary.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from doubles_tracker.errors import ReconstructionWarning

from .events import Player, PointEvent
from .state import MatchState
from .stats import PlayerStats, stats_by_profile

logger = logging.getLogger(__name__)


@dataclass
class PlayerProfile:
    """A player across matches. Stats are the sum of every completed match."""
    id: str
    name: str
    matches_played: int = 0
    wins: int = 0
    losses: int = 0
    stats: PlayerStats = field(default_factory=PlayerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "matches_played": self.matches_played,
            "wins": self.wins,
            "losses": self.losses,
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> PlayerProfile:
        return cls(
            id=str(d["id"]),
            name=str(d["name"]),
            matches_played=int(d.get("matches_played", 0)),
            wins=int(d.get("wins", 0)),
            losses=int(d.get("losses", 0)),
            stats=PlayerStats.from_dict(d.get("stats", {})),
        )


def new_profile(name: str) -> PlayerProfile:
    return PlayerProfile(id=str(uuid.uuid4()), name=name.strip())


@dataclass
class MatchRecord:
    """
    A completed or paused match. `last_state` allows resuming; imported matches have none
    and are flagged `reconstructed` (and `approximate` when heuristics were needed).
    """
    id: str
    date: str
    team1: tuple[Player, Player]
    team2: tuple[Player, Player]
    score1: list[int]
    score2: list[int]
    player_stats: dict[str, PlayerStats]
    events: list[PointEvent]
    winner: int | None = None
    video_file_name: str | None = None
    last_state: MatchState | None = None
    reconstructed: bool = False
    approximate: bool = False
    warnings: list[ReconstructionWarning] = field(default_factory=list)

    @property
    def players(self) -> list[Player]:
        return [*self.team1, *self.team2]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "team1": {"players": [p.to_dict() for p in self.team1], "score": list(self.score1)},
            "team2": {"players": [p.to_dict() for p in self.team2], "score": list(self.score2)},
            "winner": self.winner,
            "player_stats": {pid: s.to_dict() for pid, s in self.player_stats.items()},
            "events": [e.to_dict() for e in self.events],
            "video_file_name": self.video_file_name,
            "last_state": self.last_state.to_dict() if self.last_state else None,
            "reconstructed": self.reconstructed,
            "approximate": self.approximate,
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> MatchRecord:
        t1 = tuple(Player.from_dict(p) for p in d["team1"]["players"])
        t2 = tuple(Player.from_dict(p) for p in d["team2"]["players"])
        last = d.get("last_state")
        return cls(
            id=str(d["id"]),
            date=str(d["date"]),
            team1=t1,
            team2=t2,
            score1=[int(g) for g in d["team1"]["score"]],
            score2=[int(g) for g in d["team2"]["score"]],
            winner=d.get("winner"),
            player_stats={pid: PlayerStats.from_dict(s) for pid, s in d.get("player_stats", {}).items()},
            events=[PointEvent.from_dict(e) for e in d.get("events", [])],
            video_file_name=d.get("video_file_name"),
            last_state=MatchState.from_dict(last) if last else None,
            reconstructed=bool(d.get("reconstructed", False)),
            approximate=bool(d.get("approximate", False)),
            warnings=[ReconstructionWarning(**w) for w in d.get("warnings", [])],
        )


def build_match_record(
    state: MatchState,
    video_file_name: str | None = None,
    record_id: str | None = None,
) -> MatchRecord:
    """Record for a live match: stats re-keyed by profile, state copied for resuming."""
    return MatchRecord(
        id=record_id or str(uuid.uuid4()),
        date=date.today().isoformat(),
        team1=state.team1.players,
        team2=state.team2.players,
        score1=list(state.team1.games),
        score2=list(state.team2.games),
        winner=state.winner,
        player_stats=stats_by_profile(state.stats, state.players),
        events=list(state.events),
        video_file_name=video_file_name,
        last_state=MatchState.from_dict(state.to_dict()),
    )


def update_profiles_on_match_end(
    profiles: Mapping[str, PlayerProfile],
    record: MatchRecord,
) -> dict[str, PlayerProfile]:
    """
    Add one match, a win or a loss and the match counters to each player's profile.
    Returns the updated profiles; records without a winner change nothing.
    """
    if record.winner is None:
        return {}
    updated: dict[str, PlayerProfile] = {}
    for player in record.players:
        profile = profiles.get(player.profile_id)
        if profile is None:
            logger.warning("No profile %s for %s; skipping", player.profile_id, player.name)
            continue
        match_stats = record.player_stats.get(player.profile_id, PlayerStats())
        won = player.team_id == record.winner
        updated[profile.id] = PlayerProfile(
            id=profile.id,
            name=profile.name,
            matches_played=profile.matches_played + 1,
            wins=profile.wins + (1 if won else 0),
            losses=profile.losses + (0 if won else 1),
            stats=profile.stats + match_stats,
        )
    return updated
