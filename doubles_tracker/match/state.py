"""
Match state: teams, serve rotation, interaction mode and the live event log.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from doubles_tracker.errors import ValidationError

from .events import Player, PointEvent, RallyOutcome, other_team, team_of
from .stats import PlayerStats, empty_table

if TYPE_CHECKING:
    from .history import StateSnapshot


class InteractionMode(str, Enum):
    """Phase of the scoring state machine."""
    NOT_STARTED = "not_started"
    SELECTING_FIRST_SERVER = "selecting_first_server"
    SELECTING_SECOND_SERVER = "selecting_second_server"
    SCORING = "scoring"
    ATTRIBUTING_RALLY = "attributing_rally"
    MATCH_OVER = "match_over"


SERVER_SELECTION_MODES = frozenset(
    {InteractionMode.SELECTING_FIRST_SERVER, InteractionMode.SELECTING_SECOND_SERVER}
)


@dataclass(frozen=True)
class MatchRules:
    """Scoring constants. Defaults: best of three sets with a super-tiebreak decider."""
    points_to_win_game: int = 4
    games_to_win_set: int = 6
    win_by: int = 2
    sets_to_win_match: int = 2
    tiebreak_points: int = 7
    super_tiebreak_points: int = 10

    @property
    def deciding_set_index(self) -> int:
        return 2 * self.sets_to_win_match - 2

    def tiebreak_target(self, set_index: int) -> int:
        if set_index == self.deciding_set_index:
            return self.super_tiebreak_points
        return self.tiebreak_points

    def to_dict(self) -> dict[str, int]:
        return {
            "points_to_win_game": self.points_to_win_game,
            "games_to_win_set": self.games_to_win_set,
            "win_by": self.win_by,
            "sets_to_win_match": self.sets_to_win_match,
            "tiebreak_points": self.tiebreak_points,
            "super_tiebreak_points": self.super_tiebreak_points,
        }


@dataclass
class Team:
    """Two players, games per set, points in the current game."""
    players: tuple[Player, Player]
    games: list[int] = field(default_factory=lambda: [0])
    points: int = 0
    is_serving: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "players": [p.to_dict() for p in self.players],
            "games": list(self.games),
            "points": self.points,
            "is_serving": self.is_serving,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Team:
        p0, p1 = (Player.from_dict(p) for p in d["players"])
        return cls(
            players=(p0, p1),
            games=[int(g) for g in d["games"]],
            points=int(d["points"]),
            is_serving=bool(d["is_serving"]),
        )


def _placeholder_team(team_id: int) -> Team:
    s0, s1 = (0, 1) if team_id == 1 else (2, 3)
    return Team(players=(Player(s0, "", ""), Player(s1, "", "")), is_serving=team_id == 1)


def validate_rosters(team1: tuple[Player, Player], team2: tuple[Player, Player]) -> None:
    """Four distinct players seated 0,1 (team 1) and 2,3 (team 2)."""
    if len(team1) != 2 or len(team2) != 2:
        raise ValidationError("Each team needs exactly two players")
    players = [*team1, *team2]
    if [p.seat for p in players] != [0, 1, 2, 3]:
        raise ValidationError("Players must occupy seats 0,1 (team 1) and 2,3 (team 2) in order")
    if any(not p.profile_id or not p.name.strip() for p in players):
        raise ValidationError("Every player needs a profile id and a name")
    if len({p.profile_id for p in players}) != 4:
        raise ValidationError("A match needs four distinct players")


@dataclass
class MatchState:
    """
    Live match state. Owned by one ScoreMachine during play.
    Undo snapshots live in `history`; they never carry a history of their own.
    """
    team1: Team
    team2: Team
    rules: MatchRules = field(default_factory=MatchRules)
    current_set: int = 0
    server_seat: int = 0
    serve_order: list[int] = field(default_factory=list)
    serve_order_index: int = 0
    is_tiebreak: bool = False
    match_over: bool = False
    winner: int | None = None
    stats: dict[int, PlayerStats] = field(default_factory=empty_table)
    events: list[PointEvent] = field(default_factory=list)
    history: list[StateSnapshot] = field(default_factory=list)
    mode: InteractionMode = InteractionMode.NOT_STARTED
    pending_reason: RallyOutcome | None = None
    pending_timestamp: float | None = None
    first_serve_faulted: bool = False

    @classmethod
    def initial(cls, rules: MatchRules | None = None) -> MatchState:
        return cls(team1=_placeholder_team(1), team2=_placeholder_team(2), rules=rules or MatchRules())

    @classmethod
    def for_teams(
        cls,
        team1: tuple[Player, Player],
        team2: tuple[Player, Player],
        rules: MatchRules | None = None,
    ) -> MatchState:
        validate_rosters(team1, team2)
        return cls(
            team1=Team(players=tuple(team1), is_serving=True),
            team2=Team(players=tuple(team2)),
            rules=rules or MatchRules(),
            mode=InteractionMode.SELECTING_FIRST_SERVER,
        )

    # ---------- Lookups ----------

    @property
    def players(self) -> list[Player]:
        return [*self.team1.players, *self.team2.players]

    def player(self, seat: int) -> Player:
        return self.players[seat]

    def team(self, team_id: int) -> Team:
        return self.team1 if team_id == 1 else self.team2

    def opponents(self, team_id: int) -> Team:
        return self.team(other_team(team_id))

    @property
    def names(self) -> dict[int, str]:
        return {p.seat: p.name for p in self.players}

    @property
    def serving_team_id(self) -> int:
        return team_of(self.server_seat)

    def sync_serving_flags(self) -> None:
        self.team1.is_serving = self.server_seat < 2
        self.team2.is_serving = self.server_seat >= 2

    # ---------- Serialization (resume) ----------

    def to_dict(self) -> dict[str, Any]:
        return {
            "team1": self.team1.to_dict(),
            "team2": self.team2.to_dict(),
            "rules": self.rules.to_dict(),
            "current_set": self.current_set,
            "server_seat": self.server_seat,
            "serve_order": list(self.serve_order),
            "serve_order_index": self.serve_order_index,
            "is_tiebreak": self.is_tiebreak,
            "match_over": self.match_over,
            "winner": self.winner,
            "stats": {str(seat): s.to_dict() for seat, s in self.stats.items()},
            "events": [e.to_dict() for e in self.events],
            "history": [snap.to_dict() for snap in self.history],
            "mode": self.mode.value,
            "pending_reason": self.pending_reason.value if self.pending_reason else None,
            "pending_timestamp": self.pending_timestamp,
            "first_serve_faulted": self.first_serve_faulted,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> MatchState:
        from .history import StateSnapshot

        reason = d.get("pending_reason")
        return cls(
            team1=Team.from_dict(d["team1"]),
            team2=Team.from_dict(d["team2"]),
            rules=MatchRules(**d.get("rules", {})),
            current_set=int(d["current_set"]),
            server_seat=int(d["server_seat"]),
            serve_order=[int(s) for s in d.get("serve_order", [])],
            serve_order_index=int(d.get("serve_order_index", 0)),
            is_tiebreak=bool(d.get("is_tiebreak", False)),
            match_over=bool(d.get("match_over", False)),
            winner=d.get("winner"),
            stats={int(seat): PlayerStats.from_dict(s) for seat, s in d["stats"].items()},
            events=[PointEvent.from_dict(e) for e in d.get("events", [])],
            history=[StateSnapshot.from_dict(s) for s in d.get("history", [])],
            mode=InteractionMode(d["mode"]),
            pending_reason=RallyOutcome(reason) if reason else None,
            pending_timestamp=d.get("pending_timestamp"),
            first_serve_faulted=bool(d.get("first_serve_faulted", False)),
        )
